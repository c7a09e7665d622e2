"""
Staff importer blueprint: bulk import, duplicate collapse and scoped reads.

Callers authenticate with ``Authorization: Bearer <token>``; Flask-Login's
request loader turns the token into ``current_user`` before any view runs.
"""

from __future__ import annotations

import time
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from config.monitoring import ImporterMonitoring
from roster_app.services.staff_query_service import StaffFilters, StaffQueryService
from roster_app.utils.errors import Forbidden, StoreError, Unauthenticated
from roster_app.utils.importer import get_import_row_limit, is_importer_enabled
from roster_app.utils.permissions import caller_from_user, ensure_administrator

from .pipeline.batch import ImportBatchTooLarge, run_staff_import
from .pipeline.dedupe import collapse_duplicate_staff
from .pipeline.unit_directory import get_unit_directory

staff_importer_blueprint = Blueprint("staff_importer", __name__, url_prefix="/api/staff")

_query_service = StaffQueryService()


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _ensure_authenticated_api():
    if not current_user.is_authenticated:
        return _json_error("Authentication required.", HTTPStatus.UNAUTHORIZED)
    return None


def _current_caller():
    return caller_from_user(current_user)


def _parse_flag(payload: dict, key: str, *, default: bool) -> bool:
    value = payload.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be a boolean.")
    return value


def _parse_import_payload():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object.")
    rows = payload.get("rows")
    if not isinstance(rows, list):
        raise ValueError("'rows' must be a list of objects.")
    full_sync = _parse_flag(payload, "full_sync", default=False)
    unit_override = payload.get("unit_override")
    if unit_override is not None and not isinstance(unit_override, str):
        raise ValueError("'unit_override' must be a string.")
    return rows, full_sync, unit_override


@staff_importer_blueprint.get("/health")
def staff_importer_health():
    """
    Lightweight health endpoint proving the staff importer mounted correctly.
    """
    directory = get_unit_directory(current_app)
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": is_importer_enabled(current_app),
                "max_rows": get_import_row_limit(current_app),
                "unit_directory_ttl_seconds": directory.ttl_seconds,
            }
        ),
        200,
    )


@staff_importer_blueprint.post("/import")
def staff_import_api():
    auth_response = _ensure_authenticated_api()
    if auth_response:
        return auth_response

    try:
        rows, full_sync, unit_override = _parse_import_payload()
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    try:
        result = run_staff_import(
            rows,
            caller=_current_caller(),
            full_sync=full_sync,
            unit_override=unit_override,
        )
    except Unauthenticated as exc:
        return _json_error(str(exc), HTTPStatus.UNAUTHORIZED)
    except Forbidden as exc:
        return _json_error(str(exc), HTTPStatus.FORBIDDEN)
    except ImportBatchTooLarge as exc:
        return _json_error(str(exc), HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    except StoreError as exc:
        current_app.logger.error("Staff import could not start: %s", exc)
        return _json_error(str(exc), HTTPStatus.SERVICE_UNAVAILABLE)

    return jsonify(result.as_dict()), 200


@staff_importer_blueprint.post("/dedupe")
def staff_dedupe_api():
    auth_response = _ensure_authenticated_api()
    if auth_response:
        return auth_response

    try:
        caller = _current_caller()
        ensure_administrator(caller)
    except Unauthenticated as exc:
        return _json_error(str(exc), HTTPStatus.UNAUTHORIZED)
    except Forbidden as exc:
        return _json_error(str(exc), HTTPStatus.FORBIDDEN)

    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return _json_error("Request body must be a JSON object.", HTTPStatus.BAD_REQUEST)
    try:
        dry_run = _parse_flag(payload, "dry_run", default=True)
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    summary = collapse_duplicate_staff(dry_run=dry_run, performed_by_user_id=caller.user_id)
    current_app.logger.info(
        "Duplicate collapse requested via API",
        extra={
            "staff_dedupe_dry_run": dry_run,
            "staff_dedupe_removed": summary.duplicates_removed,
            "staff_dedupe_user": caller.username,
        },
    )
    return jsonify(summary.as_dict()), 200


@staff_importer_blueprint.get("")
def staff_list_api():
    auth_response = _ensure_authenticated_api()
    if auth_response:
        return auth_response

    raw = request.args
    try:
        filters = StaffFilters.coerce(
            unit=raw.get("unit"),
            search=raw.get("q") or raw.get("search"),
            district=raw.get("district"),
            include_inactive=raw.get("include_inactive"),
            is_certified=raw.get("is_certified"),
            page=raw.get("page"),
            per_page=raw.get("per_page"),
            default_per_page=int(current_app.config.get("STAFF_QUERY_PAGE_SIZE", 50)),
            max_per_page=int(current_app.config.get("STAFF_QUERY_MAX_PAGE_SIZE", 500)),
        )
    except ValueError as exc:
        ImporterMonitoring.record_staff_list(duration_seconds=0.0, status="invalid_request", result_count=0)
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    start_time = time.perf_counter()
    try:
        result = _query_service.list_staff(_current_caller(), filters)
    except Unauthenticated as exc:
        return _json_error(str(exc), HTTPStatus.UNAUTHORIZED)
    except Forbidden as exc:
        ImporterMonitoring.record_staff_list(
            duration_seconds=time.perf_counter() - start_time, status="forbidden", result_count=0
        )
        return _json_error(str(exc), HTTPStatus.FORBIDDEN)

    ImporterMonitoring.record_staff_list(
        duration_seconds=time.perf_counter() - start_time, status="success", result_count=len(result.items)
    )
    return jsonify(result.as_dict()), 200


@staff_importer_blueprint.get("/<int:staff_id>")
def staff_detail_api(staff_id: int):
    auth_response = _ensure_authenticated_api()
    if auth_response:
        return auth_response

    try:
        record = _query_service.get_staff(_current_caller(), staff_id)
    except Unauthenticated as exc:
        return _json_error(str(exc), HTTPStatus.UNAUTHORIZED)
    except Forbidden as exc:
        ImporterMonitoring.record_staff_detail(status="forbidden")
        return _json_error(str(exc), HTTPStatus.FORBIDDEN)

    if record is None:
        ImporterMonitoring.record_staff_detail(status="not_found")
        return _json_error(f"Staff record {staff_id} not found.", HTTPStatus.NOT_FOUND)

    ImporterMonitoring.record_staff_detail(status="success")
    return jsonify(record.to_dict()), 200
