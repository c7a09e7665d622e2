"""
Drive one staff import batch through normalize, resolve and upsert.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.field_aliases import FieldAliasProfile
from roster_app.importer.metrics import record_import_batch, record_import_rows
from roster_app.models import ImportRun, ImportRunStatus, db
from roster_app.models.base import utcnow
from roster_app.utils.errors import Forbidden, StoreError, ValidationSkip, describe_row_error
from roster_app.utils.permissions import CallerIdentity, effective_unit, require_home_unit, resolve_caller
from roster_app.utils.units import ResolvedUnit, UnitRef, legacy_unit_identity, unit_identity

from .full_sync import SeenSet, deactivate_unseen_staff
from .identity import CandidateIndex
from .normalize import StaffDraft, normalize_row
from .unit_directory import get_unit_directory, get_unit_locks
from .upsert import upsert_staff_member

DEFAULT_MAX_ROWS = 5000


class ImportBatchTooLarge(ValueError):
    """Raised when a batch exceeds ``STAFF_IMPORT_MAX_ROWS``."""

    def __init__(self, row_count: int, max_rows: int) -> None:
        super().__init__(f"Batch has {row_count} rows; the limit is {max_rows}.")
        self.row_count = row_count
        self.max_rows = max_rows


@dataclass
class ImportResult:
    """Structured report for one batch; a non-empty ``errors`` is still a completed batch."""

    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    deactivated_count: int = 0
    deactivation_failures: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)
    run_id: int | None = None

    @property
    def status(self) -> ImportRunStatus:
        if self.errors:
            return ImportRunStatus.PARTIALLY_FAILED
        return ImportRunStatus.SUCCEEDED

    def counts(self) -> dict[str, int]:
        return {
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "deactivated_count": self.deactivated_count,
            "deactivation_failures": self.deactivation_failures,
        }

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.counts())
        payload["errors"] = list(self.errors)
        payload["run_id"] = self.run_id
        return payload


@dataclass(frozen=True)
class _PlannedRow:
    draft: StaffDraft
    unit: UnitRef


def _start_run(
    session: Session,
    *,
    caller: CallerIdentity,
    row_count: int,
    full_sync: bool,
    unit_override: str | None,
) -> ImportRun:
    run = ImportRun(
        source="staff",
        status=ImportRunStatus.RUNNING,
        full_sync=full_sync,
        row_count=row_count,
        unit_override=unit_override if caller.is_administrator else None,
        triggered_by_user_id=caller.user_id,
        started_at=utcnow(),
    )
    try:
        session.add(run)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreError("could not record the import run") from exc
    return run


def _finish_run(session: Session, run: ImportRun, result: ImportResult, status: ImportRunStatus) -> None:
    try:
        run.status = status
        run.finished_at = utcnow()
        run.counts_json = result.counts()
        run.error_summary = "\n".join(result.errors[:20]) or None
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        if has_app_context():
            current_app.logger.warning("Could not finalize import run %s: %s", result.run_id, exc)


def _plan_rows(
    rows: list[Any],
    *,
    caller: CallerIdentity,
    unit_override: str | None,
    session: Session,
    profile: FieldAliasProfile | None,
    result: ImportResult,
) -> list[_PlannedRow]:
    directory = get_unit_directory()
    planned: list[_PlannedRow] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            draft = normalize_row(row, row_number=row_number, profile=profile)
            unit = effective_unit(
                caller,
                batch_unit=unit_override,
                row_unit=draft.declared_unit,
                resolve=lambda name: directory.lookup(name, session),
            )
            if unit is None:
                raise ValidationSkip("missing unit", row_number=row_number, name=draft.name)
        except ValidationSkip as exc:
            result.skipped_count += 1
            result.errors.append(describe_row_error(row_number, exc.name, exc))
            continue
        except TypeError as exc:
            result.skipped_count += 1
            result.errors.append(describe_row_error(row_number, None, exc))
            continue
        planned.append(_PlannedRow(draft=draft, unit=unit))
    return planned


def _touched_units(planned: Iterable[_PlannedRow]) -> dict[str, UnitRef]:
    touched: dict[str, UnitRef] = {}
    for item in planned:
        touched.setdefault(unit_identity(item.unit), item.unit)
    return touched


def _lock_keys(touched: dict[str, UnitRef]) -> set[str]:
    keys = set(touched)
    for unit in touched.values():
        if isinstance(unit, ResolvedUnit):
            # A resolved unit may also sweep unresolved records under its name
            keys.add(legacy_unit_identity(unit.name))
    return keys


def run_staff_import(
    rows: Iterable[Any],
    *,
    caller: CallerIdentity,
    full_sync: bool = False,
    unit_override: str | None = None,
    session: Session | None = None,
    profile: FieldAliasProfile | None = None,
) -> ImportResult:
    """
    Import ``rows`` on behalf of an already resolved caller.

    Raises ``Forbidden`` before touching any row when an operator has no home
    unit, and ``ImportBatchTooLarge`` when the batch is over the configured
    limit. Every row-level problem lands in ``ImportResult.errors`` instead.
    When ``full_sync`` is set, active records of the touched units that the
    batch did not write are deactivated afterwards.
    """

    session = session or db.session
    rows = list(rows)
    require_home_unit(caller)

    max_rows = DEFAULT_MAX_ROWS
    if has_app_context():
        max_rows = int(current_app.config.get("STAFF_IMPORT_MAX_ROWS", DEFAULT_MAX_ROWS))
    if len(rows) > max_rows:
        raise ImportBatchTooLarge(len(rows), max_rows)

    started = time.perf_counter()
    result = ImportResult()
    run = _start_run(
        session,
        caller=caller,
        row_count=len(rows),
        full_sync=full_sync,
        unit_override=unit_override,
    )
    result.run_id = run.id

    try:
        planned = _plan_rows(
            rows,
            caller=caller,
            unit_override=unit_override,
            session=session,
            profile=profile,
            result=result,
        )
        touched = _touched_units(planned)
        directory = get_unit_directory()

        def claims_legacy(unit: UnitRef) -> bool:
            return directory.claims_legacy_name(unit, session)

        with get_unit_locks().hold(_lock_keys(touched)):
            index = CandidateIndex.build(
                session,
                units=touched.values(),
                external_ids=[item.draft.external_id for item in planned if item.draft.has_real_external_id],
                claims_legacy=claims_legacy,
            )
            seen = SeenSet()
            for item in planned:
                match = index.resolve(item.draft, item.unit)
                confirmed = SeenSet.key_for(match) if match is not None else None
                try:
                    outcome = upsert_staff_member(
                        session,
                        item.draft,
                        match=match,
                        caller=caller,
                        unit=item.unit,
                        seen=seen,
                    )
                except (Forbidden, StoreError) as exc:
                    if isinstance(exc, StoreError) and confirmed is not None:
                        # The person is still on the roster; the sweep must not drop them
                        seen.mark_key(confirmed)
                    result.failed_count += 1
                    result.errors.append(describe_row_error(item.draft.row_number, item.draft.name, exc))
                    record_import_rows("forbidden" if isinstance(exc, Forbidden) else "store_error")
                    continue
                index.add(outcome.record)
                if outcome.action == "created":
                    result.created_count += 1
                else:
                    result.updated_count += 1

            if full_sync:
                sync = deactivate_unseen_staff(session, touched.values(), seen, claims_legacy=claims_legacy)
                result.deactivated_count = sync.deactivated
                result.deactivation_failures = sync.failures
                result.errors.extend(sync.errors)
    except Exception:
        _finish_run(session, run, result, ImportRunStatus.FAILED)
        record_import_batch(status="failed", duration_seconds=time.perf_counter() - started)
        raise

    _finish_run(session, run, result, result.status)
    record_import_rows("created", result.created_count)
    record_import_rows("updated", result.updated_count)
    record_import_rows("skipped", result.skipped_count)
    record_import_batch(
        status=result.status.value,
        duration_seconds=time.perf_counter() - started,
        deactivated=result.deactivated_count,
    )

    if has_app_context():
        current_app.logger.info(
            "Staff import run %s by %s: rows=%s created=%s updated=%s skipped=%s failed=%s deactivated=%s",
            result.run_id,
            caller.username,
            len(rows),
            result.created_count,
            result.updated_count,
            result.skipped_count,
            result.failed_count,
            result.deactivated_count,
        )
    return result


def import_staff(
    rows: Iterable[Any],
    *,
    caller_token: str | None,
    full_sync: bool = False,
    unit_override: str | None = None,
    session: Session | None = None,
) -> ImportResult:
    """
    Resolve ``caller_token`` and import ``rows``.

    Raises ``Unauthenticated`` before anything is written when the token does
    not belong to an active user.
    """

    caller = resolve_caller(caller_token)
    return run_staff_import(
        rows,
        caller=caller,
        full_sync=full_sync,
        unit_override=unit_override,
        session=session,
    )
