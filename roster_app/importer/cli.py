"""
CLI commands for staff imports and duplicate maintenance.
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

import click
from flask import current_app
from flask.cli import AppGroup

from roster_app.utils.errors import Forbidden, StoreError, Unauthenticated
from roster_app.utils.importer import is_importer_enabled

from .pipeline.batch import ImportBatchTooLarge, ImportResult, import_staff
from .pipeline.dedupe import DedupeSummary, collapse_duplicate_staff

staff_cli = AppGroup("staff", help="Staff roster import and maintenance commands.")


def get_disabled_staff_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="staff", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Staff commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _ensure_enabled() -> None:
    if not is_importer_enabled(current_app):
        raise click.ClickException("Importer is disabled; enable it via IMPORTER_ENABLED before running.")


def load_rows(path: Path) -> list[Any]:
    """
    Read already-tabular rows from a JSON array or a CSV file with a header.

    A JSON object with a ``rows`` key is accepted as well, matching the HTTP
    request body.
    """
    if path.suffix.lower() == ".csv":
        with path.open(newline="", encoding="utf-8-sig") as handle:
            return [dict(row) for row in csv.DictReader(handle)]

    try:
        with path.open(encoding="utf-8") as handle:
            payload = json.load(handle)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{path} is not valid JSON: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("rows")
    if not isinstance(payload, list):
        raise click.ClickException(f"{path} must contain a JSON array of rows.")
    return payload


def _format_import_summary(result: ImportResult) -> str:
    lines = [
        f"Import run {result.run_id} finished with status {result.status.value}.",
        f"  created            : {result.created_count}",
        f"  updated            : {result.updated_count}",
        f"  skipped            : {result.skipped_count}",
        f"  failed             : {result.failed_count}",
        f"  deactivated        : {result.deactivated_count}",
        f"  deactivation_errors: {result.deactivation_failures}",
    ]
    if result.errors:
        lines.append("  errors:")
        lines.extend(f"    - {message}" for message in result.errors)
    return "\n".join(lines)


def _format_dedupe_summary(summary: DedupeSummary) -> str:
    mode = "dry-run" if summary.dry_run else "applied"
    lines = [
        f"Duplicate collapse ({mode}).",
        f"  scanned            : {summary.scanned}",
        f"  unique_groups      : {summary.unique_groups}",
        f"  duplicates_removed : {summary.duplicates_removed}",
        f"  failures           : {summary.failures}",
    ]
    lines.extend(f"  {line}" for line in summary.report)
    return "\n".join(lines)


@staff_cli.command("import")
@click.argument("file_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--token", envvar="ROSTER_API_TOKEN", help="API token of the importing user.")
@click.option("--full-sync", is_flag=True, help="Deactivate records of the touched units missing from the file.")
@click.option("--unit", "unit_override", help="Unit applied to every row (administrators only).")
@click.option(
    "--summary-format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
def staff_import_command(
    file_path: Path,
    token: str | None,
    full_sync: bool,
    unit_override: str | None,
    summary_format: str,
):
    """Import staff rows from FILE_PATH (JSON array or CSV)."""
    _ensure_enabled()
    rows = load_rows(file_path)

    try:
        result = import_staff(rows, caller_token=token, full_sync=full_sync, unit_override=unit_override)
    except (Unauthenticated, Forbidden, ImportBatchTooLarge, StoreError) as exc:
        raise click.ClickException(str(exc)) from exc

    current_app.logger.info(
        "Staff import executed via CLI",
        extra={
            "staff_import_run_id": result.run_id,
            "staff_import_file": str(file_path),
            "staff_import_full_sync": full_sync,
        },
    )
    if summary_format == "json":
        click.echo(json.dumps(result.as_dict(), indent=2, sort_keys=True))
    else:
        click.echo(_format_import_summary(result))


@staff_cli.command("dedupe")
@click.option(
    "--dry-run/--apply",
    default=True,
    show_default=True,
    help="Report duplicate groups without deleting (default), or delete the losers.",
)
@click.option(
    "--summary-format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
def staff_dedupe_command(dry_run: bool, summary_format: str):
    """Collapse staff records sharing a normalized name and unit."""
    _ensure_enabled()
    summary = collapse_duplicate_staff(dry_run=dry_run)
    if summary_format == "json":
        click.echo(json.dumps(summary.as_dict(), indent=2, sort_keys=True))
    else:
        click.echo(_format_dedupe_summary(summary))
