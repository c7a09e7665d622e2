"""
Staff importer feature package.

Provides conditional blueprint and CLI registration and owns the per-app
importer state (unit directory cache and per-unit import locks).
"""

from __future__ import annotations

from flask import Flask

from roster_app.utils.importer import is_importer_enabled

from .cli import get_disabled_staff_group, staff_cli
from .pipeline.batch import ImportBatchTooLarge, ImportResult, import_staff, run_staff_import
from .pipeline.dedupe import DedupeSummary, collapse_duplicate_staff
from .pipeline.unit_directory import (
    IMPORTER_EXTENSION_KEY,
    get_importer_state,
    get_unit_directory,
    get_unit_locks,
    invalidate_unit_directory,
)
from .views import staff_importer_blueprint

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "ImportBatchTooLarge",
    "ImportResult",
    "DedupeSummary",
    "import_staff",
    "run_staff_import",
    "collapse_duplicate_staff",
    "get_importer_state",
    "get_unit_directory",
    "get_unit_locks",
    "invalidate_unit_directory",
]


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    command_name = staff_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(staff_cli)
    else:
        app.cli.add_command(get_disabled_staff_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount the staff importer blueprint and CLI.

    Records importer state inside ``app.extensions['staff_importer']`` so the
    pipeline, views and CLI share one unit directory and one lock registry.
    """
    enabled = is_importer_enabled(app)
    state = get_importer_state(app)
    state["enabled"] = enabled

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Staff importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    if staff_importer_blueprint.name not in app.blueprints:
        app.register_blueprint(staff_importer_blueprint)
    _set_cli(app, enabled=True)

    app.logger.info(
        "Staff importer enabled (max rows %s, unit cache ttl %ss)",
        app.config.get("STAFF_IMPORT_MAX_ROWS"),
        state["unit_directory"].ttl_seconds,
    )
