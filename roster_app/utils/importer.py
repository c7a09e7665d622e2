"""
Utility helpers for importer feature flag checks.
"""

from __future__ import annotations

from flask import current_app


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when the staff importer feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", False))


def get_import_row_limit(app=None) -> int:
    """Largest batch a single import call accepts."""
    config = _get_config(app)
    return int(config.get("STAFF_IMPORT_MAX_ROWS", 5000))
