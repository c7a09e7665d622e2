"""
Name-to-unit resolution cache and per-unit import locks.

Both live in the importer state stored on ``app.extensions``, so every
request and CLI command of one application shares a single cache and a
single lock registry.
"""

from __future__ import annotations

import threading
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Mapping

from flask import Flask, current_app, has_app_context
from sqlalchemy.orm import Session

from roster_app.models import Organization, db
from roster_app.utils.units import ResolvedUnit, UnitRef, UnresolvedUnit, normalize_key


@dataclass(frozen=True)
class UnitDirectorySnapshot:
    """Unit lookup table together with the moment it stops being trusted."""

    by_key: Mapping[str, ResolvedUnit]
    expires_at: float
    # Normalized names carried by more than one active organization
    shared_names: frozenset[str] = frozenset()

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class UnitDirectory:
    """
    Resolve free-text unit names to known organizations.

    Active organizations are indexed by normalized name and by normalized
    external code. The table is reloaded once ``ttl_seconds`` have passed, or
    immediately after ``invalidate()``; the administrative flow that edits
    organizations is expected to call it.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: UnitDirectorySnapshot | None = None
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    def _load(self, session: Session) -> UnitDirectorySnapshot:
        by_key: dict[str, ResolvedUnit] = {}
        name_counts: dict[str, int] = {}
        organizations = (
            session.query(Organization).filter(Organization.is_active.is_(True)).order_by(Organization.id).all()
        )
        for organization in organizations:
            unit = ResolvedUnit(organization_id=organization.id, name=organization.name)
            name_key = normalize_key(organization.name)
            name_counts[name_key] = name_counts.get(name_key, 0) + 1
            by_key.setdefault(name_key, unit)
            if organization.external_code:
                by_key.setdefault(normalize_key(organization.external_code), unit)
        if has_app_context():
            current_app.logger.debug("Unit directory loaded %s organizations", len(organizations))
        shared = frozenset(key for key, count in name_counts.items() if count > 1)
        return UnitDirectorySnapshot(by_key=by_key, expires_at=self._clock() + self.ttl_seconds, shared_names=shared)

    def snapshot(self, session: Session | None = None) -> UnitDirectorySnapshot:
        with self._lock:
            current = self._snapshot
            if current is None or current.is_expired(self._clock()):
                current = self._load(session or db.session)
                self._snapshot = current
            return current

    def lookup(self, name: str, session: Session | None = None) -> UnitRef:
        """Return the organization matching ``name``, else an unresolved reference."""
        cleaned = (name or "").strip()
        resolved = self.snapshot(session).by_key.get(normalize_key(cleaned))
        if resolved is not None:
            return resolved
        return UnresolvedUnit(name=cleaned)

    def claims_legacy_name(self, unit: UnitRef, session: Session | None = None) -> bool:
        """
        Whether unresolved records named like ``unit`` belong to it.

        Only a resolved unit whose name no other active organization shares
        can claim them; otherwise the legacy name is ambiguous and left alone.
        """
        if not isinstance(unit, ResolvedUnit):
            return False
        return normalize_key(unit.name) not in self.snapshot(session).shared_names


@dataclass
class UnitLockRegistry:
    """One in-process lock per unit key, acquired in sorted order."""

    _locks: dict[str, threading.Lock] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def lock_for(self, unit_key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(unit_key)
            if lock is None:
                lock = self._locks[unit_key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, unit_keys: Iterable[str]) -> Iterator[None]:
        with ExitStack() as stack:
            for key in sorted(set(unit_keys)):
                stack.enter_context(self.lock_for(key))
            yield


IMPORTER_EXTENSION_KEY = "staff_importer"


def get_importer_state(app: Flask | None = None) -> dict:
    """Per-app importer state holding the unit directory and unit locks."""
    app = app or current_app._get_current_object()
    state = app.extensions.get(IMPORTER_EXTENSION_KEY)
    if state is None:
        state = app.extensions[IMPORTER_EXTENSION_KEY] = {
            "enabled": False,
            "unit_directory": UnitDirectory(ttl_seconds=float(app.config.get("UNIT_DIRECTORY_TTL_SECONDS", 300))),
            "unit_locks": UnitLockRegistry(),
        }
    return state


def get_unit_directory(app: Flask | None = None) -> UnitDirectory:
    return get_importer_state(app)["unit_directory"]


def get_unit_locks(app: Flask | None = None) -> UnitLockRegistry:
    return get_importer_state(app)["unit_locks"]


def invalidate_unit_directory(app: Flask | None = None) -> None:
    """Drop cached unit names; call after organizations are created or renamed."""
    get_unit_directory(app).invalidate()
