"""
Mark-and-sweep deactivation for full-roster imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roster_app.models import StaffMember
from roster_app.models.base import utcnow
from roster_app.utils.units import ResolvedUnit, UnitRef, normalize_key, unit_display_name, unit_identity

SeenKey = tuple[str, str]


class SeenSet:
    """Identifiers confirmed during a batch, grouped by unit identity."""

    def __init__(self) -> None:
        self._keys: set[SeenKey] = set()

    @staticmethod
    def key_for(record: StaffMember) -> SeenKey:
        return (record.unit_identity, record.external_id)

    def mark(self, record: StaffMember) -> None:
        self._keys.add(self.key_for(record))

    def mark_key(self, key: SeenKey) -> None:
        self._keys.add(key)

    def __contains__(self, record: StaffMember) -> bool:
        return self.key_for(record) in self._keys

    def for_unit(self, unit: UnitRef) -> frozenset[str]:
        identity = unit_identity(unit)
        return frozenset(external_id for key, external_id in self._keys if key == identity)


@dataclass
class FullSyncSummary:
    deactivated: int = 0
    failures: int = 0
    errors: list[str] = field(default_factory=list)


def deactivate_unseen_staff(
    session: Session,
    units: Iterable[UnitRef],
    seen: SeenSet,
    *,
    claims_legacy: Callable[[UnitRef], bool] | None = None,
) -> FullSyncSummary:
    """
    Deactivate every active record of ``units`` the batch did not confirm.

    Only the given units are swept, matched by organization id for resolved
    units. Unresolved records named like a resolved unit are swept with it
    only when ``claims_legacy`` allows (by default it always does). Each
    deactivation commits on its own; a failing record is rolled back,
    counted and the sweep moves on.
    """

    claims = claims_legacy or (lambda unit: isinstance(unit, ResolvedUnit))
    summary = FullSyncSummary()
    swept: set[str] = set()
    for unit in units:
        identity = unit_identity(unit)
        if not normalize_key(unit_display_name(unit)) and not isinstance(unit, ResolvedUnit):
            continue
        if identity in swept:
            continue
        swept.add(identity)

        include_legacy = isinstance(unit, ResolvedUnit) and claims(unit)
        candidates = (
            session.query(StaffMember)
            .filter(StaffMember.unit_clause(unit, include_legacy=include_legacy))
            .filter(StaffMember.is_active.is_(True))
            .order_by(StaffMember.id)
            .all()
        )
        stale = [record for record in candidates if record not in seen]

        for record in stale:
            record_id, record_name = record.id, record.name
            try:
                record.is_active = False
                record.touch(utcnow())
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                summary.failures += 1
                summary.errors.append(
                    f"Full sync: could not deactivate '{record_name}' (#{record_id}) "
                    f"in {unit_display_name(unit)} ({exc.__class__.__name__})"
                )
                continue
            summary.deactivated += 1

        if has_app_context():
            current_app.logger.info(
                "Full sync for unit %s: %s active, %s confirmed, %s stale",
                unit_display_name(unit),
                len(candidates),
                len(candidates) - len(stale),
                len(stale),
            )
    return summary
