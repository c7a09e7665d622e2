"""
Identity resolution for staff drafts against a prefetched snapshot.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from roster_app.models import StaffMember
from roster_app.utils.units import ResolvedUnit, UnitRef, legacy_unit_identity, normalize_key, unit_identity

from .normalize import StaffDraft

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def survivor_rank(record: StaffMember) -> tuple:
    """
    Sort key where a higher value means a better canonical record.

    Real identifier first, then certification, then the most recent update;
    the higher id breaks any remaining tie.
    """

    return (
        record.has_real_external_id,
        bool(record.is_certified),
        _as_utc(record.updated_at),
        record.id or 0,
    )


def _chunked(values: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class CandidateIndex:
    """
    In-memory lookup over existing staff records for one batch.

    Built once from the units and identifiers a batch touches, then kept
    current with ``add`` after every write so later rows in the same batch
    can match records created by earlier rows. Name matches are keyed on the
    unit identity, so same-named organizations never see each other's staff.
    """

    def __init__(
        self,
        records: Iterable[StaffMember] = (),
        *,
        legacy_claims: Iterable[str] | None = None,
    ) -> None:
        self._by_external_id: dict[str, list[StaffMember]] = {}
        self._by_identity: dict[tuple[str, str], list[StaffMember]] = {}
        self._keys: dict[int, tuple[str | None, tuple[str, str]]] = {}
        # Unit identities allowed to match unresolved records by bare name
        self._legacy_claims: frozenset[str] | None = None if legacy_claims is None else frozenset(legacy_claims)
        for record in records:
            self.add(record)

    @classmethod
    def build(
        cls,
        session: Session,
        *,
        units: Iterable[UnitRef],
        external_ids: Iterable[str],
        claims_legacy: Callable[[UnitRef], bool] | None = None,
        chunk_size: int = 500,
    ) -> "CandidateIndex":
        """
        Prefetch the records of ``units`` and every record holding one of
        ``external_ids``.

        ``claims_legacy`` decides whether a resolved unit also owns unresolved
        records stored under its name; by default every resolved unit does.
        """

        units = list(units)
        claims = claims_legacy or (lambda unit: isinstance(unit, ResolvedUnit))
        legacy_claims = {unit_identity(unit) for unit in units if isinstance(unit, ResolvedUnit) and claims(unit)}
        loaded: dict[int, StaffMember] = {}

        unit_clauses = [
            StaffMember.unit_clause(unit, include_legacy=unit_identity(unit) in legacy_claims) for unit in units
        ]
        if unit_clauses:
            for record in session.query(StaffMember).filter(or_(*unit_clauses)).all():
                loaded[record.id] = record

        # Identifier matches are not limited to the touched units
        identifiers = sorted({value for value in external_ids if value})
        for chunk in _chunked(identifiers, chunk_size):
            for record in session.query(StaffMember).filter(StaffMember.external_id.in_(chunk)).all():
                loaded[record.id] = record

        return cls((loaded[key] for key in sorted(loaded)), legacy_claims=legacy_claims)

    def __len__(self) -> int:
        return len(self._keys)

    def _discard(self, record: StaffMember) -> None:
        previous = self._keys.pop(id(record), None)
        if previous is None:
            return
        external_id, identity = previous
        if external_id is not None:
            bucket = self._by_external_id.get(external_id, [])
            if record in bucket:
                bucket.remove(record)
        bucket = self._by_identity.get(identity, [])
        if record in bucket:
            bucket.remove(record)

    def add(self, record: StaffMember) -> None:
        """Index ``record`` under its current identifier and name+unit key."""
        self._discard(record)
        external_id = record.external_id if record.has_real_external_id else None
        identity = (record.name_key or normalize_key(record.name), record.unit_identity)
        if external_id is not None:
            self._by_external_id.setdefault(external_id, []).append(record)
        self._by_identity.setdefault(identity, []).append(record)
        self._keys[id(record)] = (external_id, identity)

    def _unit_identities(self, unit: UnitRef) -> list[str]:
        own = unit_identity(unit)
        identities = [own]
        if isinstance(unit, ResolvedUnit) and (self._legacy_claims is None or own in self._legacy_claims):
            identities.append(legacy_unit_identity(unit.name))
        return identities

    def resolve(self, draft: StaffDraft, unit: UnitRef) -> StaffMember | None:
        """
        Return the stored record ``draft`` refers to, if any.

        An exact real identifier wins outright. Otherwise the normalized name
        must match within the same unit, and a candidate already carrying a
        different real identifier is never taken.
        """

        own = unit_identity(unit)
        if draft.has_real_external_id:
            matches = self._by_external_id.get(draft.external_id)
            if matches:
                return max(
                    matches,
                    key=lambda record: (record.unit_identity == own, record.is_active, survivor_rank(record)),
                )

        name_key = normalize_key(draft.name)
        candidates = [
            record
            for identity in self._unit_identities(unit)
            for record in self._by_identity.get((name_key, identity), ())
            if not (
                draft.has_real_external_id
                and record.has_real_external_id
                and record.external_id != draft.external_id
            )
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda record: (record.is_active, survivor_rank(record)))
