"""
Insert or patch a single staff record from a normalized draft.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roster_app.models import StaffMember
from roster_app.models.base import utcnow
from roster_app.utils.errors import StoreError
from roster_app.utils.permissions import CallerIdentity, ensure_can_write
from roster_app.utils.units import ResolvedUnit, UnitRef, same_unit

from .normalize import StaffDraft

if TYPE_CHECKING:
    from .full_sync import SeenSet


@dataclass(frozen=True)
class UpsertOutcome:
    """Result of writing one draft."""

    action: Literal["created", "updated"]
    record: StaffMember
    changed_fields: tuple[str, ...] = ()
    reactivated: bool = False


def _apply_attributes(record: StaffMember, draft: StaffDraft) -> list[str]:
    changed: list[str] = []
    for field_name, value in draft.attributes.items():
        if getattr(record, field_name) != value:
            setattr(record, field_name, value)
            changed.append(field_name)
    return changed


def _patch(record: StaffMember, draft: StaffDraft, caller: CallerIdentity, unit: UnitRef | None) -> list[str]:
    changed: list[str] = []
    if record.name != draft.name:
        record.name = draft.name
        changed.append("name")

    # A stored real identifier is never replaced by a placeholder
    if draft.has_real_external_id and record.external_id != draft.external_id:
        record.external_id = draft.external_id
        changed.append("external_id")

    if unit is not None:
        if not same_unit(unit, record.unit_ref):
            if caller.is_administrator:
                record.assign_unit(unit)
                changed.append("unit")
        elif isinstance(unit, ResolvedUnit) and (
            record.organization_id != unit.organization_id or record.unit_name != unit.name
        ):
            # Legacy free-text unit now known to the directory, or a renamed organization
            record.assign_unit(unit)
            changed.append("unit")

    changed.extend(_apply_attributes(record, draft))
    return changed


def upsert_staff_member(
    session: Session,
    draft: StaffDraft,
    *,
    match: StaffMember | None,
    caller: CallerIdentity,
    unit: UnitRef,
    seen: "SeenSet | None" = None,
    now: datetime | None = None,
) -> UpsertOutcome:
    """
    Write ``draft`` and commit it as one unit of work.

    With no ``match`` a new active record is inserted under ``unit``.
    Otherwise the matched record is patched with every attribute the draft
    carries, reactivated and flagged for decree re-review. Raises
    ``Forbidden`` when an operator targets a record of another unit and
    ``StoreError`` when the commit fails; the session is rolled back then.
    """

    now = now or utcnow()
    if match is not None:
        ensure_can_write(caller, match)

    try:
        if match is None:
            record = StaffMember(
                external_id=draft.external_id,
                name=draft.name,
                is_active=True,
                is_generated=False,
                created_at=now,
                updated_at=now,
            )
            record.assign_unit(unit)
            _apply_attributes(record, draft)
            session.add(record)
            outcome = UpsertOutcome(
                action="created",
                record=record,
                changed_fields=("external_id", "name", "unit", *draft.attributes.keys()),
            )
        else:
            record = match
            changed = _patch(record, draft, caller, unit)
            reactivated = not record.is_active
            if reactivated:
                changed.append("is_active")
            record.is_active = True
            record.is_generated = False
            record.touch(now)
            outcome = UpsertOutcome(
                action="updated",
                record=record,
                changed_fields=tuple(changed),
                reactivated=reactivated,
            )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreError(f"could not save staff record ({exc.__class__.__name__})") from exc

    if seen is not None:
        seen.mark(record)
    return outcome
