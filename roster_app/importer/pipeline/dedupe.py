"""
Collapse near-duplicate staff records left behind by earlier imports.

Records are grouped by normalized name plus unit identity (the organization
for resolved units, the normalized name for legacy free-text units); the
identifier is ignored because duplicates usually came from missing or
inconsistent identifiers in the first place. Each group keeps one canonical
survivor (see ``survivor_rank``) and the rest are deleted, each deletion
leaving a ``MergeLog`` row with a snapshot of the removed record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roster_app.importer.metrics import record_dedupe
from roster_app.models import MergeLog, Organization, StaffMember, db
from roster_app.utils.units import ResolvedUnit, normalize_key, unit_display_name, unit_identity

from .identity import survivor_rank


@dataclass
class DedupeSummary:
    scanned: int = 0
    unique_groups: int = 0
    duplicates_removed: int = 0
    report: list[str] = field(default_factory=list)
    dry_run: bool = True
    failures: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "scanned": self.scanned,
            "unique_groups": self.unique_groups,
            "duplicates_removed": self.duplicates_removed,
            "report": list(self.report),
            "dry_run": self.dry_run,
            "failures": self.failures,
        }


def _describe(record: StaffMember) -> str:
    return f"#{record.id} '{record.name}' [{record.external_id}]"


def _organizations_by_name(
    records: list[StaffMember],
    organizations: Iterable[Organization] | None,
) -> dict[str, set[int]]:
    owners: dict[str, set[int]] = {}
    if organizations is None:
        for record in records:
            if record.organization_id is not None:
                owners.setdefault(record.unit_key, set()).add(record.organization_id)
    else:
        for organization in organizations:
            owners.setdefault(normalize_key(organization.name), set()).add(organization.id)
    return owners


def group_duplicate_staff(
    records: list[StaffMember],
    organizations: Iterable[Organization] | None = None,
) -> dict[tuple[str, str], list[StaffMember]]:
    """
    Group ``records`` by normalized name and unit identity.

    A legacy record joins the group of the organization carrying its unit
    name only when exactly one organization does; organizations are taken
    from the records themselves unless ``organizations`` is given.
    """

    owners = _organizations_by_name(records, organizations)
    groups: dict[tuple[str, str], list[StaffMember]] = {}
    for record in records:
        identity = record.unit_identity
        if record.organization_id is None:
            candidates = owners.get(record.unit_key, set())
            if len(candidates) == 1:
                (owner,) = candidates
                identity = unit_identity(ResolvedUnit(organization_id=owner, name=record.unit_name))
        key = (record.name_key or normalize_key(record.name), identity)
        groups.setdefault(key, []).append(record)
    return groups


def collapse_duplicate_staff(
    *,
    dry_run: bool = True,
    session: Session | None = None,
    performed_by_user_id: int | None = None,
) -> DedupeSummary:
    """
    Scan every staff record and collapse each duplicate group to one survivor.

    With ``dry_run`` the same decisions are reported but nothing is deleted.
    Each group is committed separately; a group that fails is rolled back,
    reported and counted while the scan continues.
    """

    session = session or db.session
    records = session.query(StaffMember).order_by(StaffMember.id).all()
    organizations = session.query(Organization).filter(Organization.is_active.is_(True)).all()
    groups = group_duplicate_staff(records, organizations)
    summary = DedupeSummary(scanned=len(records), unique_groups=len(groups), dry_run=dry_run)

    for members in groups.values():
        if len(members) < 2:
            continue
        ranked = sorted(members, key=survivor_rank, reverse=True)
        survivor, losers = ranked[0], ranked[1:]
        unit_label = unit_display_name(survivor.unit_ref) or "(no unit)"
        prefix = "[dry-run] " if dry_run else ""
        summary.report.append(
            f"{prefix}{unit_label}: keep {_describe(survivor)}, "
            f"remove {', '.join(_describe(loser) for loser in losers)}"
        )
        if dry_run:
            summary.duplicates_removed += len(losers)
            continue

        try:
            # Earlier merges into a loser would cascade away with it
            session.query(MergeLog).filter(MergeLog.survivor_id.in_([loser.id for loser in losers])).update(
                {MergeLog.survivor_id: survivor.id}, synchronize_session="fetch"
            )
            for loser in losers:
                session.add(
                    MergeLog(
                        survivor_id=survivor.id,
                        merged_staff_id=loser.id,
                        performed_by_user_id=performed_by_user_id,
                        reason="duplicate name and unit",
                        snapshot_before=loser.to_dict(),
                    )
                )
                session.delete(loser)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            summary.failures += 1
            summary.report.append(f"failed to remove duplicates of {_describe(survivor)} ({exc.__class__.__name__})")
            continue
        summary.duplicates_removed += len(losers)

    record_dedupe(dry_run=dry_run, removed=summary.duplicates_removed)
    if has_app_context():
        current_app.logger.info(
            "Duplicate collapse %s: scanned=%s groups=%s removed=%s",
            "dry-run" if dry_run else "applied",
            summary.scanned,
            summary.unique_groups,
            summary.duplicates_removed,
        )
    return summary
