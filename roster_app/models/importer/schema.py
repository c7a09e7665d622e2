"""
SQLAlchemy models for the staff importer ledger.

Every import batch leaves an ``ImportRun`` row with its counts, and every
record removed by the duplicate collapser leaves a ``MergeLog`` row holding a
snapshot of what was deleted.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class ImportRun(BaseModel):
    """Metadata describing a single staff import batch."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True, default="staff")
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.RUNNING,
        index=True,
    )
    full_sync: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    row_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    unit_override: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    triggered_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    triggered_by_user = relationship("User", foreign_keys=[triggered_by_user_id])


class MergeLog(BaseModel):
    """Auditable record of a duplicate removed by the collapser."""

    __tablename__ = "merge_log"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    survivor_id: Mapped[int] = mapped_column(
        ForeignKey("staff_members.id", ondelete="CASCADE"),
        nullable=False,
    )
    # The merged record is deleted, so its id is kept without a foreign key
    merged_staff_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    performed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    snapshot_before: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    survivor = relationship("StaffMember", foreign_keys=[survivor_id])
    performed_by_user = relationship("User", foreign_keys=[performed_by_user_id])

    __table_args__ = (Index("idx_merge_log_survivor", "survivor_id"),)
