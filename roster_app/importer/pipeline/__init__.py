"""
Staff import pipeline: normalize, resolve, upsert, sweep and collapse.
"""

from .batch import ImportBatchTooLarge, ImportResult, import_staff, run_staff_import
from .dedupe import DedupeSummary, collapse_duplicate_staff, group_duplicate_staff
from .full_sync import FullSyncSummary, SeenSet, deactivate_unseen_staff
from .identity import CandidateIndex, survivor_rank
from .normalize import RawRow, StaffDraft, get_active_alias_profile, normalize_row
from .unit_directory import UnitDirectory, UnitDirectorySnapshot, UnitLockRegistry
from .upsert import UpsertOutcome, upsert_staff_member

__all__ = [
    "CandidateIndex",
    "DedupeSummary",
    "FullSyncSummary",
    "ImportBatchTooLarge",
    "ImportResult",
    "RawRow",
    "SeenSet",
    "StaffDraft",
    "UnitDirectory",
    "UnitDirectorySnapshot",
    "UnitLockRegistry",
    "UpsertOutcome",
    "collapse_duplicate_staff",
    "deactivate_unseen_staff",
    "get_active_alias_profile",
    "group_duplicate_staff",
    "import_staff",
    "normalize_row",
    "run_staff_import",
    "survivor_rank",
    "upsert_staff_member",
]
