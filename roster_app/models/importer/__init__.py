from .schema import ImportRun, ImportRunStatus, MergeLog

__all__ = ["ImportRun", "ImportRunStatus", "MergeLog"]
