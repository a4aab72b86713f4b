from .adapter import (
    CommitResult,
    DiffSummary,
    FileStat,
    HistoryStore,
    LogEntry,
    StoreStatus,
)
from .dulwich_store import DulwichHistoryStore

__all__ = [
    "CommitResult",
    "DiffSummary",
    "DulwichHistoryStore",
    "FileStat",
    "HistoryStore",
    "LogEntry",
    "StoreStatus",
]
