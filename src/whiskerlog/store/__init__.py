"""SQLite command store with a full-text shadow index."""

from .aggregates import AGGREGATE_KINDS
from .store import BatchResult, CommandFilter, CommandStore, build_fts_query

__all__ = [
    "AGGREGATE_KINDS",
    "BatchResult",
    "CommandFilter",
    "CommandStore",
    "build_fts_query",
]
