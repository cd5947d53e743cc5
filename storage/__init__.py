from .schema import (
    DTYPES,
    FLOW_KIND,
    FLOWS,
    KINDS,
    SCORE_COLUMNS,
    FinalResult,
    NoteEntry,
    ProgressSnapshot,
    ReportEntry,
    ResultRow,
)
from .documents import BaseDocumentStore, JsonDocumentStore, MemoryDocumentStore, SessionStore
from .store import (
    init_store,
    validate_records,
    append_results,
    load_all,
    query_trend,
    best_scores,
    export_ndjson,
)

__all__ = [
    "DTYPES",
    "FLOW_KIND",
    "FLOWS",
    "KINDS",
    "SCORE_COLUMNS",
    "FinalResult",
    "NoteEntry",
    "ProgressSnapshot",
    "ReportEntry",
    "ResultRow",
    "BaseDocumentStore",
    "JsonDocumentStore",
    "MemoryDocumentStore",
    "SessionStore",
    "init_store",
    "validate_records",
    "append_results",
    "load_all",
    "query_trend",
    "best_scores",
    "export_ndjson",
]
