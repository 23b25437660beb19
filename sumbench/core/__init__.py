from .exceptions import (
    AssemblyError,
    ConfigurationError,
    DuplicateLabelError,
    ExecutionFailure,
    NotFoundError,
    SumBenchError,
    UnresolvedReferenceError,
)
from .structures import BenchmarkResult, ProvenanceLog
from .types import LABEL_COL, ROW_ID_COL
__all__ = [
    "BenchmarkResult",
    "ProvenanceLog",
    "SumBenchError",
    "ConfigurationError",
    "DuplicateLabelError",
    "NotFoundError",
    "UnresolvedReferenceError",
    "AssemblyError",
    "ExecutionFailure",
    "LABEL_COL",
    "ROW_ID_COL",
]
