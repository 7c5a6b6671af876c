"""
Tidings: personal records ingestion, enrichment and hybrid retrieval
"""

from tidings.core.types import ContextItem, QueryFilter, Record, RecordSource, SyncCursor
from tidings.errors import (
    ConnectorAuthError,
    ConnectorError,
    DuplicateRecordError,
    InvalidQueryError,
    TidingsError,
)
from tidings.version import __version__

__all__ = [
    "__version__",
    "Tidings",
    "TidingsConfig",
    "Record",
    "RecordSource",
    "QueryFilter",
    "ContextItem",
    "SyncCursor",
    "TidingsError",
    "InvalidQueryError",
    "DuplicateRecordError",
    "ConnectorError",
    "ConnectorAuthError",
]


def __getattr__(name):
    if name == "Tidings":
        from tidings.core.engine import Tidings
        return Tidings
    if name == "TidingsConfig":
        from tidings.core.config import TidingsConfig
        return TidingsConfig
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
