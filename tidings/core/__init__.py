# Lazy import: the engine pulls in qdrant_client and openai
from tidings.core.types import ContextItem, QueryFilter, Record, SyncCursor

__all__ = ["Tidings", "Record", "QueryFilter", "ContextItem", "SyncCursor"]


def __getattr__(name):
    if name == "Tidings":
        from tidings.core.engine import Tidings
        return Tidings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
