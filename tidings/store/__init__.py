# Lazy import: EmbeddingCache needs qdrant_client
from tidings.store.cursor_store import CursorStore, JsonCursorStore
from tidings.store.record_store import RecordStore

__all__ = ["RecordStore", "CursorStore", "JsonCursorStore", "EmbeddingCache"]


def __getattr__(name):
    if name == "EmbeddingCache":
        from tidings.store.vector_store import EmbeddingCache
        return EmbeddingCache
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
