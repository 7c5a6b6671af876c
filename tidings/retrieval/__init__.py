# Lazy import: HybridSearchEngine pulls in qdrant_client through the store
from tidings.retrieval.bm25 import BM25Index
from tidings.retrieval.embedding import HashEmbedder
from tidings.retrieval.temporal_parser import TimeResolver

__all__ = ["BM25Index", "HashEmbedder", "TimeResolver", "QueryPlanner", "HybridSearchEngine"]


def __getattr__(name):
    if name == "QueryPlanner":
        from tidings.retrieval.planner import QueryPlanner
        return QueryPlanner
    if name == "HybridSearchEngine":
        from tidings.retrieval.hybrid import HybridSearchEngine
        return HybridSearchEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
