"""
Tidings Engine
--------------
Main orchestrator. Wires the record store, embedding cache, temporal
resolver, enrichment, AI classification, sync cursors, query planning and
hybrid search into the operations callers use:

    ingest(source, raw)      → IngestOutcome
    search(question, limit)  → [ContextItem]
    plan_query(question)     → QueryFilter
    sync(connector)          → SyncReport
    reset_sync(source)
    update_record(id, ...) / delete_record(id)
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from tidings.core.config import TidingsConfig
from tidings.core.types import ContextItem, QueryFilter
from tidings.extraction.enrichment import EnrichmentEngine
from tidings.extraction.instructor_classifier import Classifier, InstructorClassifier
from tidings.extraction.router import ClassificationRouter
from tidings.ingestion.connectors import SourceConnector
from tidings.ingestion.coordinator import IngestionCoordinator
from tidings.ingestion.gmail import GmailConnector
from tidings.ingestion.models import IngestOutcome, RawMessage, SyncReport
from tidings.retrieval.embedding import HashEmbedder
from tidings.retrieval.hybrid import HybridSearchEngine
from tidings.retrieval.planner import QueryPlanner
from tidings.retrieval.temporal_parser import TimeResolver
from tidings.store.cursor_store import CursorStore, JsonCursorStore
from tidings.store.record_store import RecordStore
from tidings.store.vector_store import EmbeddingCache

logger = logging.getLogger("Tidings.Engine")


class Tidings:
    """
    Async facade over the ingestion and retrieval pipeline.

    Usage:
        engine = Tidings(TidingsConfig.from_env())
        await engine.initialize()
        await engine.ingest("push", RawMessage(title="...", body="..."))
        hits = await engine.search("다음주 회의")
        await engine.shutdown()
    """

    def __init__(
        self,
        config: Optional[TidingsConfig] = None,
        classifier: Optional[Classifier] = None,
        cursor_store: Optional[CursorStore] = None,
    ):
        """
        Args:
            config: Configuration; defaults to ``TidingsConfig.from_env()``.
            classifier: Injected AI classifier; otherwise built from ``config.classifier``.
            cursor_store: Injected cursor store; otherwise a JSON file at ``config.cursor.path``.
        """
        self.config = config or TidingsConfig.from_env()
        self._classifier = classifier
        self._cursor_store = cursor_store
        self._initialized = False

        self._store: Optional[RecordStore] = None
        self._cache: Optional[EmbeddingCache] = None
        self._resolver: Optional[TimeResolver] = None
        self._planner: Optional[QueryPlanner] = None
        self._search: Optional[HybridSearchEngine] = None
        self._coordinator: Optional[IngestionCoordinator] = None

    async def initialize(self) -> None:
        """Initialize all subsystems. Must be called before any operations."""
        if self._initialized:
            return

        logger.info("Initializing Tidings engine...")
        t0 = time.time()
        self.config.ensure_directories()

        self._store = RecordStore(self.config.store.path)
        self._cache = EmbeddingCache(
            data_path=self.config.vector.path,
            collection_name=self.config.vector.collection,
            embedding_dims=self.config.vector.dimensions,
        )
        self._resolver = TimeResolver(timezone=self.config.timezone)

        if self._classifier is None and self.config.classifier.enabled:
            self._classifier = self._build_classifier()
        if self._classifier is None:
            logger.info("AI classifier disabled; records will be stored as notes")

        router = ClassificationRouter(
            self._store,
            self._classifier,
            resolver=self._resolver,
            timeout=self.config.classifier.timeout_seconds,
        )
        if self._cursor_store is None:
            self._cursor_store = JsonCursorStore(self.config.cursor.path)

        self._coordinator = IngestionCoordinator(
            store=self._store,
            enrichment=EnrichmentEngine(resolver=self._resolver),
            router=router,
            cursor_store=self._cursor_store,
        )
        self._planner = QueryPlanner(
            resolver=self._resolver,
            lookahead_days=self.config.search.lookahead_days,
        )
        self._search = HybridSearchEngine(
            self._store,
            self._cache,
            embedder=HashEmbedder(self.config.vector.dimensions),
        )

        self._initialized = True
        count = await asyncio.to_thread(self._store.count_records)
        logger.info("Tidings initialized: %d records in %.2fs", count, time.time() - t0)

    def _build_classifier(self) -> Optional[Classifier]:
        cfg = self.config.classifier
        try:
            return InstructorClassifier(
                model=cfg.model,
                base_url=cfg.base_url,
                api_key=cfg.api_key,
                max_retries=cfg.max_retries,
                timeout=cfg.timeout_seconds,
            )
        except Exception as e:
            logger.warning("AI classifier unavailable (%s); falling back to notes", e)
            return None

    async def shutdown(self) -> None:
        """Gracefully shut down all subsystems."""
        if self._store is not None:
            self._store.close()
        if self._cache is not None:
            self._cache.close()
        self._initialized = False
        logger.info("Tidings shut down")

    def _check_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Tidings not initialized. Call await engine.initialize() first.")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ingest(self, source: str, raw: RawMessage, now: Optional[float] = None) -> IngestOutcome:
        self._check_initialized()
        return await self._coordinator.ingest(source, raw, now=now)

    def plan_query(self, question: str, now: Optional[float] = None) -> QueryFilter:
        self._check_initialized()
        return self._planner.plan(question, now=now)

    async def search(
        self,
        question: str,
        limit: Optional[int] = None,
        now: Optional[float] = None,
    ) -> List[ContextItem]:
        """
        Plan ``question`` into a filter and return the ranked context items.

        Raises:
            InvalidQueryError: if ``limit`` is not positive.
        """
        self._check_initialized()
        query_filter = self.plan_query(question, now=now)
        return await self._search.search(
            question,
            query_filter,
            limit=self.config.search.default_limit if limit is None else limit,
        )

    async def sync(
        self,
        connector: SourceConnector,
        full: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        self._check_initialized()
        if full:
            return await self._coordinator.full_sync(connector, stop_event=stop_event)
        return await self._coordinator.sync(connector, stop_event=stop_event)

    async def reset_sync(self, source: str) -> None:
        self._check_initialized()
        await self._coordinator.reset_sync(source)

    async def update_record(self, record_id: str, **fields) -> bool:
        """
        Update stored record fields.

        A title or body change drops the cached embedding; the next search
        that scores the record embeds the new text and caches it again.
        """
        self._check_initialized()
        updated = await asyncio.to_thread(self._store.update_record, record_id, **fields)
        if updated and {"title", "body"} & fields.keys():
            await asyncio.to_thread(self._cache.delete, record_id)
        return updated

    async def delete_record(self, record_id: str) -> bool:
        """Delete a record and its cached embedding. Derived entities stay."""
        self._check_initialized()
        deleted = await asyncio.to_thread(self._store.delete_record, record_id)
        await asyncio.to_thread(self._cache.delete, record_id)
        return deleted

    def gmail_connector(self, access_token: Optional[str] = None) -> GmailConnector:
        cfg = self.config.gmail
        return GmailConnector(
            access_token=access_token or cfg.access_token,
            base_url=cfg.base_url,
            max_results=cfg.max_results,
            timeout=cfg.timeout_seconds,
        )

    async def stats(self) -> Dict[str, Any]:
        self._check_initialized()
        store = self._store
        by_source = {}
        for source in ("email", "ocr", "push", "sms"):
            by_source[source] = await asyncio.to_thread(store.count_records, source)
        return {
            "records": await asyncio.to_thread(store.count_records),
            "by_source": by_source,
            **await asyncio.to_thread(store.count_entities),
            "cached_embeddings": await asyncio.to_thread(self._cache.count),
            "classifier": self._classifier is not None,
        }
