"""
Tidings Ingestion Coordinator
-----------------------------
Incremental, cursor-based sync of one source connector into the record store.

Per batch:
    list ids since cursor → sort in native order → per id:
        dedup (stored pair / at-or-before watermark) → fetch detail →
        enrich → classify + persist → advance cursor

Each record is isolated: a failed fetch or persist is logged, counted and
skipped. The cursor's ``last_external_id`` advances only after a record is
persisted and is checkpointed immediately, so cancellation leaves the cursor
pointing at the last committed record. ``last_sync_at`` moves to "now" once
per completed batch, whatever the per-record outcomes were.

Batches for the same source are serialized; different sources run concurrently.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from tidings.core.types import Record, SyncCursor, make_record_id
from tidings.errors import ConnectorAuthError, ConnectorError, DuplicateRecordError
from tidings.extraction.enrichment import EnrichmentEngine
from tidings.extraction.router import ClassificationRouter
from tidings.ingestion.connectors import SourceConnector
from tidings.ingestion.models import (
    IngestOutcome,
    IngestStatus,
    RawMessage,
    SyncReport,
    SyncStatus,
)
from tidings.store.cursor_store import CursorStore
from tidings.store.record_store import RecordStore

logger = logging.getLogger("Tidings.Ingestion")

Checkpoint = Callable[[SyncCursor], None]


class IngestionCoordinator:
    def __init__(
        self,
        store: RecordStore,
        enrichment: EnrichmentEngine,
        router: ClassificationRouter,
        cursor_store: CursorStore,
    ):
        self.store = store
        self.enrichment = enrichment
        self.router = router
        self.cursor_store = cursor_store
        self._source_locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, source: str) -> asyncio.Lock:
        lock = self._source_locks.get(source)
        if lock is None:
            lock = self._source_locks[source] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Single message
    # ------------------------------------------------------------------

    async def ingest(self, source: str, raw: RawMessage, now: Optional[float] = None) -> IngestOutcome:
        """
        Enrich, classify and persist one message.

        A stored (source, external_id) pair is reported as DUPLICATE without
        touching the existing record. Any other failure is reported as FAILED.
        """
        external_id = raw.external_id or None
        if external_id and await asyncio.to_thread(self.store.exists, source, external_id):
            logger.debug("Dedup SKIP: %s:%s already stored", source, external_id)
            return IngestOutcome(status=IngestStatus.DUPLICATE, record_id=make_record_id(source, external_id))

        record = Record(
            id=make_record_id(source, external_id),
            source=source,
            external_id=external_id,
            title=(raw.title or "").strip(),
            body=(raw.body or "").strip(),
            created_at=raw.timestamp if raw.timestamp is not None else time.time(),
            metadata=dict(raw.metadata or {}),
        )

        try:
            record = self.enrichment.enrich(record, now=now)
            routed = await self.router.route(record, now=now)
        except DuplicateRecordError:
            logger.debug("Dedup SKIP (write race): %s:%s", source, external_id)
            return IngestOutcome(status=IngestStatus.DUPLICATE, record_id=record.id)
        except Exception as e:
            logger.warning("Ingest failed for %s:%s: %s", source, external_id or "<none>", e)
            return IngestOutcome(status=IngestStatus.FAILED, record_id=record.id, error=str(e))

        return IngestOutcome(
            status=IngestStatus.NEW,
            record_id=record.id,
            kind=routed.classification.kind,
            classifier_failed=routed.classifier_failed,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        connector: SourceConnector,
        cursor: SyncCursor,
        stop_event: Optional[asyncio.Event] = None,
        checkpoint: Optional[Checkpoint] = None,
        now: Optional[float] = None,
    ) -> Tuple[SyncReport, SyncCursor]:
        """
        Run one incremental batch from ``cursor`` and return the report with the new cursor.

        ``checkpoint`` is called with the advanced cursor after every persisted
        record. ``stop_event`` is checked between records.
        """
        source = connector.source
        report = SyncReport(source=source)

        try:
            candidates = await connector.list_since(cursor)
        except ConnectorAuthError as e:
            logger.error("Sync %s unauthorized: %s", source, e)
            return self._finish(report, SyncStatus.UNAUTHORIZED, str(e)), cursor
        except ConnectorError as e:
            logger.error("Sync %s listing failed: %s", source, e)
            return self._finish(report, SyncStatus.NETWORK_ERROR, str(e)), cursor

        watermark = connector.sort_key(cursor.last_external_id) if cursor.last_external_id else None
        ordered = sorted(dict.fromkeys(candidates), key=connector.sort_key)
        logger.info("Sync %s: %d candidate(s) since %s", source, len(ordered), cursor)

        for external_id in ordered:
            if stop_event is not None and stop_event.is_set():
                logger.info("Sync %s cancelled before %s", source, external_id)
                return self._finish(report, SyncStatus.CANCELLED), cursor

            if watermark is not None and connector.sort_key(external_id) <= watermark:
                report.duplicate_count += 1
                continue
            if await asyncio.to_thread(self.store.exists, source, external_id):
                report.duplicate_count += 1
                continue

            try:
                raw = await connector.fetch_detail(external_id, full=True)
            except ConnectorAuthError as e:
                logger.error("Sync %s unauthorized while fetching %s: %s", source, external_id, e)
                return self._finish(report, SyncStatus.UNAUTHORIZED, str(e)), cursor
            except Exception as e:
                logger.warning("Soft failure fetching %s:%s: %s", source, external_id, e)
                report.failed_count += 1
                report.failures.append(external_id)
                continue

            if not raw.external_id:
                raw.external_id = external_id
            outcome = await self.ingest(source, raw, now=now)

            if outcome.status is IngestStatus.FAILED:
                report.failed_count += 1
                report.failures.append(external_id)
                continue
            if outcome.status is IngestStatus.DUPLICATE:
                report.duplicate_count += 1
            else:
                report.new_count += 1

            cursor = cursor.advanced_to(external_id)
            watermark = connector.sort_key(external_id)
            if checkpoint is not None:
                await asyncio.to_thread(checkpoint, cursor)

        # Advances even when every record in the batch failed
        cursor = cursor.synced_at(now if now is not None else time.time())
        if checkpoint is not None:
            await asyncio.to_thread(checkpoint, cursor)
        return self._finish(report, SyncStatus.SUCCESS), cursor

    async def sync(
        self,
        connector: SourceConnector,
        stop_event: Optional[asyncio.Event] = None,
        now: Optional[float] = None,
    ) -> SyncReport:
        """Incremental sync from the persisted cursor. One batch per source at a time."""
        source = connector.source
        async with self._lock_for(source):
            cursor = await asyncio.to_thread(self.cursor_store.load, source)
            return await self._sync_from(connector, cursor, stop_event, now)

    async def full_sync(
        self,
        connector: SourceConnector,
        stop_event: Optional[asyncio.Event] = None,
        now: Optional[float] = None,
    ) -> SyncReport:
        """Clear the cursor and sync from scratch, both under one hold of the source lock."""
        source = connector.source
        async with self._lock_for(source):
            await asyncio.to_thread(self.cursor_store.clear, source)
            return await self._sync_from(connector, SyncCursor(), stop_event, now)

    async def reset_sync(self, source: str) -> None:
        """Clear a source's cursor once any batch running for it has finished."""
        async with self._lock_for(source):
            await asyncio.to_thread(self.cursor_store.clear, source)

    async def _sync_from(
        self,
        connector: SourceConnector,
        cursor: SyncCursor,
        stop_event: Optional[asyncio.Event],
        now: Optional[float],
    ) -> SyncReport:
        # Caller holds the source lock
        source = connector.source
        report, _ = await self.run_batch(
            connector,
            cursor,
            stop_event=stop_event,
            checkpoint=lambda c: self.cursor_store.save(source, c),
            now=now,
        )
        logger.info(
            "Sync %s finished: %s (new=%d duplicate=%d failed=%d)",
            source, report.status.value, report.new_count, report.duplicate_count, report.failed_count,
        )
        return report

    @staticmethod
    def _finish(report: SyncReport, status: SyncStatus, error: str = "") -> SyncReport:
        report.status = status
        report.error = error
        report.finished_at = time.time()
        return report
