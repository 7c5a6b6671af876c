"""Tests for tidings.core.engine — end-to-end ingest, plan and search."""

from datetime import datetime
from zoneinfo import ZoneInfo

import numpy as np
import pytest
import pytest_asyncio

from tidings.core.config import (
    ClassifierConfig,
    CursorConfig,
    StoreConfig,
    TidingsConfig,
    VectorConfig,
)
from tidings.core.engine import Tidings
from tidings.errors import InvalidQueryError
from tidings.ingestion.connectors import SourceConnector
from tidings.ingestion.gmail import GmailConnector
from tidings.ingestion.models import IngestStatus, RawMessage
from tidings.retrieval.embedding import HashEmbedder
from tidings.store.cursor_store import CursorStore

KST = ZoneInfo("Asia/Seoul")


def ts(*args) -> float:
    return datetime(*args, tzinfo=KST).timestamp()


NOW = ts(2025, 10, 15, 12, 0)


class _ListConnector(SourceConnector):
    source = "sms"

    def __init__(self, messages):
        self.messages = messages

    async def list_since(self, cursor):
        return list(self.messages)

    async def fetch_detail(self, external_id, full=True):
        return RawMessage(body=self.messages[external_id], external_id=external_id, timestamp=NOW)

    def sort_key(self, external_id):
        return int(external_id)


@pytest.fixture
def config(tmp_path):
    return TidingsConfig(
        data_dir=str(tmp_path),
        store=StoreConfig(path=str(tmp_path / "records.db")),
        vector=VectorConfig(path=":memory:"),
        cursor=CursorConfig(path=str(tmp_path / "sync_state.json")),
        classifier=ClassifierConfig(enabled=False),
    )


@pytest_asyncio.fixture
async def engine(config):
    t = Tidings(config, cursor_store=CursorStore())
    await t.initialize()
    yield t
    await t.shutdown()


@pytest.mark.asyncio
async def test_operations_require_initialize(config):
    t = Tidings(config)
    with pytest.raises(RuntimeError, match="not initialized"):
        await t.search("회의")
    with pytest.raises(RuntimeError):
        t.plan_query("회의")


@pytest.mark.asyncio
async def test_next_week_question_finds_meeting(engine):
    await engine.ingest("push", RawMessage(title="회의", external_id="p1", timestamp=ts(2025, 10, 21, 10, 0)), now=NOW)
    await engine.ingest("push", RawMessage(title="회의", external_id="p2", timestamp=ts(2025, 8, 1, 10, 0)), now=NOW)

    results = await engine.search("다음주 회의", now=NOW)

    assert [item.id for item in results] == ["push:p1", "push:p2"]
    assert results[0].position == 1
    assert results[0].score > results[1].score
    assert results[0].source == "push"


@pytest.mark.asyncio
async def test_search_uses_default_limit_and_rejects_bad_limit(engine, config):
    for i in range(7):
        await engine.ingest("sms", RawMessage(title=f"배송 알림 {i}", external_id=str(i), timestamp=NOW - i), now=NOW)
    results = await engine.search("배송", now=NOW)
    assert len(results) == config.search.default_limit
    with pytest.raises(InvalidQueryError):
        await engine.search("배송", limit=0, now=NOW)


@pytest.mark.asyncio
async def test_plan_query(engine):
    query_filter = engine.plan_query("다음주 회의", now=NOW)
    assert query_filter.start == ts(2025, 10, 20, 0, 0)
    assert query_filter.end == ts(2025, 10, 26, 23, 59, 59)
    assert "회의" in query_filter.keywords
    assert engine.plan_query("   ").is_empty


@pytest.mark.asyncio
async def test_ingest_duplicate_and_stats(engine):
    first = await engine.ingest("email", RawMessage(title="Invoice", body="due soon", external_id="m1"), now=NOW)
    second = await engine.ingest("email", RawMessage(title="Invoice", body="due soon", external_id="m1"), now=NOW)
    assert first.status is IngestStatus.NEW
    assert first.kind == "note"
    assert second.status is IngestStatus.DUPLICATE

    stats = await engine.stats()
    assert stats["records"] == 1
    assert stats["by_source"] == {"email": 1, "ocr": 0, "push": 0, "sms": 0}
    assert stats["notes"] == 1
    assert stats["events"] == 0
    assert stats["cached_embeddings"] == 0
    assert stats["classifier"] is False

    await engine.search("invoice", now=NOW)
    assert (await engine.stats())["cached_embeddings"] == 1


@pytest.mark.asyncio
async def test_sync_and_reset(engine):
    connector = _ListConnector({"1": "택배 도착", "2": "인증번호 1234"})
    report = await engine.sync(connector)
    assert report.ok
    assert report.new_count == 2

    again = await engine.sync(connector)
    assert (again.new_count, again.duplicate_count) == (0, 2)

    await engine.reset_sync("sms")
    full = await engine.sync(connector, full=True)
    assert full.duplicate_count == 2


@pytest.mark.asyncio
async def test_gmail_connector_uses_config(engine):
    engine.config.gmail.access_token = "from-config"
    connector = engine.gmail_connector()
    assert isinstance(connector, GmailConnector)
    assert connector.access_token == "from-config"
    assert engine.gmail_connector(access_token="explicit").access_token == "explicit"
    await connector.aclose()


@pytest.mark.asyncio
async def test_text_update_refreshes_cached_embedding(engine):
    await engine.ingest("push", RawMessage(title="Dentist appointment", external_id="d1", timestamp=NOW), now=NOW)
    await engine.search("dentist", now=NOW)
    assert "push:d1" in engine._cache.get(["push:d1"])

    assert await engine.update_record("push:d1", title="Quarterly budget review")
    assert engine._cache.get(["push:d1"]) == {}

    results = await engine.search("budget", now=NOW)
    assert results[0].id == "push:d1"
    cached = engine._cache.get(["push:d1"])["push:d1"]
    fresh = HashEmbedder(engine.config.vector.dimensions).embed("Quarterly budget review")
    assert np.allclose(cached, fresh, atol=1e-6)


@pytest.mark.asyncio
async def test_non_text_update_keeps_cached_embedding(engine):
    await engine.ingest("push", RawMessage(title="Dentist appointment", external_id="d1", timestamp=NOW), now=NOW)
    await engine.search("dentist", now=NOW)
    assert await engine.update_record("push:d1", confidence=0.9)
    assert "push:d1" in engine._cache.get(["push:d1"])


@pytest.mark.asyncio
async def test_delete_drops_cached_embedding(engine):
    await engine.ingest("sms", RawMessage(title="택배 도착", external_id="s1", timestamp=NOW), now=NOW)
    await engine.search("택배", now=NOW)
    assert (await engine.stats())["cached_embeddings"] == 1

    assert await engine.delete_record("sms:s1")
    assert not await engine.delete_record("sms:s1")
    stats = await engine.stats()
    assert stats["records"] == 0
    assert stats["cached_embeddings"] == 0
    assert await engine.search("택배", now=NOW) == []
