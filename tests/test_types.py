"""Tests for tidings.core.types and tidings.core.results."""

import asyncio

import pytest

from tidings.core.results import Failed, Ok, call_external
from tidings.core.types import ContextItem, QueryFilter, Record, make_record_id
from tidings.errors import InvalidQueryError, TidingsError


class TestRecord:
    def test_record_id(self):
        assert make_record_id("email", "m1") == "email:m1"
        generated = make_record_id("push", None)
        assert generated != make_record_id("push", None)
        assert ":" not in generated

    def test_text(self):
        assert Record(source="ocr", title="영수증", body="").text == "영수증"
        assert Record(source="ocr", title="A", body="B").text == "A B"


class TestQueryFilter:
    def test_inverted_window_fails_fast(self):
        with pytest.raises(InvalidQueryError):
            QueryFilter(start=10.0, end=5.0)

    def test_invalid_query_error_is_a_value_error(self):
        assert issubclass(InvalidQueryError, ValueError)
        assert issubclass(InvalidQueryError, TidingsError)

    def test_window_flags(self):
        assert QueryFilter(start=1.0, end=1.0).has_window
        assert not QueryFilter(start=1.0).has_window
        assert QueryFilter().is_empty
        assert not QueryFilter(keywords=["x"]).is_empty


def test_context_item_dump():
    item = ContextItem(id="email:1", source="email", timestamp=1.0, score=0.5, position=1)
    assert item.model_dump()["position"] == 1


class TestCallExternal:
    @pytest.mark.asyncio
    async def test_ok(self):
        async def work():
            return 42

        result = await call_external(work(), timeout=1.0)
        assert isinstance(result, Ok)
        assert result.ok and result.value == 42

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)

        result = await call_external(slow(), timeout=0.01, label="slow")
        assert isinstance(result, Failed)
        assert result.timed_out
        assert result.reason == "timeout"

    @pytest.mark.asyncio
    async def test_exception_becomes_failed(self):
        async def broken():
            raise ConnectionError("refused")

        result = await call_external(broken())
        assert not result.ok
        assert not result.timed_out
        assert result.reason == "refused"
        assert isinstance(result.error, ConnectionError)
