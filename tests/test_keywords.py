"""Tests for tidings.retrieval.keywords and tidings.retrieval.planner."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from tidings.core.types import QueryFilter
from tidings.retrieval.keywords import (
    build_match_expression,
    extract_keywords,
    is_date_time_token,
    sanitize_keywords,
)
from tidings.retrieval.planner import QueryPlanner, detect_source
from tidings.retrieval.temporal_parser import TimeResolver

KST = ZoneInfo("Asia/Seoul")


def ts(*args) -> float:
    return datetime(*args, tzinfo=KST).timestamp()


NOW = ts(2025, 10, 15, 12, 0)


class TestKeywords:
    @pytest.mark.parametrize("token", ["10월", "19일", "2025", "10/19", "내일", "다음주", "tomorrow", "oct", "week"])
    def test_date_time_tokens(self, token):
        assert is_date_time_token(token)

    @pytest.mark.parametrize("token", ["회의", "invoice", "github"])
    def test_content_tokens(self, token):
        assert not is_date_time_token(token)

    def test_extract_keywords_filters_stopwords_and_dates(self):
        assert extract_keywords("What is the invoice status for Oct 17?") == ["invoice", "status"]

    def test_extract_keywords_dedupes_and_limits(self):
        text = " ".join(f"word{i}" for i in range(20)) + " word1"
        keywords = extract_keywords(text, limit=5)
        assert keywords == ["word0", "word1", "word2", "word3", "word4"]

    def test_sanitize_keeps_order(self):
        assert sanitize_keywords(["zeta", "", "10월", "alpha"]) == ["zeta", "alpha"]

    def test_build_match_expression(self):
        assert build_match_expression(["meeting", "invoice"]) == '"meeting*" OR "invoice*"'
        assert build_match_expression(['say"hi']) == '"say hi*"'
        assert build_match_expression(["내일"]) == ""
        assert build_match_expression([]) == ""


class TestQueryPlanner:
    @pytest.fixture
    def planner(self):
        return QueryPlanner(resolver=TimeResolver("Asia/Seoul"))

    def test_blank_question_is_empty_filter(self, planner):
        query_filter = planner.plan("   ", now=NOW)
        assert query_filter == QueryFilter()
        assert query_filter.is_empty

    def test_range_expression_becomes_window(self, planner):
        query_filter = planner.plan("다음주 회의 일정", now=NOW)
        assert query_filter.start == ts(2025, 10, 20, 0, 0)
        assert query_filter.end == ts(2025, 10, 26, 23, 59, 59)
        assert "회의" in query_filter.keywords
        assert "다음주" not in query_filter.keywords

    def test_point_expression_opens_lookahead_window(self, planner):
        query_filter = planner.plan("Oct 17 이후 github 알림", now=NOW)
        assert query_filter.start == ts(2025, 10, 17, 9, 0)
        assert query_filter.end == query_filter.start + 60 * 86400
        assert query_filter.source == "push"
        assert query_filter.keywords == ["github", "알림"]

    def test_custom_lookahead(self):
        planner = QueryPlanner(resolver=TimeResolver("Asia/Seoul"), lookahead_days=7)
        query_filter = planner.plan("내일 뭐 있어?", now=NOW)
        assert query_filter.end - query_filter.start == 7 * 86400

    def test_no_time_expression_means_no_window(self, planner):
        query_filter = planner.plan("invoice from acme", now=NOW)
        assert query_filter.start is None and query_filter.end is None
        assert not query_filter.has_window
        assert query_filter.keywords == ["invoice", "from", "acme"]

    def test_domain_hint_leads_keywords(self, planner):
        query_filter = planner.plan("gmail에서 온 보안 경고", now=NOW)
        assert query_filter.keywords[0] == "gmail"
        assert query_filter.source == "email"

    def test_keywords_are_capped(self, planner):
        question = " ".join(f"topic{i}" for i in range(12))
        assert len(planner.plan(question, now=NOW).keywords) == 8

    def test_plan_is_deterministic(self, planner):
        assert planner.plan("다음주 금요일 미팅", now=NOW) == planner.plan("다음주 금요일 미팅", now=NOW)


@pytest.mark.parametrize("text,expected", [
    ("지난주 이메일", "email"),
    ("문자 온 거", "sms"),
    ("스캔한 영수증", "ocr"),
    ("push notification from bank", "push"),
    ("회의록", None),
])
def test_detect_source(text, expected):
    assert detect_source(text) == expected
