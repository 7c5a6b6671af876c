"""Tests for tidings.retrieval.bm25 — in-memory BM25 and match expressions."""

import pytest

from tidings.errors import LexicalQueryError
from tidings.retrieval.bm25 import BM25Index, parse_match_expression, tokenize


class TestBM25Index:
    @pytest.fixture
    def index(self):
        idx = BM25Index()
        idx.add("r1", "Quarterly planning meeting with design")
        idx.add("r2", "Meetings moved to Thursday")
        idx.add("r3", "Invoice #123 paid")
        idx.add("r4", "팀 회의는 다음주 수요일")
        return idx

    def test_basic_search(self, index):
        doc_ids = [doc_id for doc_id, _ in index.search("meeting")]
        assert doc_ids == ["r1"]

    def test_prefix_match(self, index):
        doc_ids = {doc_id for doc_id, _ in index.match('"meet*"')}
        assert doc_ids == {"r1", "r2"}

    def test_or_expression(self, index):
        doc_ids = {doc_id for doc_id, _ in index.match('"invoice*" OR "회의*"')}
        assert doc_ids == {"r3", "r4"}

    def test_bare_terms_are_exact(self, index):
        assert index.match("meet") == []
        assert [d for d, _ in index.match("invoice")] == ["r3"]

    def test_no_match(self, index):
        assert index.match('"blockchain*"') == []

    def test_limit(self, index):
        assert len(index.match('"meet*" OR "invoice*"', limit=1)) == 1

    def test_add_replaces_existing_document(self, index):
        index.add("r3", "receipt for lunch")
        assert index.match("invoice") == []
        assert index.size == 4

    def test_remove(self, index):
        index.remove("r1")
        index.remove("missing")
        assert {d for d, _ in index.match('"meet*"')} == {"r2"}
        assert index.size == 3

    def test_rebuild_and_clear(self, index):
        index.rebuild({"x": "alpha beta", "y": "beta gamma"})
        assert index.size == 2
        assert {d for d, _ in index.search("beta")} == {"x", "y"}
        index.clear()
        assert index.size == 0
        assert index.search("beta") == []

    def test_empty_index(self):
        assert BM25Index().match('"anything*"') == []


class TestMatchExpression:
    def test_parse(self):
        assert parse_match_expression('"Meeting*" OR invoice') == [("meeting", True), ("invoice", False)]

    def test_empty_expression(self):
        assert parse_match_expression("") == []

    @pytest.mark.parametrize("expression", [
        '"unbalanced*',
        'OR "meeting*"',
        '"meeting*" OR',
        '"*"',
        '""',
    ])
    def test_malformed(self, expression):
        with pytest.raises(LexicalQueryError):
            parse_match_expression(expression)


def test_tokenize_keeps_emails_and_drops_stopwords():
    assert tokenize("Mail from alice@example.com about the launch.") == [
        "mail", "alice@example.com", "launch",
    ]
