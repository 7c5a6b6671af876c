"""
Tidings BM25 Index
------------------
In-memory BM25 keyword search over record title + body.

Besides plain free-text queries the index understands a small match
expression language used by hybrid search::

    "meeting*" OR "deadline*" OR invoice

Quoted terms ending in ``*`` match any indexed term with that prefix; bare
terms match exactly. Terms are OR-combined. A malformed expression raises
``LexicalQueryError`` so callers can decide how to degrade.
"""

import math
import re
import logging
from typing import List, Tuple, Dict, Set
from collections import defaultdict

from tidings.errors import LexicalQueryError

logger = logging.getLogger("Tidings.BM25")

# BM25 tuning constants
K1 = 1.2   # Term frequency saturation
B = 0.75   # Length normalization

STOPWORDS: Set[str] = {
    # English function words common in mail headers and notifications
    "a", "an", "the", "and", "or", "of", "to", "in", "on", "at", "by", "for",
    "from", "with", "about", "is", "are", "was", "be", "it", "this", "that",
    "re", "fw", "fwd", "your", "you", "we", "our", "please",
    # Standalone Korean conjunctions and fillers
    "및", "또는", "그리고", "그럼", "좀", "등",
}

# Unicode-aware: anything that is not a word character, dot, hyphen, @ or slash splits
TOKENIZE_PATTERN = re.compile(r"[^\w.\-/@]+", re.UNICODE)

# One expression term: "quoted*" | "quoted" | bare
_TERM_PATTERN = re.compile(r'\s*(?:"(?P<quoted>[^"]*)"|(?P<bare>[^\s"]+))\s*')


def tokenize(text: str) -> List[str]:
    """Tokenize text into lowercase terms, removing stopwords."""
    tokens = TOKENIZE_PATTERN.split(text.lower())
    tokens = [t.strip(".-/") for t in tokens]
    return [t for t in tokens if t and t not in STOPWORDS and len(t) > 1]


def parse_match_expression(expression: str) -> List[Tuple[str, bool]]:
    """
    Parse ``"a*" OR "b" OR c`` into ``[(term, is_prefix), ...]``.

    Raises:
        LexicalQueryError: on unbalanced quotes, dangling OR, or empty terms.
    """
    if expression.count('"') % 2:
        raise LexicalQueryError(f"unbalanced quotes in match expression: {expression!r}")

    terms: List[Tuple[str, bool]] = []
    expect_term = True
    pos = 0
    while pos < len(expression):
        m = _TERM_PATTERN.match(expression, pos)
        if m is None or m.end() == pos:
            raise LexicalQueryError(f"cannot parse match expression at {pos}: {expression!r}")
        pos = m.end()
        raw = m.group("quoted") if m.group("quoted") is not None else m.group("bare")

        if m.group("bare") == "OR":
            if expect_term:
                raise LexicalQueryError(f"dangling OR in match expression: {expression!r}")
            expect_term = True
            continue

        is_prefix = raw.endswith("*")
        term = raw.rstrip("*").strip().lower()
        if not term:
            raise LexicalQueryError(f"empty term in match expression: {expression!r}")
        terms.append((term, is_prefix))
        expect_term = False

    if terms and expect_term:
        raise LexicalQueryError(f"dangling OR in match expression: {expression!r}")
    return terms


class BM25Index:
    """
    In-memory BM25 inverted index for fast keyword search.

    Sized for a personal record corpus (hundreds to low tens of thousands of
    documents); rebuilt from the record store on startup.
    """

    def __init__(self):
        # Document store: id → token list
        self._docs: Dict[str, List[str]] = {}
        # Inverted index: term → set of doc ids
        self._inverted: Dict[str, Set[str]] = defaultdict(set)
        # Document frequencies: term → count of docs containing it
        self._df: Dict[str, int] = defaultdict(int)
        self._doc_lengths: Dict[str, int] = {}
        self._avg_dl: float = 0.0
        self._n: int = 0

    def add(self, doc_id: str, text: str) -> None:
        """Add or update a document in the index."""
        if doc_id in self._docs:
            self.remove(doc_id)
        self._index(doc_id, tokenize(text))
        self._n += 1
        self._recompute_avg_dl()

    def remove(self, doc_id: str) -> None:
        """Remove a document from the index."""
        if doc_id not in self._docs:
            return

        tokens = self._docs[doc_id]
        for token in set(tokens):
            self._inverted[token].discard(doc_id)
            if not self._inverted[token]:
                del self._inverted[token]
            self._df[token] -= 1
            if self._df[token] <= 0:
                del self._df[token]

        del self._docs[doc_id]
        del self._doc_lengths[doc_id]
        self._n -= 1
        self._recompute_avg_dl()

    def search(self, query: str, limit: int = 20) -> List[Tuple[str, float]]:
        """
        Free-text BM25 search (exact terms).

        Returns:
            List of (doc_id, score) tuples sorted by descending score.
        """
        return self._score([(t, False) for t in tokenize(query)], limit)

    def match(self, expression: str, limit: int = 20) -> List[Tuple[str, float]]:
        """
        Search with an OR match expression (see module docstring).

        Raises:
            LexicalQueryError: if the expression is malformed.
        """
        return self._score(parse_match_expression(expression), limit)

    def clear(self) -> None:
        """Remove all documents from the index."""
        self._docs.clear()
        self._inverted.clear()
        self._df.clear()
        self._doc_lengths.clear()
        self._avg_dl = 0.0
        self._n = 0

    def rebuild(self, documents: Dict[str, str]) -> None:
        """Rebuild the entire index from a dict of {id: text}."""
        self.clear()
        for doc_id, text in documents.items():
            self._index(doc_id, tokenize(text))
            self._n += 1
        self._recompute_avg_dl()
        logger.info("BM25 index rebuilt: %d documents, %d unique terms",
                    self._n, len(self._df))

    @property
    def size(self) -> int:
        """Number of documents in the index."""
        return self._n

    def _index(self, doc_id: str, tokens: List[str]) -> None:
        self._docs[doc_id] = tokens
        self._doc_lengths[doc_id] = len(tokens)
        for token in tokens:
            self._inverted[token].add(doc_id)
        for token in set(tokens):
            self._df[token] += 1

    def _expand(self, term: str, is_prefix: bool) -> List[str]:
        if not is_prefix:
            return [term] if term in self._df else []
        return [t for t in self._df if t.startswith(term)]

    def _score(self, terms: List[Tuple[str, bool]], limit: int) -> List[Tuple[str, float]]:
        if self._n == 0 or not terms:
            return []

        scores: Dict[str, float] = defaultdict(float)
        seen: Set[str] = set()
        for query_term, is_prefix in terms:
            for term in self._expand(query_term, is_prefix):
                if term in seen:
                    continue
                seen.add(term)
                df = self._df[term]
                idf = math.log((self._n - df + 0.5) / (df + 0.5) + 1.0)
                for doc_id in self._inverted.get(term, set()):
                    tf = self._docs[doc_id].count(term)
                    dl = self._doc_lengths[doc_id]
                    numerator = tf * (K1 + 1)
                    denominator = tf + K1 * (1 - B + B * dl / self._avg_dl)
                    scores[doc_id] += idf * numerator / denominator

        ranked = sorted(scores.items(), key=lambda x: x[1], reverse=True)
        return ranked[:limit]

    def _recompute_avg_dl(self) -> None:
        if self._n > 0:
            self._avg_dl = sum(self._doc_lengths.values()) / self._n
        else:
            self._avg_dl = 0.0
