"""
Tidings Enrichment
------------------
Derives ``due_at`` and ``confidence`` for a record from its text.

Two independent signals:
- the TimeResolver's first date/time expression (timestamp + confidence)
- the strongest matching keyword weight (max, not sum)

Combination:
    both           → min(0.95, resolver + keyword)
    resolver only  → resolver confidence
    keyword only   → max(0.35, keyword + 0.25)
    neither        → prior confidence kept

Enrichment is idempotent: when nothing changes the same object is returned.
"""

import logging
from typing import Dict, Optional

from tidings.core.types import Record
from tidings.retrieval.temporal_parser import TimeResolver, get_time_resolver

logger = logging.getLogger("Tidings.Enrichment")

KEYWORD_WEIGHTS: Dict[str, float] = {
    "회의": 0.35,
    "미팅": 0.35,
    "약속": 0.25,
    "마감": 0.4,
    "제출": 0.25,
    "deadline": 0.45,
    "due": 0.25,
    "reminder": 0.2,
    "call": 0.2,
    "meeting": 0.3,
}

MAX_COMBINED_CONFIDENCE = 0.95
KEYWORD_ONLY_FLOOR = 0.35
KEYWORD_ONLY_BOOST = 0.25


def keyword_score(text: str) -> Optional[float]:
    """Highest weight among keywords contained in text, or None."""
    lower = text.lower()
    matched = [weight for keyword, weight in KEYWORD_WEIGHTS.items() if keyword in lower]
    return max(matched) if matched else None


class EnrichmentEngine:
    def __init__(self, resolver: Optional[TimeResolver] = None):
        self.resolver = resolver or get_time_resolver()

    def enrich(self, record: Record, now: Optional[float] = None) -> Record:
        text = record.text
        if not text:
            return record

        resolution = self.resolver.resolve(text, now=now)
        kw = keyword_score(text)

        if resolution is not None and kw is not None:
            confidence = min(MAX_COMBINED_CONFIDENCE, resolution.confidence + kw)
        elif resolution is not None:
            confidence = resolution.confidence
        elif kw is not None:
            confidence = max(KEYWORD_ONLY_FLOOR, kw + KEYWORD_ONLY_BOOST)
        else:
            confidence = record.confidence

        due_at = resolution.timestamp if resolution is not None else record.due_at

        if due_at == record.due_at and confidence == record.confidence:
            return record
        logger.debug("Enriched %s: due_at=%s confidence=%s", record.id, due_at, confidence)
        return record.model_copy(update={"due_at": due_at, "confidence": confidence})
