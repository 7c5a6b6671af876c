"""
Tidings Query Planner
---------------------
Turns a free-text question into a QueryFilter: time window, source hint and
keywords.

- A resolved range ("다음주", "this month") becomes the window as-is.
- A resolved point ("after Oct 17", "내일") opens a forward-looking window of
  ``lookahead_days`` (60 by default) starting at that point.
- The source hint comes from the first matching term group.
"""

import logging
from typing import List, Optional, Tuple

from tidings.core.types import QueryFilter, RecordSource
from tidings.retrieval.keywords import (
    MAX_PLANNER_KEYWORDS,
    domain_hints,
    sanitize_keywords,
    split_tokens,
)
from tidings.retrieval.temporal_parser import TimeResolver, get_time_resolver

logger = logging.getLogger("Tidings.Planner")

DEFAULT_LOOKAHEAD_DAYS = 60

# (terms, source); first hit wins
SOURCE_HINTS: List[Tuple[Tuple[str, ...], str]] = [
    (("gmail", "email", "e-mail", "mail", "이메일", "메일"), RecordSource.EMAIL.value),
    (("sms", "text message", "문자", "메시지"), RecordSource.SMS.value),
    (("ocr", "scan", "스캔", "사진"), RecordSource.OCR.value),
    (("push", "notification", "알림"), RecordSource.PUSH.value),
]


def detect_source(text: str) -> Optional[str]:
    lower = text.lower()
    for terms, source in SOURCE_HINTS:
        if any(term in lower for term in terms):
            return source
    return None


class QueryPlanner:
    """Question → QueryFilter using the shared TimeResolver."""

    def __init__(
        self,
        resolver: Optional[TimeResolver] = None,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        max_keywords: int = MAX_PLANNER_KEYWORDS,
    ):
        self.resolver = resolver or get_time_resolver()
        self.lookahead_days = lookahead_days
        self.max_keywords = max_keywords

    def plan(self, question: str, now: Optional[float] = None) -> QueryFilter:
        trimmed = (question or "").strip()
        if not trimmed:
            return QueryFilter()

        start = end = None
        resolution = self.resolver.resolve(trimmed, now=now)
        if resolution is not None:
            start = resolution.timestamp
            if resolution.end_timestamp is not None:
                end = resolution.end_timestamp
            else:
                end = start + self.lookahead_days * 86400.0

        keywords = self.keywords(trimmed)
        source = detect_source(trimmed)
        logger.debug(
            "Planned %r → window=%s..%s source=%s keywords=%s",
            trimmed, start, end, source, keywords,
        )
        return QueryFilter(start=start, end=end, source=source, keywords=keywords)

    def keywords(self, text: str) -> List[str]:
        candidates = domain_hints(text) + sanitize_keywords(split_tokens(text))
        return list(dict.fromkeys(candidates))[: self.max_keywords]
