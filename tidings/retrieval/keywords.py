"""
Tidings Keyword Extraction
--------------------------
Question → keyword list shared by the query planner and hybrid search.

Date, time and number tokens are removed because the planner already turns
them into a structured time window; keeping them would make lexical search
match every record mentioning "10월" or "19일".
"""

import re
from typing import Iterable, List, Set

# Splits on whitespace and sentence punctuation only, so "e-mail" or "v2.1" survive
KEYWORD_SPLIT = re.compile(r"[\s,.?!:;\"'()\[\]{}]+")

STOPWORDS: Set[str] = {
    "the", "is", "are", "and", "or", "a", "an", "what", "when", "where", "who", "how",
    "please", "tell", "show", "about", "me", "of", "to", "for", "in", "on", "at",
    "any", "my", "do", "i", "have", "there",
    "있어", "있니", "있나요", "있습니까", "좀", "해줘", "해줘요",
    "최근", "문의", "알려줘", "줘",
}

DATE_TIME_REGEXES = [
    re.compile(r"\b\d{1,2}\s*(월|일|시|분)\b"),
    re.compile(r"\b\d{4}\s*년?\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}\b"),
]

# Substring denylist (Korean) and whole-token denylist (English)
DATE_TIME_WORDS = (
    "이후", "이전", "오늘", "내일", "모레", "이번주", "다음주", "이번달", "다음달", "지난달",
    "월", "일", "시", "분",
)
DATE_TIME_TOKENS: Set[str] = {
    "today", "tomorrow", "yesterday", "next", "last", "this", "week", "weeks",
    "month", "months", "year", "after", "before", "since", "until",
    "jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
    "january", "february", "march", "april", "june", "july", "august", "september",
    "october", "november", "december",
}

DOMAIN_HINTS = ("gmail", "github", "google", "steam", "openai")

MAX_PLANNER_KEYWORDS = 8
MAX_SEARCH_KEYWORDS = 10


def is_date_time_token(token: str) -> bool:
    if token.isdigit():
        return True
    if token in DATE_TIME_TOKENS:
        return True
    if any(word in token for word in DATE_TIME_WORDS):
        return True
    return any(pattern.search(token) for pattern in DATE_TIME_REGEXES)


def sanitize_keywords(candidates: Iterable[str]) -> List[str]:
    """Drop blanks and date/time/number tokens, keeping order."""
    return [t for t in candidates if t and t.strip() and not is_date_time_token(t)]


def split_tokens(text: str) -> List[str]:
    tokens = (t.strip() for t in KEYWORD_SPLIT.split(text.lower()))
    return [t for t in tokens if len(t) >= 2 and t not in STOPWORDS]


def domain_hints(text: str) -> List[str]:
    lower = text.lower()
    return [hint for hint in DOMAIN_HINTS if hint in lower]


def extract_keywords(text: str, limit: int = MAX_SEARCH_KEYWORDS) -> List[str]:
    """Generic keywords: tokenized, stop-word and date filtered, deduplicated."""
    return list(dict.fromkeys(sanitize_keywords(split_tokens(text))))[:limit]


def build_match_expression(keywords: Iterable[str]) -> str:
    """``["a", "b"]`` → ``"a*" OR "b*"``; quotes inside keywords are blanked."""
    terms = []
    for keyword in sanitize_keywords(keywords):
        cleaned = keyword.replace('"', " ").replace("'", " ").strip()
        if cleaned:
            terms.append(f'"{cleaned}*"')
    return " OR ".join(terms)
