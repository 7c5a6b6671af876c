"""
Tidings Time Resolver
---------------------
Rule-based resolution of date/time expressions in record text and questions.

Handles explicit dates ("2025-10-19 14:30", "10월 19일 오후 3시", "Oct 17",
"10/19"), Korean relative expressions ("다음주 수요일", "이번 달", "3일 후",
"내일", "11월 이후") and a few English ones ("tomorrow", "next week").

Returns a ``Resolution`` (point timestamp, confidence, optional end) or
``None``. Deterministic for a given text and reference time; dates written
without a zone are interpreted in the configured timezone (Asia/Seoul by
default).

Confidence levels:
    0.9  explicit date with an hour
    0.8  explicit date, default time (09:00)
    0.7  relative week / month expressions
    0.65 relative day words
    0.6  "N일 후/전" offsets and English "next week"
"""

from __future__ import annotations

import calendar
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple, List
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Seoul"
DEFAULT_HOUR = 9


@dataclass(frozen=True)
class Resolution:
    """A resolved instant (Unix seconds), optionally the start of a closed range."""

    timestamp: float
    confidence: float
    end_timestamp: Optional[float] = None


_MONTH_NAMES: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_KO_WEEKDAYS = {"월": 0, "화": 1, "수": 2, "목": 3, "금": 4, "토": 5, "일": 6}
_WEEK_OFFSETS = {"다음": 1, "이번": 0, "지난": -1}
_DAY_OFFSETS = {
    "내일": 1, "모레": 2, "오늘": 0, "어제": -1, "그저께": -2,
    "tomorrow": 1, "today": 0, "yesterday": -1,
}

_MONTH_PAT = "|".join(sorted(_MONTH_NAMES.keys(), key=len, reverse=True))

# Ordered list of (pattern, handler_key). Explicit dates first, then relative
# expressions; the first pattern that resolves wins.
_PATTERNS: List[Tuple[re.Pattern, str]] = [
    # 2025-10-19, 2025.10.19 14:30
    (re.compile(
        r"\b(?P<year>\d{4})[./-](?P<month>\d{1,2})[./-](?P<day>\d{1,2})"
        r"(?:\s+(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?)?\b"
    ), "full_date"),

    # 10월 19일, 10월 19일 오후 3시 30분
    (re.compile(
        r"(?P<month>\d{1,2})월\s*(?P<day>\d{1,2})일"
        r"(?:\s*(?P<ampm>오전|오후|AM|PM|am|pm)?\s*(?P<hour>\d{1,2})시(?:\s*(?P<minute>\d{1,2})분)?)?"
    ), "month_day"),

    # Oct 17, October 17th
    (re.compile(
        r"\b(?P<month_name>" + _MONTH_PAT + r")\.?\s+(?P<day>\d{1,2})(?:st|nd|rd|th)?\b",
        re.IGNORECASE,
    ), "month_day"),

    # 10/19, 10-19 14:00
    (re.compile(
        r"\b(?P<month>\d{1,2})[/-](?P<day>\d{1,2})(?:\s+(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?)?\b"
    ), "month_day"),

    # 다음주, 이번 주 수요일
    (re.compile(r"(?P<which>다음|이번|지난)\s*주(?:\s*(?P<weekday>[월화수목금토일])요일?)?"), "week"),

    # 다음달, 지난 달
    (re.compile(r"(?P<which>다음|이번|지난)\s*달"), "month"),

    # 11월 이후, 11월부터
    (re.compile(r"(?P<month>\d{1,2})월\s*(?:이후|부터)"), "since_month"),

    # 내일, 오늘, tomorrow
    (re.compile(r"(?P<word>내일|모레|오늘|어제|그저께)|\b(?P<en_word>tomorrow|today|yesterday)\b", re.IGNORECASE), "day_word"),

    # 3일 후, 5일 전
    (re.compile(r"(?P<n>\d+)\s*일\s*(?P<direction>후|전|뒤|앞)"), "relative_days"),

    (re.compile(r"\bnext\s+week\b", re.IGNORECASE), "next_week"),
]

# Clock time anywhere in the text: "오후 3시", "14:30", "pm 2:00"
_TIME_PATTERN = re.compile(
    r"(?:(?<![A-Za-z])(?P<ampm>오전|오후|AM|PM|am|pm))?\s*(?P<hour>\d{1,2})(?P<marker>[:시]\s*(?P<minute>\d{1,2})?)?"
)


def _start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=0)


def _start_of_week(dt: datetime) -> datetime:
    """Monday 00:00 of the week containing dt."""
    return _start_of_day(dt - timedelta(days=dt.weekday()))


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _adjust_for_meridiem(hour: int, minute: int, ampm: Optional[str], text: str) -> Tuple[int, int]:
    if ampm:
        normalized = ampm.lower()
        is_pm = normalized in ("오후", "pm")
        is_am = normalized in ("오전", "am")
    else:
        # Korean meridiem words may sit apart from the number ("오후에 3시")
        is_pm = "오후" in text
        is_am = "오전" in text
    if is_pm and hour < 12:
        hour += 12
    elif is_am and hour == 12:
        hour = 0
    return max(0, min(23, hour)), max(0, min(59, minute))


def _time_from_text(text: str) -> Optional[Tuple[int, int]]:
    """First clock time in text carrying a meridiem or a ':'/'시' marker."""
    for m in _TIME_PATTERN.finditer(text):
        if not m.group("ampm") and not m.group("marker"):
            continue
        minute = int(m.group("minute")) if m.group("minute") else 0
        return _adjust_for_meridiem(int(m.group("hour")), minute, m.group("ampm"), text)
    return None


class TimeResolver:
    """
    Resolve the first date/time expression found in a piece of text.

    Usage::

        resolver = TimeResolver()
        res = resolver.resolve("프로젝트 마감 10월 19일")
        if res:
            res.timestamp, res.confidence, res.end_timestamp
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self.timezone = timezone
        self.zone = ZoneInfo(timezone)

    def resolve(self, text: str, now: Optional[float] = None) -> Optional[Resolution]:
        """
        Args:
            text: Free text (record title/body or a user question).
            now: Unix timestamp treated as "now". Defaults to ``time.time()``.
        """
        if not text or not text.strip():
            return None
        now_ts = now if now is not None else time.time()
        now_dt = datetime.fromtimestamp(now_ts, tz=self.zone)

        for pattern, handler in _PATTERNS:
            m = pattern.search(text)
            if m is None:
                continue
            try:
                res = getattr(self, f"_handle_{handler}")(m, text, now_dt)
            except (ValueError, OverflowError):
                # e.g. "2/30" or "13월 1일"
                res = None
            if res is not None:
                return res
        return None

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _clock(self, m: re.Match, text: str) -> Tuple[int, int, bool]:
        """(hour, minute, hour_was_explicit) for a date match."""
        groups = m.groupdict()
        if groups.get("hour"):
            minute = int(groups["minute"]) if groups.get("minute") else 0
            hour, minute = _adjust_for_meridiem(int(groups["hour"]), minute, groups.get("ampm"), text)
            return hour, minute, True
        hour, minute = _time_from_text(text) or (DEFAULT_HOUR, 0)
        return hour, minute, False

    def _at_clock(self, day: datetime, text: str) -> datetime:
        hour, minute = _time_from_text(text) or (DEFAULT_HOUR, 0)
        return day.replace(hour=hour, minute=minute, second=0, microsecond=0)

    @staticmethod
    def _roll_year(now: datetime, month: int) -> int:
        """Months earlier than the current month refer to next year."""
        if not 1 <= month <= 12:
            raise ValueError(f"month out of range: {month}")
        return now.year + 1 if month < now.month else now.year

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_full_date(self, m: re.Match, text: str, now: datetime) -> Resolution:
        hour, minute, explicit = self._clock(m, text)
        dt = datetime(int(m.group("year")), int(m.group("month")), int(m.group("day")),
                      hour, minute, tzinfo=self.zone)
        return Resolution(dt.timestamp(), 0.9 if explicit else 0.8)

    def _handle_month_day(self, m: re.Match, text: str, now: datetime) -> Resolution:
        groups = m.groupdict()
        if groups.get("month_name"):
            month = _MONTH_NAMES[groups["month_name"].lower()]
        else:
            month = int(groups["month"])
        year = self._roll_year(now, month)
        hour, minute, explicit = self._clock(m, text)
        dt = datetime(year, month, int(groups["day"]), hour, minute, tzinfo=self.zone)
        return Resolution(dt.timestamp(), 0.9 if explicit else 0.8)

    def _handle_week(self, m: re.Match, text: str, now: datetime) -> Resolution:
        week_start = _start_of_week(now) + timedelta(weeks=_WEEK_OFFSETS[m.group("which")])
        weekday = m.group("weekday")
        if not weekday:
            week_end = _end_of_day(week_start + timedelta(days=6))
            return Resolution(week_start.timestamp(), 0.7, end_timestamp=week_end.timestamp())
        target = week_start + timedelta(days=_KO_WEEKDAYS[weekday])
        return Resolution(self._at_clock(target, text).timestamp(), 0.7)

    def _handle_month(self, m: re.Match, text: str, now: datetime) -> Resolution:
        target = _add_months(now, _WEEK_OFFSETS[m.group("which")])
        start = _start_of_day(target.replace(day=1))
        last_day = calendar.monthrange(target.year, target.month)[1]
        end = _end_of_day(target.replace(day=last_day))
        return Resolution(start.timestamp(), 0.7, end_timestamp=end.timestamp())

    def _handle_since_month(self, m: re.Match, text: str, now: datetime) -> Resolution:
        month = int(m.group("month"))
        if not 1 <= month <= 12:
            raise ValueError(f"month out of range: {month}")
        start = _start_of_day(now.replace(month=month, day=1))
        return Resolution(start.timestamp(), 0.7)

    def _handle_day_word(self, m: re.Match, text: str, now: datetime) -> Resolution:
        word = (m.group("word") or m.group("en_word")).lower()
        target = now + timedelta(days=_DAY_OFFSETS[word])
        return Resolution(self._at_clock(target, text).timestamp(), 0.65)

    def _handle_relative_days(self, m: re.Match, text: str, now: datetime) -> Resolution:
        days = int(m.group("n"))
        if m.group("direction") in ("전", "앞"):
            days = -days
        target = now + timedelta(days=days)
        return Resolution(self._at_clock(target, text).timestamp(), 0.6)

    def _handle_next_week(self, m: re.Match, text: str, now: datetime) -> Resolution:
        monday = _start_of_week(now) + timedelta(weeks=1)
        return Resolution(self._at_clock(monday, text).timestamp(), 0.6)


# ---------------------------------------------------------------------------
# Module-level convenience singleton
# ---------------------------------------------------------------------------

_default_resolver: Optional[TimeResolver] = None


def get_time_resolver() -> TimeResolver:
    """Return the shared default-timezone TimeResolver."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = TimeResolver()
    return _default_resolver
