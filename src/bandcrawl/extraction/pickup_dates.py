"""
Pickup date resolution for Korean product posts.

Sellers announce pickup in loose prose ("내일 오후 2시 도착", "다음주 화요일
수령", "3월 27일 픽업"). `extract_pickup_date` turns that into an absolute
local timestamp anchored on the post time, and never raises: anything it
cannot read falls back to tomorrow at noon.

Usage:
    from bandcrawl.extraction.pickup_dates import extract_pickup_date

    resolution = extract_pickup_date("내일 오후 2시 도착", "2024-06-18T09:00:00Z")
    resolution.date      # 2024-06-19 14:00 Asia/Seoul
    resolution.keyword   # "도착"
"""
import logging
import re
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Tuple, Union

from bandcrawl.constants import DEFAULT_PICKUP_KEYWORD, PICKUP_KEYWORDS
from bandcrawl.extraction.korean_time import (
    local_timezone,
    parse_iso_datetime,
    parse_korean_datetime,
    to_24_hour,
)
from bandcrawl.models import PickupResolution

logger = logging.getLogger(__name__)

WEEKDAYS = {"월": 0, "화": 1, "수": 2, "목": 3, "금": 4, "토": 5, "일": 6}
PREFIX_OFFSETS = {"오늘": 0, "내일": 1, "모레": 2, "다음주": 7}
# "모레" before "내일" so that "내일모레" reads as the day after tomorrow
RELATIVE_DAYS = (("모레", 2), ("내일", 1), ("오늘", 0))

ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
RELATIVE_WEEKDAY_RE = re.compile(r"(오늘|내일|모레|다음\s*주)\s*([월화수목금토일])(?:요일|(?![가-힣]))")
MONTH_DAY_RE = re.compile(r"(\d{1,2})월\s*(\d{1,2})일")
DAY_ONLY_RE = re.compile(r"(\d{1,2})일")
TIME_RE = re.compile(r"(\d{1,2})\s*시(?!간)(?:\s*(\d{1,2})\s*분|\s*(반))?|(\d{1,2}):(\d{2})")
SENTENCE_SPLIT_RE = re.compile(r"[.。\n!]")

DateInput = Union[datetime, str, None]


def infer_pickup_keyword(text: Optional[str]) -> Optional[str]:
    """First pickup keyword present in text, in priority order."""
    if not text:
        return None
    for keyword in PICKUP_KEYWORDS:
        if keyword in text:
            return keyword
    return None


def resolve_reference(reference: DateInput, tz: tzinfo) -> datetime:
    """Turn a post time (datetime, ISO string or Band text) into a local datetime."""
    if isinstance(reference, datetime):
        if reference.tzinfo is None:
            return reference.replace(tzinfo=tz)
        return reference.astimezone(tz)
    if isinstance(reference, str) and reference.strip():
        parsed = parse_iso_datetime(reference, tz) or parse_korean_datetime(reference, tz=tz)
        if parsed is not None:
            return parsed
        logger.warning(f"Unparseable post time {reference!r}, using current time")
    return datetime.now(tz)


def tomorrow_at_noon(reference: datetime) -> datetime:
    return (reference + timedelta(days=1)).replace(hour=12, minute=0, second=0, microsecond=0)


def apply_clock_time(day: datetime, text: str) -> datetime:
    """Set the time of `day` from "H시[M분]" / "H:MM" in text, or noon if absent."""
    hour, minute = 12, 0
    match = TIME_RE.search(text)
    if match:
        if match.group(1) is not None:
            hour = int(match.group(1))
            minute = 30 if match.group(3) else int(match.group(2) or 0)
        else:
            hour, minute = int(match.group(4)), int(match.group(5))
        meridiem = "오후" if "오후" in text else ("오전" if "오전" in text else None)
        hour = to_24_hour(meridiem, hour)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            hour, minute = 12, 0
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _resolve_day(sentence: str, today: datetime) -> Optional[datetime]:
    """Resolve the calendar day named in one sentence, at midnight."""
    match = RELATIVE_WEEKDAY_RE.search(sentence)
    if match:
        prefix = re.sub(r"\s+", "", match.group(1))
        anchor = today + timedelta(days=PREFIX_OFFSETS[prefix])
        target = WEEKDAYS[match.group(2)]
        return anchor + timedelta(days=(target - anchor.weekday()) % 7)

    for word, offset in RELATIVE_DAYS:
        if word in sentence:
            return today + timedelta(days=offset)

    match = MONTH_DAY_RE.search(sentence)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        candidate = today.replace(month=month, day=day)
        if candidate < today:
            candidate = candidate.replace(year=today.year + 1)
        return candidate

    match = DAY_ONLY_RE.search(sentence)
    if match:
        day = int(match.group(1))
        candidate = today.replace(day=day)
        if candidate < today:
            if today.month == 12:
                candidate = candidate.replace(year=today.year + 1, month=1)
            else:
                candidate = candidate.replace(month=today.month + 1)
        return candidate

    return None


def _resolve(text: str, reference: datetime) -> Optional[Tuple[datetime, str]]:
    match = ISO_DATE_RE.search(text)
    if match:
        try:
            day = reference.replace(
                year=int(match.group(1)), month=int(match.group(2)), day=int(match.group(3)),
            )
        except ValueError:
            logger.debug(f"Ignoring invalid date {match.group(0)!r}")
        else:
            return apply_clock_time(day, text), text

    today = reference.replace(hour=0, minute=0, second=0, microsecond=0)
    sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]
    # Sentences naming a pickup keyword are the most likely to carry the date
    ordered = (
        [s for s in sentences if infer_pickup_keyword(s)]
        + [s for s in sentences if not infer_pickup_keyword(s)]
    )

    for sentence in ordered:
        try:
            day = _resolve_day(sentence, today)
        except ValueError as e:
            logger.debug(f"Skipping impossible date in {sentence!r}: {e}")
            continue
        if day is not None:
            return apply_clock_time(day, sentence), sentence

    return None


def extract_pickup_date(
    text: Optional[str],
    reference: DateInput = None,
    tz: Union[str, tzinfo, None] = None,
) -> Optional[PickupResolution]:
    """
    Resolve a Korean pickup phrase to an absolute local time.

    Args:
        text: Free text describing pickup/arrival
        reference: Post time; falls back to now if missing or unparseable
        tz: Local timezone (default: settings.LOCAL_TIMEZONE)

    Returns:
        PickupResolution, or None when there is no text at all
    """
    if not text or not text.strip():
        return None

    zone = local_timezone(tz)
    reference_time = resolve_reference(reference, zone)
    fallback_keyword = infer_pickup_keyword(text) or DEFAULT_PICKUP_KEYWORD

    try:
        resolved = None if "미정" in text else _resolve(text, reference_time)
    except Exception as e:
        logger.warning(f"Pickup date parsing failed for {text!r}: {e}")
        resolved = None

    if resolved is None:
        return PickupResolution(
            date=tomorrow_at_noon(reference_time),
            keyword=fallback_keyword,
            original=text.strip(),
        )

    date, sentence = resolved
    keyword = infer_pickup_keyword(sentence) or fallback_keyword
    return PickupResolution(date=date, keyword=keyword, original=sentence)
