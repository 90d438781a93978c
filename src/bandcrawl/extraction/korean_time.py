"""
Parsing of the timestamps Band prints next to posts and comments.

Band renders times in several shapes depending on age and locale:

    "방금 전", "5분 전", "3시간 전"      relative
    "어제 오후 3:20"                    yesterday
    "3월 14일 오후 8:58"                this year
    "2025년 3월 14일 오후 3:55"          older posts
    "2025.03.14 15:55"                  dotted
    "2025-03-14T15:55:00+09:00"         ISO (title attributes)

All results are timezone-aware in the configured local zone.
"""
import logging
import re
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from bandcrawl.config import settings

logger = logging.getLogger(__name__)

KOREAN_DATE_RE = re.compile(
    r"(?:(\d{4})년\s*)?(\d{1,2})월\s*(\d{1,2})일"
    r"(?:\s*(오전|오후)?\s*(\d{1,2}):(\d{2}))?"
)
DOTTED_DATE_RE = re.compile(
    r"(\d{4})\.\s*(\d{1,2})\.\s*(\d{1,2})\.?"
    r"(?:\s*(오전|오후)?\s*(\d{1,2}):(\d{2}))?"
)
CLOCK_RE = re.compile(r"(오전|오후)?\s*(\d{1,2}):(\d{2})")
RELATIVE_RE = re.compile(r"(\d+)\s*(초|분|시간|일)\s*전")

RELATIVE_UNITS = {
    "초": "seconds",
    "분": "minutes",
    "시간": "hours",
    "일": "days",
}


def local_timezone(tz: Union[str, tzinfo, None] = None) -> tzinfo:
    """Resolve a zone name or tzinfo, defaulting to settings.LOCAL_TIMEZONE."""
    if isinstance(tz, tzinfo):
        return tz
    return ZoneInfo(tz or settings.LOCAL_TIMEZONE)


def to_24_hour(meridiem: Optional[str], hour: int) -> int:
    """Apply a 오전/오후 marker to a 12-hour clock value."""
    if meridiem == "오후" and hour < 12:
        return hour + 12
    if meridiem == "오전" and hour == 12:
        return 0
    return hour


def parse_iso_datetime(text: str, tz: tzinfo) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as local time."""
    try:
        value = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def parse_korean_datetime(
    text: Optional[str],
    now: Optional[datetime] = None,
    tz: Union[str, tzinfo, None] = None,
) -> Optional[datetime]:
    """Parse a Band post/comment timestamp.

    Args:
        text: Timestamp as displayed by Band
        now: Reference time for relative forms (default: current time)
        tz: Local timezone (default: settings.LOCAL_TIMEZONE)

    Returns:
        Aware datetime, or None if the text is not a recognizable timestamp
    """
    if not text or not text.strip():
        return None

    zone = local_timezone(tz)
    if now is None:
        now = datetime.now(zone)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    else:
        now = now.astimezone(zone)
    text = text.strip()

    iso = parse_iso_datetime(text, zone)
    if iso is not None:
        return iso

    try:
        if "방금" in text:
            return now

        match = RELATIVE_RE.search(text)
        if match:
            amount, unit = int(match.group(1)), RELATIVE_UNITS[match.group(2)]
            return now - timedelta(**{unit: amount})

        if "어제" in text:
            yesterday = now - timedelta(days=1)
            clock = CLOCK_RE.search(text)
            if clock:
                hour = to_24_hour(clock.group(1), int(clock.group(2)))
                return yesterday.replace(hour=hour, minute=int(clock.group(3)), second=0, microsecond=0)
            return yesterday

        match = KOREAN_DATE_RE.search(text)
        if match:
            year = int(match.group(1)) if match.group(1) else now.year
            value = _build(year, match.group(2), match.group(3), match.group(4), match.group(5), match.group(6), zone)
            # Band omits the year for this year's posts; a date ahead of now belongs to last year
            if not match.group(1) and value > now + timedelta(days=1):
                value = value.replace(year=year - 1)
            return value

        match = DOTTED_DATE_RE.search(text)
        if match:
            return _build(
                int(match.group(1)), match.group(2), match.group(3),
                match.group(4), match.group(5), match.group(6), zone,
            )
    except ValueError as e:
        logger.debug(f"Unparseable timestamp {text!r}: {e}")
        return None

    return None


def _build(year, month, day, meridiem, hour, minute, zone) -> datetime:
    if hour is None:
        hour_value, minute_value = 0, 0
    else:
        hour_value, minute_value = to_24_hour(meridiem, int(hour)), int(minute)
    return datetime(year, int(month), int(day), hour_value, minute_value, tzinfo=zone)
