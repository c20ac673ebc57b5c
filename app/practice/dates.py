"""
Timezone-safe date helpers.

A calendar date ("YYYY-MM-DD") is never treated as an instant. When a datetime
is needed for a date it is pinned to 12:00 in the target zone, which keeps it on
the same calendar day across DST transitions and any UTC offset (-12h..+14h).

Naive datetimes are read as UTC instants everywhere (the database stores UTC).
"""
from __future__ import annotations

import logging
import os
import re
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.practice.errors import DateParseFailure, TimezoneDetectionFailure

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "UTC"
DISPLAY_FORMAT = "%m/%d/%Y"
SHORT_DISPLAY_FORMAT = "%m/%d/%y"

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T")
DISPLAY_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")

# Accepted by the generic (non YYYY-MM-DD) parser, tried in order.
_GENERIC_FORMATS = (
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)

_ETC_TIMEZONE = Path("/etc/timezone")
_ETC_LOCALTIME = Path("/etc/localtime")


def _zone_name_from_system() -> str:
    tz_env = (os.environ.get("TZ") or "").strip().lstrip(":")
    if tz_env:
        return tz_env
    if _ETC_TIMEZONE.is_file():
        name = _ETC_TIMEZONE.read_text(encoding="utf-8").strip()
        if name:
            return name
    if _ETC_LOCALTIME.is_symlink():
        target = str(_ETC_LOCALTIME.resolve())
        marker = "zoneinfo/"
        if marker in target:
            return target.split(marker, 1)[1]
    raise TimezoneDetectionFailure("no local timezone configured")


def detect_timezone() -> str:
    """Local IANA timezone name of the running process. Falls back to "UTC"; never raises."""
    try:
        name = _zone_name_from_system()
        ZoneInfo(name)
        return name
    except Exception as e:
        logger.warning("Failed to detect timezone, falling back to %s: %s", FALLBACK_TIMEZONE, e)
        return FALLBACK_TIMEZONE


def is_valid_timezone(name: str | None) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(tz: str | None = None) -> str:
    """`tz` when it names a known zone, otherwise the detected local zone."""
    if tz:
        if is_valid_timezone(tz):
            return tz
        logger.warning("Unknown timezone %r; using detected timezone", tz)
    return detect_timezone()


def _zone(tz: str | None) -> ZoneInfo:
    return ZoneInfo(resolve_timezone(tz))


def timezone_offset_minutes(tz: str | None = None, at: datetime | None = None) -> int:
    """
    Minutes to add to local time to reach UTC (positive west of Greenwich),
    the same sign convention browsers use.
    """
    zone = _zone(tz)
    moment = (at or datetime.now(timezone.utc)).astimezone(zone)
    offset = moment.utcoffset() or timedelta(0)
    return -int(offset.total_seconds() // 60)


def timezone_info(tz: str | None = None) -> dict[str, Any]:
    name = resolve_timezone(tz)
    offset = timezone_offset_minutes(name)
    offset_hours = abs(offset) / 60
    sign = "+" if offset <= 0 else "-"
    return {
        "timezone": name,
        "offset": offset,
        "offset_hours": offset_hours,
        "offset_string": f"UTC{sign}{offset_hours:g}",
    }


def date_to_timezone_string(value: datetime | date, tz: str | None = None) -> str:
    """
    YYYY-MM-DD of `value` as observed in `tz`.
    Naive datetimes are instants in UTC (how the database stores timestamps).
    """
    if not isinstance(value, datetime):
        return value.isoformat()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(_zone(tz)).strftime("%Y-%m-%d")


def current_date_in_timezone(tz: str | None = None) -> str:
    return datetime.now(_zone(tz)).date().isoformat()


def future_date_in_timezone(days_from_now: int, tz: str | None = None) -> str:
    today = datetime.now(_zone(tz)).date()
    return (today + timedelta(days=days_from_now)).isoformat()


def _parse_calendar_date(s: str) -> date:
    if not DATE_RE.match(s):
        raise DateParseFailure(f"not a YYYY-MM-DD date: {s!r}")
    try:
        return date.fromisoformat(s)
    except ValueError as e:
        raise DateParseFailure(str(e)) from e


def _parse_generic(s: str, zone: ZoneInfo) -> datetime:
    iso = s[:-1] + "+00:00" if s.endswith("Z") else s
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = None
    if parsed is not None:
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=zone)
    for fmt in _GENERIC_FORMATS:
        try:
            d = datetime.strptime(s, fmt).date()
        except ValueError:
            continue
        return datetime(d.year, d.month, d.day, 12, tzinfo=zone)
    raise DateParseFailure(f"unrecognized date: {s!r}")


def parse_date_string(s: str | None, tz: str | None = None) -> datetime:
    """
    Parse user input into an aware datetime in `tz`.

    YYYY-MM-DD is pinned to 12:00 local so no offset or DST shift can move it
    to a neighbouring day. Other formats go through a generic parser. Anything
    unparseable yields "now"; callers needing strictness use is_valid_date_string.
    """
    zone = _zone(tz)
    s = (s or "").strip()
    if not s:
        return datetime.now(zone)
    try:
        if DATE_RE.match(s):
            d = _parse_calendar_date(s)
            return datetime(d.year, d.month, d.day, 12, tzinfo=zone)
        return _parse_generic(s, zone)
    except DateParseFailure as e:
        logger.warning("Failed to parse date %r, using now: %s", s, e)
        return datetime.now(zone)


def is_valid_date_string(s: str | None) -> bool:
    if not s:
        return False
    try:
        _parse_calendar_date(s)
    except DateParseFailure:
        return False
    return True


def format_date_for_display(value: datetime | date | str, tz: str | None = None) -> str:
    """
    MM/DD/YYYY for `value` in `tz`. Plain dates are formatted from their components;
    naive datetimes are UTC instants, as in date_to_timezone_string.
    """
    if isinstance(value, str):
        value = parse_date_string(value, tz)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(_zone(tz))
    return value.strftime(DISPLAY_FORMAT)


def date_only(display: str) -> str:
    """YYYY-MM-DD from a MM/DD/YYYY display string (ISO input passes through)."""
    display = (display or "").strip()
    if ISO_DATETIME_RE.match(display):
        display = display.split("T", 1)[0]
    if DATE_RE.match(display):
        return _parse_calendar_date(display).isoformat()
    m = DISPLAY_RE.match(display)
    if not m:
        raise DateParseFailure(f"not a display date: {display!r}")
    month, day, year = m.groups()
    return _parse_calendar_date(f"{year}-{month}-{day}").isoformat()


def _date_part(s: str) -> str:
    """YYYY-MM-DD portion of a date or ISO string; other formats are read in UTC."""
    if DATE_RE.match(s):
        return s
    if ISO_DATETIME_RE.match(s):
        return s.split("T", 1)[0]
    parsed = _parse_generic(s, ZoneInfo(FALLBACK_TIMEZONE))
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d")


def to_calendar_date(value: str) -> date:
    """
    Calendar date named by a YYYY-MM-DD or ISO datetime string, taken from the
    date part as written. Raises DateParseFailure for anything else.
    """
    return _parse_calendar_date(_date_part((value or "").strip()))


def _format_safe(value: str | None, fmt: str) -> str:
    if not value:
        return "N/A"
    try:
        d = _parse_calendar_date(_date_part(value.strip()))
    except DateParseFailure as e:
        logger.warning("Failed to format date %r: %s", value, e)
        return "Invalid Date"
    return d.strftime(fmt)


def format_date_safe(value: str | None) -> str:
    """MM/DD/YY without any timezone conversion."""
    return _format_safe(value, SHORT_DISPLAY_FORMAT)


def format_date_safe_full_year(value: str | None) -> str:
    return _format_safe(value, DISPLAY_FORMAT)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def transaction_date(record: Any) -> str | None:
    """Best available YYYY-MM-DD for a transaction-like record."""
    value = _field(record, "transaction_date") or _field(record, "date") or _field(record, "created_at")
    if not value:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return _parse_calendar_date(_date_part(str(value).strip())).isoformat()
    except DateParseFailure as e:
        logger.warning("Failed to parse transaction date %r: %s", value, e)
        return None


def timezone_aware_date_for_api(date_string: str, tz: str | None = None) -> dict[str, Any]:
    name = resolve_timezone(tz)
    return {
        "date": date_string,
        "timezone": name,
        "offset": timezone_offset_minutes(name),
    }
