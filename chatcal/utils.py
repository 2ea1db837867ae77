from __future__ import annotations

from datetime import datetime, timedelta, date, time
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo
import re

from .config import (
    LLM_DEBUG,
    ISO_DATE_RE,
    DEFAULT_TIMEZONE_NAME,
)
from .models import TimeInfo


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def normalize_text(text: Optional[str]) -> str:
    t = (text or "").strip()
    t = re.sub(r"\s+", " ", t)
    return t


def resolve_timezone(requested_timezone: Optional[str]) -> str:
    for candidate in (requested_timezone, DEFAULT_TIMEZONE_NAME):
        if not isinstance(candidate, str):
            continue
        cleaned = candidate.strip()
        if not cleaned:
            continue
        try:
            ZoneInfo(cleaned)
            return cleaned
        except Exception:
            continue
    return "UTC"


def build_time_info(requested: Optional[TimeInfo] = None,
                    now: Optional[datetime] = None) -> TimeInfo:
    """Fill in whatever the UI did not send from the server clock."""
    timezone_name = resolve_timezone(requested.timezone if requested else None)
    tz = ZoneInfo(timezone_name)
    current = (now or datetime.now(tz)).astimezone(tz)
    if requested is not None and requested.date and ISO_DATE_RE.match(requested.date):
        return TimeInfo(
            date=requested.date,
            time=requested.time or current.strftime("%H:%M"),
            timezone=timezone_name,
            local_time=requested.local_time,
        )
    return TimeInfo(
        date=current.strftime("%Y-%m-%d"),
        time=current.strftime("%H:%M"),
        timezone=timezone_name,
        local_time=current.strftime("%A, %B %d, %Y %I:%M %p"),
    )


def time_info_today(time_info: TimeInfo) -> date:
    return datetime.strptime(time_info.date, "%Y-%m-%d").date()


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(23, 59, 59), tzinfo=tz)


def forward_range(time_info: TimeInfo, days: int) -> Tuple[datetime, datetime]:
    tz = ZoneInfo(time_info.timezone)
    today = time_info_today(time_info)
    return (start_of_day(today, tz), start_of_day(today + timedelta(days=days), tz))


def parse_range_bound(value: Any, tz: ZoneInfo, is_end: bool) -> Optional[datetime]:
    """Bare dates widen to the whole day; naive datetimes get ``tz``."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if ISO_DATE_RE.match(raw):
        day = datetime.strptime(raw, "%Y-%m-%d").date()
        return end_of_day(day, tz) if is_end else start_of_day(day, tz)
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _split_iso_date_time(value: Optional[str]) -> Tuple[Optional[date], Optional[str]]:
    if not isinstance(value, str):
        return (None, None)
    raw = value.strip()
    if len(raw) < 10:
        return (None, None)
    try:
        dt = datetime.strptime(raw[:10], "%Y-%m-%d").date()
    except Exception:
        return (None, None)
    time_part: Optional[str] = None
    if len(raw) >= 16:
        time_part = raw[11:16]
    return (dt, time_part)


def _compute_all_day_bounds(start_iso: str,
                            end_iso: Optional[str]) -> Tuple[date, date]:
    start_date, _ = _split_iso_date_time(start_iso)
    if not start_date:
        raise ValueError(f"Invalid start date: {start_iso!r}")

    if not end_iso:
        return (start_date, start_date + timedelta(days=1))

    end_date, end_time = _split_iso_date_time(end_iso)
    if not end_date or end_date < start_date:
        return (start_date, start_date + timedelta(days=1))

    # Google Calendar expects an exclusive end date.
    if end_time == "00:00" and end_date > start_date:
        return (start_date, end_date)
    return (start_date, end_date + timedelta(days=1))


def parse_event_datetime(value: str, tz: ZoneInfo) -> datetime:
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    if ISO_DATE_RE.match(raw):
        raw = f"{raw}T00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def format_event_datetime(value: datetime) -> str:
    """Wall-clock RFC3339 without offset; the timeZone field carries the zone."""
    return value.strftime("%Y-%m-%dT%H:%M:%S")

