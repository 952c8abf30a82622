from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from zoneinfo import ZoneInfo

LOCAL_TZ = ZoneInfo(os.getenv("ISP_LEDGER_TIMEZONE", "Asia/Kolkata"))


DatetimeLike = Optional[Union[datetime, date]]


def now_local() -> datetime:
    return datetime.now(tz=LOCAL_TZ)


def today_local(now: Optional[datetime] = None) -> date:
    current = ensure_local_datetime(now) if now is not None else now_local()
    return current.date()


def ensure_local_datetime(value: DatetimeLike) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=LOCAL_TZ)
    if value.tzinfo is None:
        # sqlite hands back naive values; they were stored in local time
        return value.replace(tzinfo=LOCAL_TZ)
    return value.astimezone(LOCAL_TZ)


def add_calendar_days(value: datetime, days: int) -> datetime:
    """Shift by whole calendar days, keeping the local wall-clock time."""
    local = ensure_local_datetime(value)
    shifted = local.replace(tzinfo=None) + timedelta(days=days)
    return shifted.replace(tzinfo=LOCAL_TZ)


def parse_local_datetime(raw: Union[str, datetime, date]) -> datetime:
    """Parse ISO date/datetime strings (``Z`` suffix allowed) into local aware datetimes."""
    if isinstance(raw, (datetime, date)):
        return ensure_local_datetime(raw)
    if not isinstance(raw, str):
        raise ValueError("Invalid date value")
    text = raw.strip()
    if not text:
        raise ValueError("Empty date value")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError("Invalid date format") from exc
    converted = ensure_local_datetime(parsed)
    if converted is None:
        raise ValueError("Unable to convert date")
    return converted


def format_local(value: DatetimeLike, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if value is None:
        return "-"
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    return ensure_local_datetime(value).strftime(fmt)
