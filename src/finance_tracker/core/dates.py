from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from zoneinfo import ZoneInfo

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_iso(tz_name: str = "UTC") -> str:
    return datetime.now(tz=ZoneInfo(tz_name)).date().isoformat()


def is_iso_date(value: str) -> bool:
    if not ISO_DATE_RE.match(value or ""):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_month_key(value: str) -> bool:
    return bool(MONTH_KEY_RE.match(value or ""))


def month_label(key: str) -> str:
    """'2024-05' -> 'May 2024'. Keys that are not YYYY-MM are returned as is."""
    if not is_month_key(key):
        return key
    year, month = key.split("-")
    return f"{calendar.month_name[int(month)]} {year}"


def previous_month_key(key: str) -> str:
    year, month = (int(x) for x in key.split("-"))
    if month == 1:
        return f"{year - 1}-12"
    return f"{year}-{month - 1:02d}"


def current_month_key(tz_name: str = "UTC") -> str:
    return today_iso(tz_name)[:7]
