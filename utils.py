"""
utils.py
Dates, amounts, record merging, exports.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

import pandas as pd

from errors import InvalidDateInput


def parse_iso(d, field: str = "date") -> date:
    """
    Accept a date or an ISO string (YYYY-MM-DD); anything else is an InvalidDateInput.
    """
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    if not isinstance(d, str):
        raise InvalidDateInput(field, d)
    try:
        # Backends sometimes hand back timestamps; keep only the calendar part
        return date.fromisoformat(d.strip()[:10])
    except ValueError:
        raise InvalidDateInput(field, d) from None


def parse_optional_iso(d, field: str = "date") -> date | None:
    if d is None or d == "":
        return None
    return parse_iso(d, field)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str so 200.1 stays 200.1
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"{value!r} is not a numeric amount") from None


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calc_end_date(start_date, duration_months: int) -> date:
    return add_months(parse_iso(start_date, "start_date"), duration_months)


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


def calculate_age(birth_date, today: date) -> int:
    """
    Whole years between birth_date and today (birthday not reached yet => one less).
    """
    birth = parse_iso(birth_date, "birth_date")
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def merge_patch(record, patch: dict):
    """
    Return a copy of a dataclass record with the patch applied.
    A patch value wins when present and not None; otherwise the original is kept.
    """
    names = {f.name for f in dataclasses.fields(record)}
    unknown = set(patch) - names
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    changes = {k: v for k, v in patch.items() if v is not None}
    return dataclasses.replace(record, **changes)


def records_to_frame(records) -> pd.DataFrame:
    rows = [dataclasses.asdict(r) if dataclasses.is_dataclass(r) else dict(r) for r in records]
    return pd.DataFrame(rows)


def clients_to_csv_bytes(rows) -> bytes:
    df = records_to_frame(rows)
    return df.to_csv(index=False).encode("utf-8")


def payments_to_csv_bytes(rows) -> bytes:
    df = records_to_frame(rows)
    return df.to_csv(index=False).encode("utf-8")
