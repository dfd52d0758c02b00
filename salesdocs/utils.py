"""
Request parsing helpers:
- request_payload: Read JSON body or form data as a plain dict.
- parse_decimal / parse_optional_int / parse_date: Lenient parsers for user input.
- clean_text: Strip strings and turn blanks into None.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import request


def request_payload() -> dict:
    """Return the request body as a dict (JSON preferred, form data as fallback)."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_decimal(value) -> Decimal | None:
    """
    Parse decimal from user input (accepts comma or dot).

    Returns None for empty input. Raises ValueError for anything that is not
    a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("not a number")
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        result = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValueError("not a number")
    if not result.is_finite():
        raise ValueError("not a finite number")
    return result


def parse_optional_int(value) -> int | None:
    """Int from a query string or form value; blanks and junk give None."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value) -> date | None:
    """Parse an ISO date (YYYY-MM-DD); full ISO datetimes are truncated to the date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValueError("invalid date, expected YYYY-MM-DD")


def clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decimal_places(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0
