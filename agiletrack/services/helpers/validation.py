"""
Request payload validation helpers.

Services collect field problems into an ``errors`` dict and raise once,
so API clients get every field-level problem in a single 400:

    errors: dict[str, str] = {}
    name = require_text(data, "name", errors, min_len=2)
    amount = positive_number(data, "amount", errors)
    raise_if_errors(errors)
"""

from __future__ import annotations

import math

from agiletrack.core.exceptions import ValidationError
from agiletrack.utils.helpers import parse_date_input, parse_datetime_input


def raise_if_errors(errors: dict[str, str], message: str = "Invalid input") -> None:
    if errors:
        raise ValidationError(message, details=errors)


def require_text(
    data: dict,
    field: str,
    errors: dict[str, str],
    *,
    min_len: int = 1,
    max_len: int | None = None,
) -> str | None:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        errors[field] = f"{field} is required"
        return None
    if not isinstance(value, str):
        errors[field] = f"{field} must be a string"
        return None
    value = value.strip()
    if len(value) < min_len:
        errors[field] = f"{field} must be at least {min_len} characters"
        return None
    if max_len is not None and len(value) > max_len:
        errors[field] = f"{field} must be at most {max_len} characters"
        return None
    return value


def optional_text(
    data: dict,
    field: str,
    errors: dict[str, str],
    *,
    max_len: int | None = None,
    default: str | None = None,
) -> str | None:
    value = data.get(field)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        errors[field] = f"{field} must be a string"
        return None
    value = value.strip()
    if max_len is not None and len(value) > max_len:
        errors[field] = f"{field} must be at most {max_len} characters"
        return None
    return value


def choice(
    data: dict,
    field: str,
    choices,
    errors: dict[str, str],
    *,
    default: str | None = None,
    required: bool = False,
) -> str | None:
    value = data.get(field)
    if value is None or value == "":
        if required:
            errors[field] = f"{field} is required"
        return default
    if not isinstance(value, str) or value.upper() not in choices:
        errors[field] = f"Must be one of: {', '.join(choices)}"
        return None
    return value.upper()


def _as_number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def positive_number(
    data: dict,
    field: str,
    errors: dict[str, str],
    *,
    required: bool = True,
    allow_zero: bool = False,
    places: int | None = None,
) -> float | None:
    """Parse a non-negative number. With ``places`` the value is rounded first,
    so the sign check sees what a fixed-scale column will store."""
    value = data.get(field)
    if value is None or value == "":
        if required:
            errors[field] = f"{field} is required"
        return None
    number = _as_number(value)
    if number is None:
        errors[field] = f"{field} must be a number"
        return None
    if places is not None:
        number = round(number, places)
    if number < 0 or (number == 0 and not allow_zero):
        errors[field] = f"{field} must be {'zero or ' if allow_zero else ''}positive"
        return None
    return number


def optional_int(data: dict, field: str, errors: dict[str, str], *, required: bool = False) -> int | None:
    value = data.get(field)
    if value is None or value == "":
        if required:
            errors[field] = f"{field} is required"
        return None
    if isinstance(value, bool):
        errors[field] = f"{field} must be an integer"
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        errors[field] = f"{field} must be an integer"
        return None


def optional_date(data: dict, field: str, errors: dict[str, str], *, required: bool = False):
    value = data.get(field)
    if value is None or value == "":
        if required:
            errors[field] = f"{field} is required"
        return None
    try:
        return parse_date_input(value)
    except (TypeError, ValueError):
        errors[field] = "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        return None


def optional_datetime(data: dict, field: str, errors: dict[str, str]):
    value = data.get(field)
    if value is None or value == "":
        return None
    try:
        return parse_datetime_input(value)
    except (TypeError, ValueError):
        try:
            parsed = parse_date_input(value)
        except (TypeError, ValueError):
            errors[field] = "Invalid datetime. Use ISO-8601."
            return None
        return parse_datetime_input(parsed.isoformat() + "T00:00:00+00:00")


def optional_object(data: dict, field: str, errors: dict[str, str]) -> dict | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, dict):
        errors[field] = f"{field} must be an object"
        return None
    return value
