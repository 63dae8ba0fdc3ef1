"""Shared utility functions used across services and blueprints.

parse_date:          lenient, returns None on bad input
parse_date_input:    strict, raises ValueError on bad input
parse_datetime_input strict, for timestamps (accepts a trailing "Z")
as_utc:              attach UTC to naive datetimes read back from SQLite
db_commit_or_error:  commit with rollback + logging on failure
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agiletrack.models import db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    # Plain dates compare as midnight UTC
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return parse_datetime_input(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises ValueError instead of returning None,
    so callers can turn it into a field-level validation error.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    return parsed


def parse_datetime_input(value):
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts the ``...Z`` suffix emitted by JavaScript's ``toISOString``.
    Raises ValueError on bad input.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def isoformat(value):
    return value.isoformat() if value else None


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error(integrity_error: Exception | None = None):
    """Commit the current SQLAlchemy session, rolling back on failure.

    IntegrityError → rollback, then raise *integrity_error* when given
                     (e.g. a BusinessRuleError for a duplicate), else re-raise.
    Other SQLAlchemyError → rollback, log, re-raise (surfaces as a 500).
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        if integrity_error is not None:
            raise integrity_error from exc
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise
