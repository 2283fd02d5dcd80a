"""Shared parsing helpers used by services and blueprints."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from app.core.exceptions import ValidationError



def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (Brazilian format)
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
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field):
    """Parse a date string, raising ValidationError on bad input.

    Same as parse_date() but for request payloads, where a malformed
    date must be reported instead of silently dropped.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid date for {field}. Use YYYY-MM-DD or DD/MM/YYYY.",
            details={field: "invalid date"},
        )
    return parsed


def parse_decimal(value, field):
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid number for {field}", details={field: "invalid number"}) from exc


def parse_list(value, field):
    """Accept a list of strings or a comma-separated string."""
    if value in (None, ""):
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ValidationError(f"{field} must be a list", details={field: "expected list"})
