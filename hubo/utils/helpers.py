"""Payload helpers shared by the project and task services."""

from datetime import date, datetime

from hubo.core.exceptions import ValidationError

_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")


def parse_date(value, field="date"):
    """Parse a project/task date from a JSON payload.

    Accepts ISO dates, ISO datetimes (truncated to the date) and DD.MM.YYYY.
    Empty values clear the field and return None; anything else that does
    not parse raises ValidationError naming ``field``.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValidationError(
            f"{field} must be a date (YYYY-MM-DD or DD.MM.YYYY)",
            details={field: "invalid_date"},
        ) from None
