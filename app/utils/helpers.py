"""Shared input parsing helpers for blueprints and action payloads.

parse_date_input:      "YYYY-MM-DD" / date → date, raises ValueError on bad input
parse_datetime_input:  ISO datetime / date string → naive datetime, raises ValueError
"""
from datetime import date, datetime, timezone


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Returns None for empty input. Supports YYYY-MM-DD, full ISO datetimes
    (truncated to the date) and date objects.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        try:
            return parse_datetime_input(value).date()
        except ValueError as exc:
            raise ValueError("Invalid date format. Use YYYY-MM-DD.") from exc


def parse_datetime_input(value):
    """Parse an ISO datetime string, raising ValueError on bad input.

    A trailing "Z" or explicit offset is converted to UTC and dropped:
    schedule datetimes are stored naive.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if not isinstance(value, str):
        raise ValueError("Invalid datetime format. Use ISO 8601.")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError("Invalid datetime format. Use ISO 8601.") from exc
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError as exc:
            raise ValueError("Datetime is outside the supported range.") from exc
    return parsed
