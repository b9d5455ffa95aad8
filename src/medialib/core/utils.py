from datetime import datetime
from typing import Any, Optional, Tuple

from loguru import logger


def parse_tag_date(value: Any) -> Optional[datetime]:
    """Parses a release date as found in audio tags.

    Tags often hold just a year ("2003"), a year and month ("2003-05"), a full
    date, or a full ISO timestamp.

    Args:
        value: The raw tag value (string, datetime, etc.).

    Returns:
        A naive datetime or None if the value cannot be parsed.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        return value.replace(tzinfo=None)

    value_str = str(value).strip()
    if not value_str or value_str.lower() in ["none", "null", "nan"]:
        return None

    try:
        if len(value_str) == 4 and value_str.isdigit():
            return datetime(int(value_str), 1, 1)
        if len(value_str) == 7 and value_str.count("-") == 1:
            return datetime.strptime(value_str, "%Y-%m")
        if len(value_str) == 10 and "-" in value_str:
            return datetime.strptime(value_str, "%Y-%m-%d")
        return datetime.fromisoformat(value_str).replace(tzinfo=None)
    except (ValueError, TypeError):
        logger.debug(f"Could not parse date: {value_str}")
        return None


def parse_position(value: Any) -> Tuple[Optional[int], Optional[int]]:
    """Split a "3/12" style track or disc position into (number, total).

    Either part may be missing or malformed, in which case it is None.
    """
    if value is None:
        return (None, None)
    number_str, _, total_str = str(value).strip().partition("/")
    return (_to_int(number_str), _to_int(total_str))


def _to_int(value: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number >= 0 else None
