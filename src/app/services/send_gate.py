"""Decide whether the automatic daily report is due."""

import logging
import re
from datetime import date, datetime
from typing import Union

logger = logging.getLogger(__name__)

TIME_OF_DAY_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_time_of_day(value: str) -> int:
    """Return minutes since midnight for a 24-hour "HH:MM" string.

    Raises ValueError for anything else.
    """
    match = TIME_OF_DAY_PATTERN.fullmatch(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def should_send(
    scheduled_time: str,
    last_sent_date: Union[date, str, None],
    now: datetime,
) -> bool:
    """True once `now` has reached `scheduled_time`, unless already sent today.

    The result stays true for the rest of the day until a successful send
    moves `last_sent_date` to today, so a missed minute still fires later.
    """
    today = now.date().isoformat()
    if last_sent_date is not None and str(last_sent_date) == today:
        return False

    try:
        scheduled_minutes = parse_time_of_day(scheduled_time)
    except ValueError:
        logger.warning("Ignoring malformed scheduled time %r", scheduled_time)
        return False

    return now.hour * 60 + now.minute >= scheduled_minutes
