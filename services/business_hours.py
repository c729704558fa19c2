"""
Business hours and appointment availability.

Hours are stored on the business as a mapping of weekday to
{"open": "HH:MM", "close": "HH:MM"}. Both full ("monday") and short ("mon")
day keys are accepted.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DEFAULT_BUSINESS_HOURS = {
    "monday": {"open": "08:00", "close": "17:00"},
    "tuesday": {"open": "08:00", "close": "17:00"},
    "wednesday": {"open": "08:00", "close": "17:00"},
    "thursday": {"open": "08:00", "close": "17:00"},
    "friday": {"open": "08:00", "close": "17:00"},
    "saturday": {"open": "09:00", "close": "15:00"},
    "sunday": {"open": "09:00", "close": "15:00"},
}


def get_zone(tz_name: Optional[str], default: str = "America/New_York") -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or default)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, using {default}")
        return ZoneInfo(default)


def _hhmm(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 100 + int(minutes)


def hours_for_day(business_hours: Optional[dict], weekday: int) -> Optional[tuple[str, str]]:
    """
    Get the (open, close) pair for a weekday (0 = Monday).

    Returns:
        The pair, or None if the business is closed that day
    """
    if not business_hours:
        return None

    full_name = DAY_NAMES[weekday]
    hours = business_hours.get(full_name) or business_hours.get(full_name[:3])
    if not hours or not hours.get("open") or not hours.get("close"):
        return None
    return hours["open"], hours["close"]


def is_within_business_hours(
    business_hours: Optional[dict],
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None
) -> bool:
    """
    Check whether a moment falls inside the business's opening hours.

    Open and close are inclusive. A window whose close is earlier than its
    open runs past midnight, so the early hours of the next day belong to it.
    """
    zone = get_zone(tz_name)
    now = (now or datetime.now(timezone.utc)).astimezone(zone)
    current = now.hour * 100 + now.minute

    today = hours_for_day(business_hours, now.weekday())
    if today:
        open_time, close_time = _hhmm(today[0]), _hhmm(today[1])
        if close_time >= open_time:
            if open_time <= current <= close_time:
                return True
        elif current >= open_time:
            return True

    # Tail of yesterday's overnight window
    yesterday = hours_for_day(business_hours, (now.weekday() - 1) % 7)
    if yesterday:
        open_time, close_time = _hhmm(yesterday[0]), _hhmm(yesterday[1])
        if close_time < open_time and current <= close_time:
            return True

    return False


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def parse_timestamp(value) -> datetime:
    """Parse an ISO timestamp from the database, assuming UTC when naive."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_available_slots(
    business_hours: Optional[dict],
    day: date,
    tz_name: Optional[str],
    appointments: list[dict],
    duration_minutes: int = 60,
    step_minutes: int = 30,
    now: Optional[datetime] = None
) -> list[datetime]:
    """
    List open appointment start times on a day.

    Slots start every step_minutes from opening time, must finish by closing
    time, must be in the future and must not overlap any appointment that
    isn't cancelled.

    Returns:
        Timezone-aware slot start times in the business timezone
    """
    hours = hours_for_day(business_hours, day.weekday())
    if not hours:
        return []

    zone = get_zone(tz_name)
    now = now or datetime.now(timezone.utc)

    open_at = datetime.combine(day, time.fromisoformat(hours[0]), tzinfo=zone)
    close_at = datetime.combine(day, time.fromisoformat(hours[1]), tzinfo=zone)
    if close_at <= open_at:
        close_at += timedelta(days=1)

    busy = []
    for appointment in appointments:
        if appointment.get("status") in ("cancelled", "no_show"):
            continue
        if not appointment.get("start_time") or not appointment.get("end_time"):
            continue
        busy.append((parse_timestamp(appointment["start_time"]), parse_timestamp(appointment["end_time"])))

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    slots = []
    slot = open_at
    while slot + duration <= close_at:
        if slot > now and not any(intervals_overlap(slot, slot + duration, s, e) for s, e in busy):
            slots.append(slot)
        slot += step

    return slots


def describe_hours(business_hours: Optional[dict]) -> str:
    """Human-readable weekly hours, e.g. for prompts and HELP replies."""
    if not business_hours:
        return "Hours not set"

    parts = []
    for index, day_name in enumerate(DAY_NAMES):
        hours = hours_for_day(business_hours, index)
        label = day_name[:3].capitalize()
        parts.append(f"{label} {hours[0]}-{hours[1]}" if hours else f"{label} closed")
    return ", ".join(parts)
