"""Dashboard metrics computed from call and appointment rows."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from services.business_hours import get_zone, parse_timestamp

TIMEFRAMES = {
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_TIMEFRAME = "7d"


def normalize_timeframe(timeframe: Optional[str]) -> str:
    return timeframe if timeframe in TIMEFRAMES else DEFAULT_TIMEFRAME


def timeframe_start(timeframe: Optional[str], now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - TIMEFRAMES[normalize_timeframe(timeframe)]


def _local_date(value, zone):
    if not value:
        return None
    return parse_timestamp(value).astimezone(zone).date()


def compute_dashboard_metrics(
    calls: list[dict],
    appointments: list[dict],
    business: dict,
    agent: Optional[dict],
    timeframe: Optional[str] = None,
    now: Optional[datetime] = None
) -> dict:
    """
    Aggregate the dashboard for one business.

    calls and appointments are the rows created within the timeframe, calls
    newest first. "Today" is the current date in the business timezone.
    """
    now = now or datetime.now(timezone.utc)
    zone = get_zone(business.get("timezone"))
    today = now.astimezone(zone).date()

    total_calls = len(calls)
    completed_calls = sum(1 for c in calls if c.get("status") == "completed")
    missed_calls = sum(1 for c in calls if c.get("status") == "missed")
    active_calls = sum(1 for c in calls if c.get("status") == "in_progress")

    avg_call_duration = 0.0
    if total_calls:
        avg_call_duration = round(sum(c.get("duration_seconds") or 0 for c in calls) / total_calls, 1)

    appointment_phones = {a.get("customer_phone") for a in appointments if a.get("customer_phone")}
    calls_with_appointments = sum(1 for c in calls if c.get("from_number") in appointment_phones)
    booking_conversion_rate = round(calls_with_appointments / total_calls * 100) if total_calls else 0

    booked = [a for a in appointments if a.get("status") != "cancelled"]
    total_revenue = round(sum(float(a.get("estimated_value") or 0) for a in booked), 2)

    rated = [c["satisfaction_rating"] for c in calls if c.get("satisfaction_rating")]
    customer_satisfaction = round(sum(rated) / len(rated), 1) if rated else 5

    return {
        "timeframe": normalize_timeframe(timeframe),
        "total_calls": total_calls,
        "completed_calls": completed_calls,
        "missed_calls": missed_calls,
        "active_calls": active_calls,
        "avg_call_duration": avg_call_duration,
        "booking_conversion_rate": booking_conversion_rate,
        "total_revenue": total_revenue,
        "today_bookings": sum(1 for a in booked if _local_date(a.get("start_time"), zone) == today),
        "calls_today": sum(1 for c in calls if _local_date(c.get("created_at"), zone) == today),
        "customer_satisfaction": customer_satisfaction,
        "recent_calls": calls[:10],
        "recent_appointments": appointments[:10],
        "is_live": bool(agent and agent.get("is_active")),
        "phone_number": business.get("phone_number"),
        "business_name": business.get("business_name"),
        "onboarding_completed": bool(business.get("onboarding_completed")),
    }
