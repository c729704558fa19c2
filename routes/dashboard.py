"""Dashboard metrics route."""

from typing import Optional

from fastapi import APIRouter, Depends

from routes.dependencies import get_current_business
from services.analytics import compute_dashboard_metrics, timeframe_start
from services.supabase_client import SupabaseClient, get_supabase_client

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
async def get_dashboard(
    timeframe: Optional[str] = "7d",
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    """Call and booking metrics for 24h, 7d, 30d or 90d (anything else means 7d)."""
    since = timeframe_start(timeframe).isoformat()

    calls = await db.list_call_logs(business["id"], since=since)
    appointments = await db.list_appointments(business["id"], created_since=since)
    agent = await db.get_active_agent(business["id"])

    return {"success": True, **compute_dashboard_metrics(calls, appointments, business, agent, timeframe)}
