"""Owner notification feed."""

from fastapi import APIRouter, Depends, HTTPException, Query

from routes.dependencies import get_current_user
from services.supabase_client import SupabaseClient, get_supabase_client

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    notifications = await db.list_notifications(user["business_id"], unread_only=unread, limit=limit)
    return {"success": True, "notifications": notifications, "count": len(notifications)}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    notification = await db.mark_notification_read(user["business_id"], notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "notification": notification}
