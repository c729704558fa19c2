"""Call history and missed-call recovery routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from models.schemas import MissedRecoveryRequest
from routes.dependencies import get_current_business, get_current_user
from services.missed_call_recovery import MissedCallRecovery, RecoveryError
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService, TelnyxError, get_telnyx_service

router = APIRouter(prefix="/calls", tags=["calls"])


@router.get("")
async def list_calls(
    limit: int = Query(50, ge=1, le=500),
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    calls = await db.list_call_logs(user["business_id"], limit=limit)
    return {"success": True, "calls": calls, "count": len(calls)}


@router.post("/missed-recovery")
async def missed_call_recovery(
    request: MissedRecoveryRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: TelnyxService = Depends(get_telnyx_service),
):
    call_log = await db.get_call_log(business["id"], request.call_id)
    if not call_log:
        raise HTTPException(status_code=404, detail="Call not found")

    try:
        result = await MissedCallRecovery(db, telnyx).recover_call(business, call_log)
    except RecoveryError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except TelnyxError as e:
        raise HTTPException(status_code=502, detail=f"Failed to send SMS: {e}")

    return {"success": True, "message": "Recovery SMS sent successfully", **result}


@router.get("/{call_log_id}")
async def get_call(
    call_log_id: str,
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    call_log: Optional[dict] = await db.get_call_log(user["business_id"], call_log_id)
    if not call_log:
        raise HTTPException(status_code=404, detail="Call not found")
    return {"success": True, "call": call_log}
