"""Lead routes: tracking, status changes and scoring."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from models.schemas import LeadCreateRequest, LeadPriority, LeadScoreRequest, LeadStatus, LeadStatusUpdateRequest
from routes.dependencies import get_current_business, get_current_user, get_optional_telnyx
from services.lead_service import LeadError, LeadService
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("")
async def create_lead(
    request: LeadCreateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        lead = await LeadService(db).create(business, request)
    except LeadError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "lead": lead}


@router.get("")
async def list_leads(
    status: Optional[LeadStatus] = None,
    priority: Optional[LeadPriority] = None,
    limit: int = Query(100, ge=1, le=500),
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    leads = await db.list_leads(
        user["business_id"],
        status=status.value if status else None,
        priority=priority.value if priority else None,
        limit=limit,
    )
    return {"success": True, "leads": leads, "count": len(leads)}


@router.patch("/{lead_id}/status")
async def update_lead_status(
    lead_id: str,
    request: LeadStatusUpdateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        lead = await LeadService(db).change_status(business, lead_id, request.status, request.note)
    except LeadError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "lead": lead}


@router.post("/score")
async def score_lead(
    request: LeadScoreRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    try:
        result = await LeadService(db, telnyx).score(
            business,
            request.call_data,
            request.customer_data,
            request.appointment_data,
            lead_id=request.lead_id,
        )
    except LeadError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "success": True,
        "lead_score": result["score"].model_dump(),
        "priority": result["priority"],
        "next_actions": result["next_actions"],
    }
