"""Business profile and onboarding routes."""

from fastapi import APIRouter, Depends, HTTPException

from models.schemas import AgentSettingsUpdateRequest, BusinessUpdateRequest, OnboardingRequest, SuccessResponse
from routes.dependencies import get_current_business
from services.business_service import BusinessError, BusinessService
from services.supabase_client import SupabaseClient, get_supabase_client

router = APIRouter(tags=["business"])


@router.get("/business")
async def get_business(business: dict = Depends(get_current_business)):
    return {"success": True, "business": business}


@router.patch("/business")
async def update_business(
    request: BusinessUpdateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        updated = await BusinessService(db).update_profile(business, request)
    except BusinessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "business": updated}


@router.get("/business/agent")
async def get_agent_settings(
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        agent = await BusinessService(db).get_agent_settings(business)
    except BusinessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "agent": agent}


@router.patch("/business/agent")
async def update_agent_settings(
    request: AgentSettingsUpdateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    """Customize the receptionist after onboarding."""
    try:
        agent = await BusinessService(db).update_agent_settings(business, request)
    except BusinessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "agent": agent}


@router.post("/onboarding/complete", response_model=SuccessResponse)
async def complete_onboarding(
    request: OnboardingRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    """Finish setup: save the profile, activate the receptionist, assign a number."""
    try:
        result = await BusinessService(db).complete_onboarding(business, request)
    except BusinessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    message = "Onboarding complete"
    if not result["phone_number"]:
        message += ". No phone numbers are available right now; one will be assigned soon."
    return SuccessResponse(message=message, data=result)
