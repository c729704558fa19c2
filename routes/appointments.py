"""Appointment routes."""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from models.schemas import (
    AIBookingRequest,
    AppointmentCreateRequest,
    AppointmentStatus,
    AppointmentUpdateRequest,
    ReminderRequest,
)
from routes.dependencies import get_current_business, get_current_user, get_optional_telnyx
from services.appointment_service import AppointmentError, AppointmentService
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _service(db: SupabaseClient, telnyx: Optional[TelnyxService]) -> AppointmentService:
    return AppointmentService(db, telnyx)


@router.post("")
async def create_appointment(
    request: AppointmentCreateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    try:
        appointment = await _service(db, telnyx).create(business, request)
    except AppointmentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "appointment": appointment}


@router.get("")
async def list_appointments(
    status: Optional[AppointmentStatus] = None,
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    limit: int = Query(100, ge=1, le=500),
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    appointments = await db.list_appointments(
        user["business_id"],
        status=status.value if status else None,
        start=start.isoformat() if start else None,
        end=(end + timedelta(days=1)).isoformat() if end else None,
        limit=limit,
    )
    return {"success": True, "appointments": appointments, "count": len(appointments)}


@router.post("/ai-book")
async def ai_book_appointment(
    request: AIBookingRequest,
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    """Booking used by the receptionist; a tenant may only book into its own business."""
    if request.business_id != user["business_id"]:
        raise HTTPException(status_code=403, detail="Cannot book for another business")
    try:
        result = await _service(db, telnyx).book_from_ai(request)
    except AppointmentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "message": "Appointment scheduled successfully", **result}


@router.post("/reminders")
async def send_reminder(
    request: ReminderRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    appointment = await db.get_appointment(business["id"], request.appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if not telnyx:
        raise HTTPException(status_code=503, detail="SMS service not configured")

    try:
        sent = await _service(db, telnyx).send_reminder(business, appointment, request.reminder_type.value)
    except AppointmentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Reminder failed for appointment {request.appointment_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to send reminder")

    if not sent:
        raise HTTPException(status_code=409, detail="Customer has opted out of SMS or no number is configured")
    return {"success": True, "message": "Reminder sent", "reminder_type": request.reminder_type.value}


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    appointment = await db.get_appointment(user["business_id"], appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return {"success": True, "appointment": appointment}


@router.patch("/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    request: AppointmentUpdateRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    try:
        result = await _service(db, telnyx).update(business, appointment_id, request)
    except AppointmentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, **result}


@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: str,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        appointment = await AppointmentService(db).cancel(business, appointment_id)
    except AppointmentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "appointment": appointment}
