"""Stripe billing routes."""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request

from models.schemas import CheckoutResponse, PerBookingChargeRequest
from routes.dependencies import get_current_business, get_optional_telnyx
from services.billing_service import BillingError, BillingService
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService
from services.webhook_verification import construct_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    try:
        session = await BillingService(db).create_checkout_session(business)
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(**session)


@router.post("/per-booking")
async def charge_per_booking(
    request: PerBookingChargeRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    appointment = await db.get_appointment(business["id"], request.appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    try:
        result = await BillingService(db).charge_booking_fee(business, appointment, appointment.get("call_id"))
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, **result}


@router.get("/summary")
async def billing_summary(
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    summary = await BillingService(db).summary(business["id"])
    return {
        "success": True,
        "subscription_status": business.get("subscription_status"),
        **summary,
    }


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: Optional[TelnyxService] = Depends(get_optional_telnyx),
):
    """Stripe events. Bad signatures get 400; verified events always get 200."""
    payload = await request.body()
    try:
        event = construct_stripe_event(payload, request.headers.get("stripe-signature"))
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook")

    try:
        await BillingService(db, telnyx).handle_event(event)
    except Exception as e:
        logger.error(f"Error handling Stripe event {event['type']}: {e}")
    return {"received": True}
