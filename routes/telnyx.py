"""Telnyx voice and messaging webhooks."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from services.call_handler import VoiceCallHandler
from services.sms_handler import InboundSmsHandler
from services.supabase_client import SupabaseClient, get_supabase_client
from services.telnyx_service import TelnyxService, get_telnyx_service
from services.webhook_verification import verify_telnyx_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telnyx", tags=["telnyx"])


async def _verified_event(request: Request) -> dict:
    body = await request.body()
    if not verify_telnyx_signature(
        body,
        request.headers.get("telnyx-signature-ed25519"),
        request.headers.get("telnyx-timestamp"),
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        return json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")


@router.post("/voice")
async def voice_webhook(
    request: Request,
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: TelnyxService = Depends(get_telnyx_service),
):
    """Call Control events. Always 200 once verified so Telnyx doesn't retry."""
    event = await _verified_event(request)
    try:
        await VoiceCallHandler(db, telnyx).handle_event(event)
    except Exception as e:
        logger.error(f"Error handling voice webhook: {e}")
    return {"status": "ok"}


@router.post("/sms")
async def sms_webhook(
    request: Request,
    db: SupabaseClient = Depends(get_supabase_client),
    telnyx: TelnyxService = Depends(get_telnyx_service),
):
    event = await _verified_event(request)
    try:
        await InboundSmsHandler(db, telnyx).handle_event(event)
    except Exception as e:
        logger.error(f"Error handling SMS webhook: {e}")
    return {"status": "ok"}
