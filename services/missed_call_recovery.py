"""Text back callers whose calls were missed."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

RECOVERY_LOOKBACK = timedelta(hours=1)


class RecoveryError(Exception):
    """Raised when a recovery SMS can't or shouldn't be sent."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


def recovery_message(business: dict, caller_name: Optional[str] = None) -> str:
    """Pick the recovery text for the business's trade."""
    business_name = business.get("business_name", "")
    business_type = (business.get("business_type") or "service").lower()
    name = f"Hi {caller_name}" if caller_name else "Hi there"

    if "hvac" in business_type:
        return (f"{name}! We just missed your call at {business_name}. Need HVAC service? "
                "Text back or call again - we're here to help! Reply BOOK to schedule service.")
    if "plumbing" in business_type:
        return (f"{name}! Sorry we missed your call at {business_name}. Plumbing emergency? "
                "Text back NOW or call again - we respond fast! Reply URGENT for immediate help.")
    if "painting" in business_type:
        return (f"{name}! We missed your call at {business_name}. Ready for a quote? "
                "Text back with your project details or call again. Reply QUOTE to get started!")
    if "roofing" in business_type:
        return (f"{name}! Missed your call at {business_name}. Roof issues? "
                "Text back or call again for a free inspection. Reply INSPECT to schedule!")
    if "electrical" in business_type:
        return (f"{name}! We missed your call at {business_name}. Electrical problems? "
                "Text back or call again - we're available! Reply HELP for immediate assistance.")
    return (f"{name}! We just missed your call at {business_name}. How can we help? "
            "Text back or call again - we're ready to assist! Reply INFO for more details.")


class MissedCallRecovery:
    """Sends one recovery SMS per missed call."""

    def __init__(self, db: SupabaseClient, telnyx: TelnyxService):
        self.db = db
        self.telnyx = telnyx

    async def recover_call(self, business: dict, call_log: dict) -> dict:
        """
        Send the recovery SMS for a call and mark the call as recovered.

        Raises:
            RecoveryError: 409 if already sent or the caller opted out,
                400 if there is no number to text from or to
        """
        if call_log.get("recovery_sms_sent"):
            raise RecoveryError("Recovery SMS already sent for this call", status_code=409)

        caller = call_log.get("from_number")
        from_number = business.get("phone_number")
        if not caller:
            raise RecoveryError("Call has no caller number")
        if not from_number:
            raise RecoveryError("Business has no phone number")
        if await self.db.is_opted_out(business["id"], caller):
            raise RecoveryError("Caller has opted out of SMS", status_code=409)

        text = recovery_message(business, call_log.get("caller_name"))
        message_id = await self.telnyx.send_sms(from_number, caller, text)

        await self.db.log_sms({
            "business_id": business["id"],
            "from_number": from_number,
            "to_number": caller,
            "message_text": text,
            "direction": "outbound",
            "status": "sent",
            "message_type": "missed_call_recovery",
            "telnyx_message_id": message_id,
        })
        await self.db.update_call_log(call_log["id"], {
            "recovery_sms_sent": True,
            "recovery_sms_sent_at": datetime.now(timezone.utc).isoformat(),
        })

        logger.info(f"Missed call recovery SMS sent for call {call_log.get('call_id')}")
        return {"message_id": message_id, "message_text": text}

    async def process_missed_calls(self, now: Optional[datetime] = None) -> dict:
        """Recover every eligible missed call from the last hour."""
        now = now or datetime.now(timezone.utc)
        calls = await self.db.get_unrecovered_missed_calls((now - RECOVERY_LOOKBACK).isoformat())

        results = {"sent": 0, "skipped": 0, "failed": 0}
        for call_log in calls:
            business = call_log.get("businesses")
            if not business or not call_log.get("from_number"):
                results["skipped"] += 1
                continue
            try:
                await self.recover_call(business, call_log)
                results["sent"] += 1
            except RecoveryError as e:
                logger.info(f"Skipping recovery for call {call_log.get('call_id')}: {e}")
                results["skipped"] += 1
            except Exception as e:
                logger.error(f"Recovery failed for call {call_log.get('call_id')}: {e}")
                results["failed"] += 1

        if results["sent"] or results["failed"]:
            logger.info(f"Missed call recovery run: {results}")
        return results
