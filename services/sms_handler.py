"""Inbound SMS: keyword handling, forwarding and AI replies."""

import logging
from typing import Optional

from agent.prompts import get_help_message
from agent.receptionist_agent import MAX_HISTORY_MESSAGES, ReceptionistAgent
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

STOP_KEYWORDS = {"STOP", "UNSUBSCRIBE"}
START_KEYWORDS = {"START", "UNSTOP"}
HELP_KEYWORDS = {"HELP"}


def _number(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("phone_number")
    return value


class InboundSmsHandler:
    """Handles Telnyx message.received events for a business number."""

    def __init__(self, db: SupabaseClient, telnyx: TelnyxService, agent_class=ReceptionistAgent):
        self.db = db
        self.telnyx = telnyx
        self.agent_class = agent_class

    async def handle_event(self, event: dict) -> Optional[str]:
        """
        Process one inbound message.

        Returns:
            The reply text sent back, or None if nothing was sent
        """
        data = event.get("data") or {}
        if data.get("event_type") != "message.received":
            logger.debug(f"Ignoring Telnyx message event {data.get('event_type')}")
            return None

        payload = data.get("payload") or {}
        from_number = _number(payload.get("from"))
        recipients = payload.get("to") or []
        to_number = _number(recipients[0]) if isinstance(recipients, list) and recipients else _number(recipients)
        text = (payload.get("text") or "").strip()

        if not from_number or not to_number:
            logger.warning("Inbound SMS without sender or recipient")
            return None

        business = await self.db.get_business_by_phone_number(to_number)

        await self.db.log_sms({
            "business_id": business["id"] if business else None,
            "from_number": from_number,
            "to_number": to_number,
            "message_text": text,
            "direction": "inbound",
            "status": "received",
            "message_type": "inbound",
            "telnyx_message_id": payload.get("id"),
        })

        if not business:
            logger.warning(f"Inbound SMS to unassigned number {to_number}")
            return None

        await self._forward_to_owner(business, to_number, from_number, text)

        keyword = text.upper()
        if keyword in STOP_KEYWORDS:
            await self.db.add_opt_out(business["id"], from_number)
            return await self._reply(
                business, from_number,
                f"You have been unsubscribed from {business.get('business_name')} SMS messages. "
                "You will not receive further texts. Text START to resubscribe.",
            )
        if keyword in START_KEYWORDS:
            await self.db.remove_opt_out(business["id"], from_number)
            return await self._reply(
                business, from_number,
                f"You have been resubscribed to {business.get('business_name')} SMS messages. "
                "Reply STOP to opt out; HELP for help.",
            )
        if keyword in HELP_KEYWORDS:
            return await self._reply(business, from_number, get_help_message(business))

        if await self.db.is_opted_out(business["id"], from_number):
            logger.info(f"{from_number} is opted out, not replying")
            return None
        if not text:
            return None

        history = await self.db.get_chat_history(business["id"], from_number)
        history.append({"role": "user", "content": text})

        agent = self.agent_class(
            business,
            self.db,
            self.telnyx,
            caller_number=from_number,
            channel="sms",
            settings=await self.db.get_active_agent(business["id"]),
        )
        reply = await agent.respond(history[-MAX_HISTORY_MESSAGES:])

        history.append({"role": "assistant", "content": reply.text})
        await self.db.save_chat_history(business["id"], from_number, history[-MAX_HISTORY_MESSAGES:])

        return await self._reply(business, from_number, reply.text, message_type="ai_reply")

    async def _forward_to_owner(self, business: dict, business_number: str, from_number: str, text: str) -> None:
        if not business.get("sms_forwarding_enabled") or not business.get("notification_phone"):
            return
        try:
            await self.telnyx.send_sms(
                business_number,
                business["notification_phone"],
                f"[CloudGreet SMS] From: {from_number}\nMessage: {text}",
            )
        except Exception as e:
            logger.warning(f"SMS forwarding failed for business {business['id']}: {e}")

    async def _reply(self, business: dict, to_number: str, text: str, message_type: str = "keyword_reply") -> Optional[str]:
        from_number = business.get("phone_number")
        if not from_number:
            logger.warning(f"Business {business['id']} has no phone number to reply from")
            return None

        message_id = await self.telnyx.send_sms(from_number, to_number, text)
        await self.db.log_sms({
            "business_id": business["id"],
            "from_number": from_number,
            "to_number": to_number,
            "message_text": text,
            "direction": "outbound",
            "status": "sent",
            "message_type": message_type,
            "telnyx_message_id": message_id,
        })
        return text
