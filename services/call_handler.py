"""
Telnyx Call Control event handling.

Every webhook event is handled on its own. What the call should do next is
carried in the client_state Telnyx echoes back on the following event:

    state      what happens when the current speak command finishes
    listen     start (or keep) transcribing the caller
    record     record a voicemail
    hangup     hang up
    transfer   transfer to transfer_to
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from agent.prompts import (
    UNAVAILABLE_MESSAGE,
    get_after_hours_message,
    get_after_hours_sms,
    get_greeting,
    get_transfer_message,
)
from agent.receptionist_agent import ReceptionistAgent, summarize_conversation
from models.schemas import AfterHoursPolicy, CallStatus
from services.business_hours import is_within_business_hours, parse_timestamp
from services.lead_service import LeadService
from services.notifications import notify_owner
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService, decode_client_state

logger = logging.getLogger(__name__)

MAX_VOICEMAIL_SECONDS = 300


class VoiceCallHandler:
    """Handles one Telnyx voice event at a time."""

    def __init__(self, db: SupabaseClient, telnyx: TelnyxService, agent_class=ReceptionistAgent):
        self.db = db
        self.telnyx = telnyx
        self.agent_class = agent_class

    async def handle_event(self, event: dict) -> None:
        data = event.get("data") or {}
        event_type = data.get("event_type")
        payload = data.get("payload") or {}

        handlers = {
            "call.initiated": self.on_initiated,
            "call.answered": self.on_answered,
            "call.speak.ended": self.on_speak_ended,
            "call.transcription": self.on_transcription,
            "call.recording.saved": self.on_recording_saved,
            "call.hangup": self.on_hangup,
        }
        handler = handlers.get(event_type)
        if not handler:
            logger.debug(f"Ignoring Telnyx event {event_type}")
            return

        logger.info(f"Telnyx event {event_type} for call {payload.get('call_control_id')}")
        await handler(payload)

    async def on_initiated(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        if payload.get("direction") not in (None, "incoming"):
            return

        if await self.db.get_call_log_by_call_id(call_id):
            logger.info(f"Duplicate call.initiated for {call_id}, ignoring")
            return

        business = await self.db.get_business_by_phone_number(payload.get("to"))
        if not business:
            logger.warning(f"No business assigned to {payload.get('to')}")
            await self.telnyx.answer(call_id, client_state={"unavailable": True})
            return

        await self.db.create_call_log({
            "business_id": business["id"],
            "call_id": call_id,
            "from_number": payload.get("from"),
            "to_number": payload.get("to"),
            "caller_name": payload.get("caller_id_name"),
            "direction": "inbound",
            "status": CallStatus.INITIATED.value,
            "started_at": datetime.now(timezone.utc).isoformat(),
            "transcript": [],
        })
        await self.telnyx.answer(call_id, client_state={"business_id": business["id"]})

    async def on_answered(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        state = decode_client_state(payload.get("client_state"))

        business_id = state.get("business_id")
        business = await self.db.get_business(business_id) if business_id else None
        if state.get("unavailable") or not business:
            await self.telnyx.speak(call_id, UNAVAILABLE_MESSAGE, client_state={"state": "hangup"})
            return

        agent = await self.db.get_active_agent(business["id"])
        voice = (agent or {}).get("voice") or "female"
        language = (agent or {}).get("language") or "en-US"
        base_state = {"business_id": business["id"], "voice": voice, "language": language}

        call_log = await self.db.get_call_log_by_call_id(call_id)
        open_now = is_within_business_hours(business.get("business_hours"), tz_name=business.get("timezone"))

        if agent and open_now:
            greeting = get_greeting(business, agent)
            if call_log:
                await self.db.update_call_log(call_log["id"], {"status": CallStatus.IN_PROGRESS.value})
                await self.db.append_call_transcript(call_log, "assistant", greeting)
            await self.telnyx.speak(call_id, greeting, voice, language, client_state={**base_state, "state": "listen"})
            return

        policy = business.get("after_hours_policy") or AfterHoursPolicy.VOICEMAIL.value
        logger.info(f"Call {call_id} outside hours for business {business['id']}, policy {policy}")
        if call_log:
            await self.db.update_call_log(call_log["id"], {"after_hours": True})

        next_state = "record" if policy == AfterHoursPolicy.VOICEMAIL.value else "hangup"
        if policy == AfterHoursPolicy.SMS.value:
            await self._text_after_hours(business, payload.get("from"))

        await self.telnyx.speak(
            call_id,
            get_after_hours_message(business, policy),
            voice,
            language,
            client_state={**base_state, "state": next_state},
        )

    async def _text_after_hours(self, business: dict, caller: Optional[str]) -> None:
        if not caller or not business.get("phone_number"):
            return
        try:
            if await self.db.is_opted_out(business["id"], caller):
                return
            text = get_after_hours_sms(business)
            message_id = await self.telnyx.send_sms(business["phone_number"], caller, text)
            await self.db.log_sms({
                "business_id": business["id"],
                "from_number": business["phone_number"],
                "to_number": caller,
                "message_text": text,
                "direction": "outbound",
                "status": "sent",
                "message_type": "after_hours",
                "telnyx_message_id": message_id,
            })
        except Exception as e:
            logger.warning(f"After-hours SMS failed for business {business['id']}: {e}")

    async def on_speak_ended(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        state = decode_client_state(payload.get("client_state"))
        next_step = state.get("state")

        if next_step == "listen":
            if not state.get("transcribing"):
                await self.telnyx.transcription_start(call_id, client_state={**state, "transcribing": True})
        elif next_step == "record":
            await self.telnyx.record_start(call_id, max_length=MAX_VOICEMAIL_SECONDS)
        elif next_step == "transfer" and state.get("transfer_to"):
            await self.telnyx.transfer(call_id, state["transfer_to"])
        elif next_step == "hangup":
            await self.telnyx.hangup(call_id)

    async def on_transcription(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        transcription = payload.get("transcription_data") or {}
        text = (transcription.get("transcript") or "").strip()
        if not transcription.get("is_final") or not text:
            return

        call_log = await self.db.get_call_log_by_call_id(call_id)
        if not call_log:
            logger.warning(f"Transcription for unknown call {call_id}")
            return
        business = await self.db.get_business(call_log["business_id"])
        if not business:
            return

        state = decode_client_state(payload.get("client_state"))
        voice = state.get("voice") or "female"
        language = state.get("language") or "en-US"

        transcript = await self.db.append_call_transcript(call_log, "user", text)
        settings = await self.db.get_active_agent(business["id"])
        agent = self.agent_class(
            business,
            self.db,
            self.telnyx,
            call_id=call_id,
            caller_number=call_log.get("from_number"),
            channel="voice",
            settings=settings,
        )
        reply = await agent.respond(transcript)

        next_state = {
            "business_id": business["id"],
            "voice": voice,
            "language": language,
            "state": "listen",
            "transcribing": True,
        }
        reply_text = reply.text
        transfer_to = (settings or {}).get("escalation_phone") or business.get("notification_phone")
        if reply.transfer and transfer_to:
            reply_text = f"{reply_text} {get_transfer_message()}".strip()
            next_state.update({"state": "transfer", "transfer_to": transfer_to})
        elif reply.end_call:
            next_state["state"] = "hangup"

        await self.db.append_call_transcript(call_log, "assistant", reply_text)
        await self.telnyx.speak(call_id, reply_text, voice, language, client_state=next_state)

    async def on_recording_saved(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        call_log = await self.db.get_call_log_by_call_id(call_id)
        if not call_log:
            return

        urls = payload.get("recording_urls") or payload.get("public_recording_urls") or {}
        recording_url = urls.get("mp3") or urls.get("wav")
        await self.db.update_call_log(call_log["id"], {
            "recording_url": recording_url,
            "status": CallStatus.VOICEMAIL.value,
        })

        business = await self.db.get_business(call_log["business_id"])
        if business:
            try:
                await notify_owner(
                    self.db,
                    business,
                    "voicemail",
                    "New voicemail",
                    f"{call_log.get('caller_name') or call_log.get('from_number') or 'A caller'} left a voicemail.",
                    telnyx=self.telnyx,
                    sms=True,
                )
            except Exception as e:
                logger.warning(f"Voicemail notification failed for call {call_id}: {e}")

    async def on_hangup(self, payload: dict) -> None:
        call_id = payload.get("call_control_id")
        call_log = await self.db.get_call_log_by_call_id(call_id)
        if not call_log:
            return

        ended_at = datetime.now(timezone.utc)
        started = call_log.get("started_at") or call_log.get("created_at")
        duration = int((ended_at - parse_timestamp(started)).total_seconds()) if started else 0

        transcript = call_log.get("transcript") or []
        caller_spoke = any(m.get("role") == "user" for m in transcript)
        if caller_spoke:
            status = CallStatus.COMPLETED
        elif call_log.get("recording_url") or call_log.get("status") == CallStatus.VOICEMAIL.value:
            status = CallStatus.VOICEMAIL
        else:
            status = CallStatus.MISSED

        business = await self.db.get_business(call_log["business_id"])
        updates = {
            "status": status.value,
            "ended_at": ended_at.isoformat(),
            "duration_seconds": max(duration, 0),
            "hangup_cause": payload.get("hangup_cause"),
        }
        if caller_spoke:
            updates["summary"] = await summarize_conversation(
                transcript, (business or {}).get("business_name")
            )

        await self.db.update_call_log(call_log["id"], updates)
        logger.info(f"Call {call_id} ended: {status.value}, {updates['duration_seconds']}s")

        if status == CallStatus.COMPLETED and business:
            try:
                await LeadService(self.db, self.telnyx).create_from_call(business, {**call_log, **updates})
            except Exception as e:
                logger.warning(f"Lead creation failed for call {call_id}: {e}")
