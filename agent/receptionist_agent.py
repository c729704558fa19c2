"""OpenAI-driven receptionist that answers calls and texts for a business."""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from config import get_settings
from models.schemas import AIBookingRequest
from services.appointment_service import (
    AppointmentError,
    AppointmentService,
    BookingConflictError,
    format_date,
    format_time,
)
from services.business_hours import find_available_slots, get_zone
from services.notifications import notify_owner
from services.openai_client import get_openai_client
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService
from .prompts import FALLBACK_REPLY, SMS_FOOTER, build_system_prompt

logger = logging.getLogger(__name__)

MAX_HISTORY_MESSAGES = 10
MAX_TOOL_ROUNDS = 3
MAX_SLOTS_OFFERED = 6

VOICE_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "check_availability",
            "description": "List open appointment times on a day. Use when the caller asks when someone can come out.",
            "parameters": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "The day to check, YYYY-MM-DD"},
                },
                "required": ["date"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "book_appointment",
            "description": "Book an appointment once the caller has agreed to a time.",
            "parameters": {
                "type": "object",
                "properties": {
                    "customer_name": {"type": "string"},
                    "customer_phone": {"type": "string", "description": "Callback number; omit to use the caller's number"},
                    "service_type": {"type": "string"},
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                    "time": {"type": "string", "description": "24-hour HH:MM"},
                    "address": {"type": "string"},
                    "notes": {"type": "string"},
                },
                "required": ["customer_name", "service_type", "date", "time"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "take_message",
            "description": "Pass a message from the caller to the business owner.",
            "parameters": {
                "type": "object",
                "properties": {
                    "caller_name": {"type": "string"},
                    "message": {"type": "string"},
                },
                "required": ["message"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "end_call",
            "description": "Hang up after saying goodbye. Use when the caller is done.",
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "transfer_to_human",
            "description": "Transfer the caller to a person at the business.",
            "parameters": {"type": "object", "properties": {}},
        },
    },
]

SMS_TOOL_NAMES = {"check_availability", "book_appointment", "take_message"}


@dataclass
class AgentReply:
    """One receptionist turn."""
    text: str
    end_call: bool = False
    transfer: bool = False


class ReceptionistAgent:
    """
    The receptionist for one business on one conversation.

    Each call to respond() is a single turn: the conversation so far goes in,
    the receptionist's next line comes out. Tools the model asks for are run
    against the database before the reply is produced.
    """

    def __init__(
        self,
        business: dict,
        db: SupabaseClient,
        telnyx: Optional[TelnyxService] = None,
        call_id: Optional[str] = None,
        caller_number: Optional[str] = None,
        channel: str = "voice",
        appointments: Optional[AppointmentService] = None,
        settings: Optional[dict] = None
    ):
        self.business = business
        self.settings = settings
        self.db = db
        self.telnyx = telnyx
        self.call_id = call_id
        self.caller_number = caller_number
        self.channel = channel
        self.appointments = appointments or AppointmentService(db, telnyx)

        # Set by tools during a turn
        self.end_requested = False
        self.transfer_requested = False
        self.booked_appointment: Optional[dict] = None

    @property
    def tools(self) -> list[dict]:
        if self.channel == "sms":
            return [t for t in VOICE_TOOLS if t["function"]["name"] in SMS_TOOL_NAMES]
        return VOICE_TOOLS

    def _system_prompt(self) -> str:
        today = datetime.now(timezone.utc).astimezone(get_zone(self.business.get("timezone"))).date()
        return build_system_prompt(
            self.business, self.channel, today=f"{today.isoformat()} ({today:%A})", agent=self.settings
        )

    async def respond(self, history: list[dict]) -> AgentReply:
        """
        Produce the receptionist's next reply.

        Args:
            history: Prior messages as {"role": "user"|"assistant", "content": str};
                only the most recent ones are sent to the model

        Returns:
            AgentReply; a fixed call-back message if the model is unavailable
        """
        self.end_requested = False
        self.transfer_requested = False

        messages = [{"role": "system", "content": self._system_prompt()}]
        messages += [
            {"role": m["role"], "content": m["content"]}
            for m in history[-MAX_HISTORY_MESSAGES:]
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]

        try:
            client = get_openai_client()
            text = ""
            for round_number in range(MAX_TOOL_ROUNDS + 1):
                # Last round must answer in words
                tool_choice = "auto" if round_number < MAX_TOOL_ROUNDS else "none"

                response = await client.chat.completions.create(
                    model=get_settings().openai_model,
                    messages=messages,
                    tools=self.tools,
                    tool_choice=tool_choice,
                    max_tokens=200,
                    temperature=0.4,
                )
                message = response.choices[0].message

                if not message.tool_calls:
                    text = (message.content or "").strip()
                    break

                messages.append({
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function.name, "arguments": call.function.arguments},
                        }
                        for call in message.tool_calls
                    ],
                })
                for call in message.tool_calls:
                    result = await self.run_tool(call.function.name, call.function.arguments)
                    messages.append({"role": "tool", "tool_call_id": call.id, "content": result})

        except Exception as e:
            logger.error(f"Receptionist turn failed for business {self.business.get('id')}: {e}")
            return AgentReply(text=FALLBACK_REPLY)

        if not text:
            text = "Thank you for calling. Goodbye!" if self.end_requested else FALLBACK_REPLY
        if self.channel == "sms" and SMS_FOOTER not in text:
            text = f"{text} {SMS_FOOTER}"

        return AgentReply(text=text, end_call=self.end_requested, transfer=self.transfer_requested)

    async def run_tool(self, name: str, arguments: Optional[str]) -> str:
        """Run one tool call and return what the model should hear back."""
        try:
            args = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            args = {}

        logger.info(f"Receptionist tool call: {name}")
        if name == "check_availability":
            return await self.check_availability(args.get("date", ""))
        if name == "book_appointment":
            return await self.book_appointment(
                customer_name=args.get("customer_name"),
                customer_phone=args.get("customer_phone"),
                service_type=args.get("service_type"),
                booking_date=args.get("date"),
                booking_time=args.get("time"),
                address=args.get("address"),
                notes=args.get("notes"),
            )
        if name == "take_message":
            return await self.take_message(args.get("caller_name"), args.get("message", ""))
        if name == "end_call":
            self.end_requested = True
            return "The call will end after your reply."
        if name == "transfer_to_human":
            self.transfer_requested = True
            return "The caller will be transferred after your reply."
        return f"Unknown tool {name}."

    # Tool functions
    async def check_availability(self, day: str) -> str:
        try:
            requested = date.fromisoformat(day)
        except ValueError:
            return "I need the date as YYYY-MM-DD."

        try:
            zone = get_zone(self.business.get("timezone"))
            day_start = datetime.combine(requested, time.min, tzinfo=zone)
            appointments = await self.db.list_appointments(
                self.business["id"],
                start=(day_start - timedelta(hours=12)).astimezone(timezone.utc).isoformat(),
                end=(day_start + timedelta(hours=36)).astimezone(timezone.utc).isoformat(),
            )
            slots = find_available_slots(
                self.business.get("business_hours"),
                requested,
                self.business.get("timezone"),
                appointments,
            )
        except Exception as e:
            logger.error(f"Error checking availability: {e}")
            return "Sorry, I couldn't check the schedule right now."

        if not slots:
            return f"No openings on {format_date(day_start)}."
        times = ", ".join(format_time(s) for s in slots[:MAX_SLOTS_OFFERED])
        return f"Open times on {format_date(day_start)}: {times}."

    async def book_appointment(
        self,
        customer_name: Optional[str],
        customer_phone: Optional[str],
        service_type: Optional[str],
        booking_date: Optional[str],
        booking_time: Optional[str],
        address: Optional[str] = None,
        notes: Optional[str] = None
    ) -> str:
        phone = customer_phone or self.caller_number
        if not customer_name or not phone or not booking_date:
            return "I still need the customer's name, phone number and the date."

        try:
            request = AIBookingRequest(
                business_id=self.business["id"],
                call_id=self.call_id,
                customer_name=customer_name,
                customer_phone=phone,
                customer_address=address,
                service_type=service_type,
                scheduled_date=booking_date,
                scheduled_time=booking_time,
                notes=notes,
            )
            result = await self.appointments.book_from_ai(request, business=self.business)
        except BookingConflictError:
            return "That time is already taken. Offer the caller a different time."
        except AppointmentError as e:
            return f"Booking failed: {e}"
        except ValueError as e:
            return f"Booking details were invalid: {e}"
        except Exception as e:
            logger.error(f"Error booking appointment: {e}")
            return "Sorry, I couldn't book that right now. Offer to take a message instead."

        self.booked_appointment = result["appointment"]
        confirmed = " A confirmation text is on its way." if result.get("confirmation_sent") else ""
        return f"Booked {service_type or 'service'} for {customer_name} on {booking_date} at {booking_time or '09:00'}.{confirmed}"

    async def take_message(self, caller_name: Optional[str], message: str) -> str:
        if not message:
            return "What message should I pass along?"

        caller = caller_name or "A caller"
        number = f" ({self.caller_number})" if self.caller_number else ""
        try:
            await notify_owner(
                self.db,
                self.business,
                "message",
                f"Message from {caller}",
                f"{caller}{number} says: {message}",
                telnyx=self.telnyx,
                sms=True,
            )
        except Exception as e:
            logger.error(f"Error taking message: {e}")
            return "Sorry, I couldn't save that message."
        return "Message passed to the owner. Tell the caller someone will get back to them."


async def summarize_conversation(transcript: list[dict], business_name: Optional[str] = None) -> str:
    """Summarize a call in 2-3 sentences using OpenAI."""
    if not transcript:
        return "No conversation recorded."

    try:
        transcript_text = "\n".join(f"{msg['role']}: {msg['content']}" for msg in transcript)
        summary_prompt = f"""Summarize this call to {business_name or 'a service business'} in 2-3 sentences.
Focus on: who called, what they needed, and what was agreed (booking, message, follow-up).

Transcript:
{transcript_text}"""

        response = await get_openai_client().chat.completions.create(
            model=get_settings().openai_model,
            messages=[{"role": "user", "content": summary_prompt}],
            max_tokens=200,
        )
        return response.choices[0].message.content or "Call completed."

    except Exception as e:
        logger.error(f"Error generating summary: {e}")
        caller_lines = [msg["content"] for msg in transcript if msg.get("role") == "user"]
        if not caller_lines:
            return "Call completed. The caller did not say anything."
        return f"Call completed with {len(caller_lines)} caller messages. Caller said: {caller_lines[0][:200]}"
