"""Lead tracking and lead scoring."""

import json
import logging
import re
from typing import Optional

from config import get_settings
from models.schemas import (
    AppointmentData,
    CallData,
    CustomerData,
    LeadCreateRequest,
    LeadPriority,
    LeadScore,
    LeadStatus,
)
from services.openai_client import get_openai_client
from services.phone import validate_and_format_phone
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

URGENCY_POINTS = {
    "immediate": 25,
    "this_week": 20,
    "this_month": 15,
    "sometime": 5,
}

NEXT_ACTIONS = {
    LeadPriority.URGENT: [
        "Call within 1 hour",
        "Send immediate proposal",
        "Schedule same-day appointment",
        "Assign to top salesperson",
    ],
    LeadPriority.HIGH: [
        "Call within 4 hours",
        "Send detailed quote within 24 hours",
        "Schedule appointment this week",
        "Follow up with case studies",
    ],
    LeadPriority.MEDIUM: [
        "Call within 24 hours",
        "Send information packet",
        "Schedule appointment next week",
        "Add to nurture sequence",
    ],
    LeadPriority.LOW: [
        "Call within 48 hours",
        "Send general information",
        "Add to monthly follow-up",
        "Monitor for changes",
    ],
    LeadPriority.VERY_LOW: [
        "Add to general follow-up list",
        "Send monthly newsletter",
        "Monitor for engagement",
        "Re-evaluate in 30 days",
    ],
}


class LeadError(Exception):
    """Raised for invalid lead operations."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


def _clamp(value, low: int = 0, high: int = 25) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return low
    return max(low, min(high, number))


BUDGET_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")


def _parse_budget(budget: Optional[str]) -> int:
    """Whole dollars of the first number in the budget; a range counts as its low end."""
    match = BUDGET_NUMBER.search(str(budget or ""))
    if not match:
        return 0
    return int(float(match.group().replace(",", "")))


def fallback_score(call_data: CallData, customer_data: CustomerData) -> LeadScore:
    """Rule-based score used when the model is unavailable or unparsable."""
    urgency = URGENCY_POINTS.get((call_data.urgency or "").lower(), 0)

    budget = _parse_budget(call_data.budget)
    if budget > 5000:
        value = 25
    elif budget > 2000:
        value = 20
    elif budget > 1000:
        value = 15
    elif budget > 500:
        value = 10
    else:
        value = 5

    fit = 0
    if customer_data.is_returning:
        fit += 10
    if (customer_data.referral_source or "").lower() == "referral":
        fit += 10
    if call_data.service:
        fit += 5

    duration = call_data.duration or 0
    if duration > 300:
        engagement = 25
    elif duration > 180:
        engagement = 20
    elif duration > 60:
        engagement = 15
    else:
        engagement = 5

    return build_score(urgency, value, fit, engagement,
                       "Fallback scoring based on call duration, urgency, and budget")


def build_score(urgency, value, fit, engagement, reasoning: str) -> LeadScore:
    """Clamp each component to 0-25; the total is always their sum."""
    parts = [_clamp(urgency), _clamp(value), _clamp(fit), _clamp(engagement)]
    return LeadScore(
        urgency=parts[0],
        value=parts[1],
        fit=parts[2],
        engagement=parts[3],
        total=sum(parts),
        reasoning=reasoning or "Score calculated based on call data",
    )


def priority_for(total: int) -> LeadPriority:
    if total >= 80:
        return LeadPriority.URGENT
    if total >= 60:
        return LeadPriority.HIGH
    if total >= 40:
        return LeadPriority.MEDIUM
    if total >= 20:
        return LeadPriority.LOW
    return LeadPriority.VERY_LOW


def next_actions(priority: LeadPriority) -> list[str]:
    return NEXT_ACTIONS.get(priority, NEXT_ACTIONS[LeadPriority.LOW])


def parse_score_reply(content: Optional[str]) -> Optional[LeadScore]:
    """Read the model's JSON score. Returns None if it isn't usable JSON."""
    if not content:
        return None
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return build_score(
        data.get("urgency"),
        data.get("value"),
        data.get("fit"),
        data.get("engagement"),
        str(data.get("reasoning") or ""),
    )


def _score_prompt(
    business: dict,
    call_data: CallData,
    customer_data: CustomerData,
    appointment_data: AppointmentData
) -> str:
    return f"""Calculate a lead score (0-100) for this potential customer.

Business: {business.get('business_name')} ({business.get('business_type')})

Call Data:
- Duration: {call_data.duration} seconds
- Service Interest: {call_data.service or 'Not specified'}
- Urgency: {call_data.urgency or 'Not specified'}
- Budget Mentioned: {call_data.budget or 'Not mentioned'}
- Timeline: {call_data.timeline or 'Not specified'}

Customer Data:
- Location: {customer_data.location or 'Not specified'}
- Previous Customer: {customer_data.is_returning}
- Referral Source: {customer_data.referral_source or 'Direct'}

Appointment Data:
- Scheduled: {appointment_data.scheduled}
- Appointment Value: ${appointment_data.estimated_value or 0}
- Service Type: {appointment_data.service_type or 'Not specified'}

Score each factor from 0 to 25 points:
1. URGENCY: How urgent is their need?
2. VALUE: What's the potential project value?
3. FIT: How well do they match the ideal customer?
4. ENGAGEMENT: How engaged were they in the conversation?

Reply with only a JSON object:
{{"urgency": 0, "value": 0, "fit": 0, "engagement": 0, "reasoning": "Brief explanation"}}"""


class LeadService:
    """Lead CRUD, status history and scoring for one database."""

    def __init__(self, db: SupabaseClient, telnyx: Optional[TelnyxService] = None):
        self.db = db
        self.telnyx = telnyx

    async def create(self, business: dict, request: LeadCreateRequest) -> dict:
        phone = validate_and_format_phone(request.phone)
        if not phone:
            raise LeadError("Invalid phone number format")

        if await self.db.get_lead_by_phone(business["id"], phone):
            raise LeadError("A lead with this phone number already exists", status_code=409)

        return await self.db.create_lead({
            "business_id": business["id"],
            "name": request.name,
            "phone": phone,
            "email": request.email,
            "source": request.source,
            "notes": request.notes,
            "status": LeadStatus.NEW.value,
        })

    async def change_status(
        self,
        business: dict,
        lead_id: str,
        status: LeadStatus,
        note: Optional[str] = None
    ) -> dict:
        """Move a lead to a new pipeline stage and record the transition."""
        lead = await self.db.get_lead(business["id"], lead_id)
        if not lead:
            raise LeadError("Lead not found", status_code=404)

        previous = lead.get("status") or LeadStatus.NEW.value
        new_status = LeadStatus(status).value
        if previous == new_status:
            return lead

        updated = await self.db.update_lead(lead_id, {"status": new_status})
        await self.db.record_lead_status_change(lead_id, business["id"], previous, new_status, note)
        logger.info(f"Lead {lead_id} moved from {previous} to {new_status}")
        return updated

    async def create_from_call(self, business: dict, call_log: dict) -> Optional[dict]:
        """Turn an inbound caller into a lead unless they already are one."""
        phone = validate_and_format_phone(call_log.get("from_number") or "")
        if not phone:
            return None
        if await self.db.get_lead_by_phone(business["id"], phone):
            return None

        lead = await self.db.create_lead({
            "business_id": business["id"],
            "name": call_log.get("caller_name"),
            "phone": phone,
            "source": "phone_call",
            "status": LeadStatus.NEW.value,
            "call_id": call_log.get("call_id"),
            "notes": call_log.get("summary"),
        })
        logger.info(f"Created lead from call {call_log.get('call_id')} for business {business['id']}")
        return lead

    async def ai_score(
        self,
        business: dict,
        call_data: CallData,
        customer_data: CustomerData,
        appointment_data: AppointmentData
    ) -> LeadScore:
        """Score with the model, falling back to the rule-based score."""
        try:
            client = get_openai_client()
            response = await client.chat.completions.create(
                model=get_settings().openai_model,
                messages=[{"role": "user", "content": _score_prompt(
                    business, call_data, customer_data, appointment_data
                )}],
                max_tokens=300,
                temperature=0.3,
            )
            score = parse_score_reply(response.choices[0].message.content)
            if score:
                return score
            logger.warning("Unparsable lead score reply, using fallback scoring")
        except Exception as e:
            logger.error(f"AI lead scoring failed: {e}")

        return fallback_score(call_data, customer_data)

    async def score(
        self,
        business: dict,
        call_data: CallData,
        customer_data: CustomerData,
        appointment_data: AppointmentData,
        lead_id: Optional[str] = None
    ) -> dict:
        """
        Score a lead, store the result and alert the owner for hot leads.

        Returns:
            {"score": LeadScore, "priority": str, "next_actions": [...]}
        """
        if lead_id and not await self.db.get_lead(business["id"], lead_id):
            raise LeadError("Lead not found", status_code=404)

        score = await self.ai_score(business, call_data, customer_data, appointment_data)
        priority = priority_for(score.total)
        actions = next_actions(priority)

        await self.db.create_lead_score({
            "business_id": business["id"],
            "lead_id": lead_id,
            "customer_phone": customer_data.phone,
            "urgency_score": score.urgency,
            "value_score": score.value,
            "fit_score": score.fit,
            "engagement_score": score.engagement,
            "total_score": score.total,
            "priority": priority.value,
            "reasoning": score.reasoning,
        })
        if lead_id:
            await self.db.update_lead(lead_id, {"score": score.total, "priority": priority.value})

        if priority in (LeadPriority.URGENT, LeadPriority.HIGH):
            await self._send_priority_alert(business, customer_data, score, priority, actions[0])

        return {"score": score, "priority": priority.value, "next_actions": actions}

    async def _send_priority_alert(
        self,
        business: dict,
        customer_data: CustomerData,
        score: LeadScore,
        priority: LeadPriority,
        action: str
    ) -> None:
        if not (business.get("sms_forwarding_enabled") and business.get("notification_phone")):
            return
        if not self.telnyx or not business.get("phone_number"):
            logger.warning(f"Can't send lead alert for business {business['id']}: no SMS route")
            return

        text = (
            "HIGH PRIORITY LEAD ALERT\n"
            f"Customer: {customer_data.name or 'Unknown'}\n"
            f"Phone: {customer_data.phone}\n"
            f"Score: {score.total}/100 ({priority.value.upper()})\n"
            f"Urgency: {score.urgency}/25\n"
            f"Value: {score.value}/25\n"
            f"Action Required: {action}"
        )
        try:
            await self.telnyx.send_sms(business["phone_number"], business["notification_phone"], text)
        except Exception as e:
            logger.warning(f"Lead alert SMS failed for business {business['id']}: {e}")
