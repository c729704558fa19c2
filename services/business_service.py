"""Business profile updates and onboarding."""

import logging
from typing import Optional

from models.schemas import AgentSettingsUpdateRequest, BusinessUpdateRequest, OnboardingRequest
from services.business_hours import get_zone
from services.phone import validate_and_format_phone
from services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    "business_name",
    "business_type",
    "services",
    "service_areas",
    "business_hours",
    "timezone",
    "greeting_message",
    "ai_tone",
    "after_hours_policy",
    "notification_phone",
    "sms_forwarding_enabled",
    "website",
    "address",
}


class BusinessError(Exception):
    """Raised for invalid profile updates."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


def profile_updates(request: BusinessUpdateRequest) -> dict:
    """
    Validate a profile update and turn it into column values.

    Raises:
        BusinessError: If the notification phone or timezone is invalid
    """
    updates = request.model_dump(include=PROFILE_FIELDS, exclude_unset=True, exclude_none=True)

    if "notification_phone" in updates:
        phone = validate_and_format_phone(updates["notification_phone"])
        if not phone:
            raise BusinessError("Invalid notification phone number")
        updates["notification_phone"] = phone

    if "timezone" in updates and get_zone(updates["timezone"]).key != updates["timezone"]:
        raise BusinessError(f"Unknown timezone {updates['timezone']}")

    if "after_hours_policy" in updates:
        updates["after_hours_policy"] = getattr(updates["after_hours_policy"], "value", updates["after_hours_policy"])

    if "business_hours" in updates:
        updates["business_hours"] = {
            day.lower(): hours for day, hours in updates["business_hours"].items()
            if hours.get("open") and hours.get("close")
        }

    for key in ("business_name", "business_type", "greeting_message"):
        if key in updates:
            updates[key] = updates[key].strip()

    return updates


class BusinessService:
    """Tenant profile and onboarding."""

    def __init__(self, db: SupabaseClient):
        self.db = db

    async def update_profile(self, business: dict, request: BusinessUpdateRequest) -> dict:
        updates = profile_updates(request)
        if not updates:
            return business
        return await self.db.update_business(business["id"], updates)

    async def complete_onboarding(self, business: dict, request: OnboardingRequest) -> dict:
        """
        Save the profile, configure the receptionist and assign a number.

        Onboarding completes even when the number pool is empty; the
        response then carries phone_number None.
        """
        updates = profile_updates(request)
        merged = {**business, **updates}

        greeting = merged.get("greeting_message") or (
            f"Thank you for calling {merged.get('business_name')}. How can I help you today?"
        )
        agent = await self.db.upsert_agent(business["id"], {
            "agent_name": request.agent_name,
            "greeting_message": greeting,
            "voice": request.voice,
            "language": request.language,
            "tone": merged.get("ai_tone") or "professional",
            "is_active": True,
        })

        phone_number: Optional[str] = business.get("phone_number")
        if not phone_number:
            phone_number = await self.db.assign_available_number(business["id"])
            if phone_number:
                updates["phone_number"] = phone_number

        updates["greeting_message"] = greeting
        updates["onboarding_completed"] = True
        updated = await self.db.update_business(business["id"], updates)

        logger.info(f"Onboarding completed for business {business['id']} (number: {phone_number})")
        return {"business": updated, "agent": agent, "phone_number": phone_number}

    async def get_agent_settings(self, business: dict) -> dict:
        agent = await self.db.get_active_agent(business["id"])
        if not agent:
            raise BusinessError("AI agent not found", status_code=404)
        return agent

    async def update_agent_settings(self, business: dict, request: AgentSettingsUpdateRequest) -> dict:
        """
        Change the active receptionist's greeting, voice, tone or instructions.

        The next call and the next text message pick the new values up.

        Raises:
            BusinessError: 404 before onboarding, 400 for a bad escalation phone
        """
        agent = await self.get_agent_settings(business)

        updates = request.model_dump(exclude_unset=True, exclude_none=True)
        if "tone" in updates:
            updates["tone"] = getattr(updates["tone"], "value", updates["tone"])
        if "escalation_phone" in updates:
            phone = validate_and_format_phone(updates["escalation_phone"])
            if not phone:
                raise BusinessError("Invalid escalation phone number")
            updates["escalation_phone"] = phone
        for key in ("agent_name", "greeting_message", "custom_instructions"):
            if key in updates:
                updates[key] = updates[key].strip()

        if not updates:
            return agent

        updated = await self.db.update_agent(agent["id"], updates)
        logger.info(f"Updated agent settings for business {business['id']}: {sorted(updates)}")
        return updated
