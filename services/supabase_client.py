"""Supabase database client for all database operations."""

from datetime import datetime, timezone
from typing import Optional
import logging

from supabase import create_client, Client

from config import get_settings

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(response) -> Optional[dict]:
    return response.data[0] if response.data else None


class SupabaseClient:
    """Client for interacting with Supabase database."""

    def __init__(self):
        settings = get_settings()
        url = settings.supabase_url
        key = settings.supabase_service_key

        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

        self.client: Client = create_client(url, key)

    # ==================== Users ====================

    async def get_user_by_email(self, email: str) -> Optional[dict]:
        try:
            response = self.client.table("users").select("*").eq("email", email).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching user by email: {e}")
            raise

    async def get_user_by_id(self, user_id: str) -> Optional[dict]:
        try:
            response = self.client.table("users").select("*").eq("id", user_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            raise

    async def get_user_by_reset_token(self, token_hash: str) -> Optional[dict]:
        try:
            response = self.client.table("users").select("*").eq(
                "reset_token_hash", token_hash
            ).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching user by reset token: {e}")
            raise

    async def create_user(self, user_data: dict) -> dict:
        try:
            user_data = {**user_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("users").insert(user_data).execute()
            logger.info(f"Created user {user_data.get('email')}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating user: {e}")
            raise

    async def update_user(self, user_id: str, updates: dict) -> dict:
        try:
            updates["updated_at"] = _now()
            response = self.client.table("users").update(updates).eq("id", user_id).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise

    # ==================== Businesses ====================

    async def get_business(self, business_id: str) -> Optional[dict]:
        try:
            response = self.client.table("businesses").select("*").eq("id", business_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching business {business_id}: {e}")
            raise

    async def get_business_by_phone_number(self, phone_number: str) -> Optional[dict]:
        """
        Find the business that owns an inbound number.

        Looks the number up in the assigned toll-free pool first, then falls
        back to the phone_number column on businesses.
        """
        try:
            response = self.client.table("toll_free_numbers").select(
                "*, businesses(*)"
            ).eq("number", phone_number).eq("status", "assigned").limit(1).execute()

            record = _first(response)
            if record and record.get("businesses"):
                return record["businesses"]

            response = self.client.table("businesses").select("*").eq(
                "phone_number", phone_number
            ).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error finding business for number {phone_number}: {e}")
            raise

    async def get_business_by_stripe_customer(self, customer_id: str) -> Optional[dict]:
        try:
            response = self.client.table("businesses").select("*").eq(
                "stripe_customer_id", customer_id
            ).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching business for Stripe customer {customer_id}: {e}")
            raise

    async def create_business(self, business_data: dict) -> dict:
        try:
            business_data = {**business_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("businesses").insert(business_data).execute()
            logger.info(f"Created business {business_data.get('business_name')}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating business: {e}")
            raise

    async def update_business(self, business_id: str, updates: dict) -> dict:
        try:
            updates["updated_at"] = _now()
            response = self.client.table("businesses").update(updates).eq("id", business_id).execute()
            logger.info(f"Updated business {business_id}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating business {business_id}: {e}")
            raise

    async def delete_business(self, business_id: str) -> None:
        try:
            self.client.table("businesses").delete().eq("id", business_id).execute()
            logger.info(f"Deleted business {business_id}")
        except Exception as e:
            logger.error(f"Error deleting business {business_id}: {e}")
            raise

    # ==================== AI Agents ====================

    async def get_active_agent(self, business_id: str) -> Optional[dict]:
        try:
            response = self.client.table("ai_agents").select("*").eq(
                "business_id", business_id
            ).eq("is_active", True).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching agent for business {business_id}: {e}")
            raise

    async def upsert_agent(self, business_id: str, agent_data: dict) -> dict:
        """Update the business's agent row, creating it if none exists."""
        try:
            existing = self.client.table("ai_agents").select("id").eq(
                "business_id", business_id
            ).limit(1).execute()

            if existing.data:
                response = self.client.table("ai_agents").update({
                    **agent_data,
                    "updated_at": _now()
                }).eq("id", existing.data[0]["id"]).execute()
            else:
                response = self.client.table("ai_agents").insert({
                    **agent_data,
                    "business_id": business_id,
                    "created_at": _now(),
                    "updated_at": _now()
                }).execute()

            logger.info(f"Saved AI agent for business {business_id}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error saving agent for business {business_id}: {e}")
            raise

    async def update_agent(self, agent_id: str, updates: dict) -> dict:
        try:
            response = self.client.table("ai_agents").update({
                **updates,
                "updated_at": _now()
            }).eq("id", agent_id).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating agent {agent_id}: {e}")
            raise

    # ==================== Phone Numbers ====================

    async def assign_available_number(self, business_id: str) -> Optional[str]:
        """
        Claim the first available toll-free number for a business.

        The update is guarded on status='available' so two concurrent
        onboardings cannot claim the same number.

        Returns:
            The assigned number, or None if the pool is empty
        """
        try:
            response = self.client.table("toll_free_numbers").select("*").eq(
                "status", "available"
            ).order("created_at").limit(5).execute()

            for candidate in response.data or []:
                claimed = self.client.table("toll_free_numbers").update({
                    "status": "assigned",
                    "business_id": business_id,
                    "assigned_at": _now()
                }).eq("id", candidate["id"]).eq("status", "available").execute()

                if claimed.data:
                    logger.info(f"Assigned {candidate['number']} to business {business_id}")
                    return candidate["number"]

            logger.warning(f"No toll-free numbers available for business {business_id}")
            return None
        except Exception as e:
            logger.error(f"Error assigning number to business {business_id}: {e}")
            raise

    # ==================== Call Logs ====================

    async def create_call_log(self, call_data: dict) -> dict:
        try:
            call_data = {**call_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("call_logs").insert(call_data).execute()
            logger.info(f"Created call log for business {call_data.get('business_id')}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating call log: {e}")
            raise

    async def update_call_log(self, call_log_id: str, updates: dict) -> dict:
        try:
            updates["updated_at"] = _now()
            response = self.client.table("call_logs").update(updates).eq("id", call_log_id).execute()
            logger.info(f"Updated call log {call_log_id}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating call log: {e}")
            raise

    async def get_call_log_by_call_id(self, call_id: str) -> Optional[dict]:
        """Get call log by Telnyx call_control_id."""
        try:
            response = self.client.table("call_logs").select("*").eq("call_id", call_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching call log by call id: {e}")
            return None

    async def get_call_log(self, business_id: str, call_log_id: str) -> Optional[dict]:
        try:
            response = self.client.table("call_logs").select("*").eq(
                "business_id", business_id
            ).eq("id", call_log_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching call log {call_log_id}: {e}")
            raise

    async def list_call_logs(
        self,
        business_id: str,
        since: Optional[str] = None,
        limit: int = 500
    ) -> list[dict]:
        try:
            query = self.client.table("call_logs").select("*").eq("business_id", business_id)
            if since:
                query = query.gte("created_at", since)
            response = query.order("created_at", desc=True).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing call logs: {e}")
            raise

    async def append_call_transcript(self, call_log: dict, role: str, content: str) -> list[dict]:
        """Append one utterance to a call's transcript and persist it."""
        transcript = list(call_log.get("transcript") or [])
        transcript.append({
            "role": role,
            "content": content,
            "timestamp": _now()
        })
        await self.update_call_log(call_log["id"], {"transcript": transcript})
        call_log["transcript"] = transcript
        return transcript

    async def get_unrecovered_missed_calls(self, since: str) -> list[dict]:
        """Missed or failed calls since a time that haven't had a recovery SMS."""
        try:
            response = self.client.table("call_logs").select(
                "*, businesses(*)"
            ).in_("status", ["missed", "failed"]).gte(
                "created_at", since
            ).is_("recovery_sms_sent", "null").not_.is_("from_number", "null").execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching missed calls: {e}")
            raise

    # ==================== SMS ====================

    async def log_sms(self, sms_data: dict) -> dict:
        try:
            sms_data = {**sms_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("sms_messages").insert(sms_data).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error storing SMS: {e}")
            raise

    async def is_opted_out(self, business_id: str, phone_number: str) -> bool:
        try:
            response = self.client.table("sms_opt_outs").select("id").eq(
                "business_id", business_id
            ).eq("phone_number", phone_number).limit(1).execute()
            return bool(response.data)
        except Exception as e:
            logger.error(f"Error checking opt-out for {phone_number}: {e}")
            raise

    async def add_opt_out(self, business_id: str, phone_number: str) -> None:
        try:
            self.client.table("sms_opt_outs").upsert({
                "business_id": business_id,
                "phone_number": phone_number,
                "created_at": _now()
            }, on_conflict="business_id,phone_number").execute()
            logger.info(f"Opted out {phone_number} for business {business_id}")
        except Exception as e:
            logger.error(f"Error recording opt-out: {e}")
            raise

    async def remove_opt_out(self, business_id: str, phone_number: str) -> None:
        try:
            self.client.table("sms_opt_outs").delete().eq(
                "business_id", business_id
            ).eq("phone_number", phone_number).execute()
            logger.info(f"Opted in {phone_number} for business {business_id}")
        except Exception as e:
            logger.error(f"Error removing opt-out: {e}")
            raise

    async def get_chat_history(self, business_id: str, phone_number: str) -> list[dict]:
        try:
            response = self.client.table("chat_sessions").select("messages").eq(
                "business_id", business_id
            ).eq("phone_number", phone_number).limit(1).execute()
            session = _first(response)
            return (session or {}).get("messages") or []
        except Exception as e:
            logger.error(f"Error fetching chat history: {e}")
            raise

    async def save_chat_history(self, business_id: str, phone_number: str, messages: list[dict]) -> None:
        try:
            self.client.table("chat_sessions").upsert({
                "business_id": business_id,
                "phone_number": phone_number,
                "messages": messages,
                "updated_at": _now()
            }, on_conflict="business_id,phone_number").execute()
        except Exception as e:
            logger.error(f"Error saving chat history: {e}")
            raise

    # ==================== Appointments ====================

    async def create_appointment(self, appointment_data: dict) -> dict:
        try:
            appointment_data = {**appointment_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("appointments").insert(appointment_data).execute()
            logger.info(f"Created appointment for business {appointment_data.get('business_id')}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating appointment: {e}")
            raise

    async def get_appointment(self, business_id: str, appointment_id: str) -> Optional[dict]:
        try:
            response = self.client.table("appointments").select("*").eq(
                "business_id", business_id
            ).eq("id", appointment_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching appointment {appointment_id}: {e}")
            raise

    async def list_appointments(
        self,
        business_id: str,
        status: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        created_since: Optional[str] = None,
        limit: int = 500
    ) -> list[dict]:
        try:
            query = self.client.table("appointments").select("*").eq("business_id", business_id)
            if status:
                query = query.eq("status", status)
            if start:
                query = query.gte("start_time", start)
            if end:
                query = query.lt("start_time", end)
            if created_since:
                query = query.gte("created_at", created_since)
            response = query.order("start_time").limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing appointments: {e}")
            raise

    async def update_appointment(self, appointment_id: str, updates: dict) -> dict:
        try:
            updates["updated_at"] = _now()
            response = self.client.table("appointments").update(updates).eq("id", appointment_id).execute()
            logger.info(f"Updated appointment {appointment_id}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating appointment {appointment_id}: {e}")
            raise

    async def find_conflicting_appointments(
        self,
        business_id: str,
        start: str,
        end: str,
        statuses: Optional[list[str]] = None,
        exclude_id: Optional[str] = None
    ) -> list[dict]:
        """
        Appointments of a business whose interval intersects [start, end).

        Cancelled and no-show appointments never conflict unless statuses
        says otherwise.
        """
        try:
            query = self.client.table("appointments").select("id, start_time, end_time, status").eq(
                "business_id", business_id
            ).lt("start_time", end).gt("end_time", start)

            if statuses:
                query = query.in_("status", statuses)
            else:
                query = query.not_.in_("status", ["cancelled", "no_show"])

            if exclude_id:
                query = query.neq("id", exclude_id)

            response = query.execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error checking appointment conflicts: {e}")
            raise

    async def get_appointments_starting_between(self, start: str, end: str) -> list[dict]:
        """Scheduled appointments (all businesses) starting in [start, end)."""
        try:
            response = self.client.table("appointments").select(
                "*, businesses!inner(*)"
            ).in_("status", ["scheduled", "confirmed"]).gte(
                "start_time", start
            ).lt("start_time", end).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching upcoming appointments: {e}")
            raise

    async def reminder_already_sent(self, appointment_id: str, reminder_type: str) -> bool:
        try:
            response = self.client.table("appointment_reminders").select("id").eq(
                "appointment_id", appointment_id
            ).eq("reminder_type", reminder_type).eq("status", "sent").limit(1).execute()
            return bool(response.data)
        except Exception as e:
            logger.error(f"Error checking reminder history: {e}")
            raise

    async def record_reminder(self, appointment_id: str, business_id: str, reminder_type: str, status: str) -> None:
        try:
            self.client.table("appointment_reminders").insert({
                "appointment_id": appointment_id,
                "business_id": business_id,
                "reminder_type": reminder_type,
                "status": status,
                "sent_at": _now()
            }).execute()
        except Exception as e:
            logger.error(f"Error recording reminder: {e}")
            raise

    # ==================== Finance ====================

    async def get_booking_fee_record(self, appointment_id: str) -> Optional[dict]:
        try:
            response = self.client.table("finance").select("*").eq(
                "appointment_id", appointment_id
            ).eq("type", "per_booking_fee").limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching booking fee for appointment {appointment_id}: {e}")
            raise

    async def create_finance_record(self, record: dict) -> dict:
        try:
            record = {**record, "created_at": _now()}
            response = self.client.table("finance").insert(record).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error storing finance record: {e}")
            raise

    async def update_finance_record(self, record_id: str, updates: dict) -> dict:
        try:
            response = self.client.table("finance").update(updates).eq("id", record_id).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating finance record {record_id}: {e}")
            raise

    async def list_finance_records(self, business_id: str, since: Optional[str] = None) -> list[dict]:
        try:
            query = self.client.table("finance").select("*").eq("business_id", business_id)
            if since:
                query = query.gte("created_at", since)
            response = query.order("created_at", desc=True).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing finance records: {e}")
            raise

    # ==================== Quotes ====================

    async def get_pricing_rules(self, business_id: str, service_type: str) -> list[dict]:
        """Active pricing rules for one service type."""
        try:
            response = self.client.table("pricing_rules").select("*").eq(
                "business_id", business_id
            ).eq("service_type", service_type).eq("is_active", True).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching pricing rules for business {business_id}: {e}")
            raise

    async def create_quote(self, quote: dict) -> dict:
        try:
            response = self.client.table("quotes").insert({
                **quote,
                "created_at": _now(),
                "updated_at": _now()
            }).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error storing quote: {e}")
            raise

    async def list_quotes(self, business_id: str, limit: int = 50) -> list[dict]:
        try:
            response = self.client.table("quotes").select("*").eq(
                "business_id", business_id
            ).order("created_at", desc=True).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching quotes for business {business_id}: {e}")
            raise

    # ==================== Leads ====================

    async def create_lead(self, lead_data: dict) -> dict:
        try:
            lead_data = {**lead_data, "created_at": _now(), "updated_at": _now()}
            response = self.client.table("leads").insert(lead_data).execute()
            logger.info(f"Created lead for business {lead_data.get('business_id')}")
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating lead: {e}")
            raise

    async def get_lead(self, business_id: str, lead_id: str) -> Optional[dict]:
        try:
            response = self.client.table("leads").select("*").eq(
                "business_id", business_id
            ).eq("id", lead_id).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching lead {lead_id}: {e}")
            raise

    async def get_lead_by_phone(self, business_id: str, phone: str) -> Optional[dict]:
        try:
            response = self.client.table("leads").select("*").eq(
                "business_id", business_id
            ).eq("phone", phone).limit(1).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error fetching lead by phone: {e}")
            raise

    async def list_leads(
        self,
        business_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        limit: int = 100
    ) -> list[dict]:
        try:
            query = self.client.table("leads").select("*").eq("business_id", business_id)
            if status:
                query = query.eq("status", status)
            if priority:
                query = query.eq("priority", priority)
            response = query.order("created_at", desc=True).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing leads: {e}")
            raise

    async def update_lead(self, lead_id: str, updates: dict) -> dict:
        try:
            updates["updated_at"] = _now()
            response = self.client.table("leads").update(updates).eq("id", lead_id).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error updating lead {lead_id}: {e}")
            raise

    async def record_lead_status_change(
        self,
        lead_id: str,
        business_id: str,
        from_status: str,
        to_status: str,
        note: Optional[str] = None
    ) -> None:
        try:
            self.client.table("lead_status_history").insert({
                "lead_id": lead_id,
                "business_id": business_id,
                "from_status": from_status,
                "to_status": to_status,
                "note": note,
                "created_at": _now()
            }).execute()
        except Exception as e:
            logger.error(f"Error recording lead status change: {e}")
            raise

    async def create_lead_score(self, score_data: dict) -> dict:
        try:
            score_data = {**score_data, "created_at": _now()}
            response = self.client.table("lead_scores").insert(score_data).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error storing lead score: {e}")
            raise

    # ==================== Notifications ====================

    async def create_notification(self, notification: dict) -> dict:
        try:
            notification = {**notification, "read": False, "created_at": _now()}
            response = self.client.table("notifications").insert(notification).execute()
            return _first(response) or {}
        except Exception as e:
            logger.error(f"Error creating notification: {e}")
            raise

    async def list_notifications(self, business_id: str, unread_only: bool = False, limit: int = 50) -> list[dict]:
        try:
            query = self.client.table("notifications").select("*").eq("business_id", business_id)
            if unread_only:
                query = query.eq("read", False)
            response = query.order("created_at", desc=True).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing notifications: {e}")
            raise

    async def mark_notification_read(self, business_id: str, notification_id: str) -> Optional[dict]:
        try:
            response = self.client.table("notifications").update({"read": True}).eq(
                "business_id", business_id
            ).eq("id", notification_id).execute()
            return _first(response)
        except Exception as e:
            logger.error(f"Error marking notification {notification_id} read: {e}")
            raise


# Singleton instance
_client: Optional[SupabaseClient] = None


def get_supabase_client() -> SupabaseClient:
    """Get or create the Supabase client singleton."""
    global _client
    if _client is None:
        _client = SupabaseClient()
    return _client
