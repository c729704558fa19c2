"""Appointment booking, rescheduling and SMS reminders."""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from models.schemas import (
    AIBookingRequest,
    AppointmentCreateRequest,
    AppointmentStatus,
    AppointmentUpdateRequest,
    ReminderType,
)
from services.billing_service import BillingService
from services.business_hours import get_zone, parse_timestamp
from services.notifications import notify_owner
from services.phone import validate_and_format_phone
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

AI_BOOKING_DURATION_MINUTES = 60
DEFAULT_BOOKING_TIME = time(9, 0)

# Offset window from now in which an appointment gets each reminder
REMINDER_WINDOWS = {
    ReminderType.DAY_BEFORE: (timedelta(hours=24), timedelta(hours=25)),
    ReminderType.TWO_HOURS: (timedelta(hours=2), timedelta(hours=2, minutes=15)),
    ReminderType.ONE_HOUR: (timedelta(hours=1), timedelta(hours=1, minutes=15)),
}


class AppointmentError(Exception):
    """Raised when an appointment request can't be fulfilled."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


class BookingConflictError(AppointmentError):
    """The requested time overlaps an existing appointment."""

    def __init__(self, message: str = "This time slot is already booked. Please choose a different time."):
        super().__init__(message, status_code=409)


def format_date(moment: datetime) -> str:
    """e.g. Tuesday, October 20, 2026"""
    return f"{moment:%A, %B} {moment.day}, {moment.year}"


def format_time(moment: datetime) -> str:
    """e.g. 9:00 AM"""
    return f"{moment:%I:%M %p}".lstrip("0")


def reminder_message(appointment: dict, business: dict, reminder_type: str) -> str:
    """Build the reminder SMS for an appointment in the business's timezone."""
    start = parse_timestamp(appointment["start_time"]).astimezone(get_zone(business.get("timezone")))
    name = appointment.get("customer_name") or "there"
    business_name = business.get("business_name", "")
    when_date, when_time = format_date(start), format_time(start)

    if reminder_type == ReminderType.DAY_BEFORE:
        return (
            f"Hi {name}! This is a reminder that you have an appointment with {business_name} "
            f"tomorrow ({when_date}) at {when_time}. Please reply CONFIRM to confirm or RESCHEDULE "
            "to reschedule. Reply STOP to opt out."
        )
    if reminder_type == ReminderType.TWO_HOURS:
        return (
            f"Hi {name}! Your appointment with {business_name} is in 2 hours ({when_time}). "
            "We'll see you soon! Reply STOP to opt out."
        )
    if reminder_type == ReminderType.ONE_HOUR:
        return (
            f"Hi {name}! Your appointment with {business_name} is in 1 hour ({when_time}). "
            "We're looking forward to seeing you! Reply STOP to opt out."
        )
    return (
        f"Hi {name}! This is a reminder about your appointment with {business_name} "
        f"on {when_date} at {when_time}. Reply STOP to opt out."
    )


def confirmation_message(appointment: dict, business: dict) -> str:
    start = parse_timestamp(appointment["start_time"]).astimezone(get_zone(business.get("timezone")))
    service = appointment.get("service_type") or "service"
    return (
        f"Hi {appointment.get('customer_name')}! Your {service} appointment with "
        f"{business.get('business_name', '')} is confirmed for {format_date(start)} at "
        f"{format_time(start)}. Reply STOP to opt out."
    )


def parse_booking_time(scheduled_date: str, scheduled_time: Optional[str], tz_name: Optional[str]) -> datetime:
    """
    Combine a requested date and optional time into an aware datetime.

    Wall-clock values are read in the business timezone. A full ISO
    timestamp is also accepted as the date; without a time the booking
    defaults to 9:00.

    Raises:
        AppointmentError: If the date or time can't be parsed
    """
    zone = get_zone(tz_name)
    try:
        if scheduled_time:
            day = date.fromisoformat(scheduled_date[:10])
            at = time.fromisoformat(scheduled_time)
            return datetime.combine(day, at.replace(tzinfo=None), tzinfo=zone)

        if "T" in scheduled_date:
            moment = datetime.fromisoformat(scheduled_date.replace("Z", "+00:00"))
            return moment if moment.tzinfo else moment.replace(tzinfo=zone)

        return datetime.combine(date.fromisoformat(scheduled_date), DEFAULT_BOOKING_TIME, tzinfo=zone)
    except ValueError:
        raise AppointmentError(f"Invalid date or time: {scheduled_date} {scheduled_time or ''}".strip())


def _aware(moment: datetime, tz_name: Optional[str]) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=get_zone(tz_name))


class AppointmentService:
    """Creates appointments for a business and keeps its customers informed."""

    def __init__(
        self,
        db: SupabaseClient,
        telnyx: Optional[TelnyxService] = None,
        billing: Optional[BillingService] = None
    ):
        self.db = db
        self.telnyx = telnyx
        self.billing = billing or BillingService(db, telnyx)

    async def _send_customer_sms(self, business: dict, to_number: str, text: str, message_type: str) -> bool:
        """
        Text a customer from the business's number.

        Returns:
            False when the customer opted out or no number is configured
        """
        if not self.telnyx:
            logger.warning(f"Telephony not configured, skipping {message_type} SMS")
            return False
        from_number = business.get("phone_number")
        if not from_number:
            logger.warning(f"Business {business['id']} has no phone number, skipping {message_type} SMS")
            return False
        if await self.db.is_opted_out(business["id"], to_number):
            logger.info(f"{to_number} opted out, skipping {message_type} SMS")
            return False

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
        return True

    async def _check_conflicts(
        self,
        business_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[list[str]] = None,
        exclude_id: Optional[str] = None
    ) -> None:
        conflicts = await self.db.find_conflicting_appointments(
            business_id,
            start.astimezone(timezone.utc).isoformat(),
            end.astimezone(timezone.utc).isoformat(),
            statuses=statuses,
            exclude_id=exclude_id,
        )
        if conflicts:
            logger.warning(f"Appointment conflict for business {business_id} at {start.isoformat()}")
            raise BookingConflictError()

    async def create(self, business: dict, request: AppointmentCreateRequest) -> dict:
        """Book an appointment entered from the dashboard."""
        phone = validate_and_format_phone(request.customer_phone)
        if not phone:
            raise AppointmentError("Invalid phone number format")

        services = [s.lower() for s in business.get("services") or []]
        if services and request.service_type.strip().lower() not in services:
            raise AppointmentError(f"Service '{request.service_type}' is not offered by this business")

        start = _aware(request.start_time, business.get("timezone"))
        end = start + timedelta(minutes=request.duration_minutes)
        await self._check_conflicts(business["id"], start, end)

        appointment = await self.db.create_appointment({
            "business_id": business["id"],
            "customer_name": request.customer_name.strip(),
            "customer_phone": phone,
            "customer_email": request.customer_email,
            "service_type": request.service_type.strip(),
            "start_time": start.astimezone(timezone.utc).isoformat(),
            "end_time": end.astimezone(timezone.utc).isoformat(),
            "duration_minutes": request.duration_minutes,
            "estimated_value": request.estimated_value,
            "address": request.address,
            "notes": request.notes,
            "status": AppointmentStatus.SCHEDULED.value,
            "source": "manual",
            "confirmation_sent": False,
        })
        logger.info(f"Created appointment {appointment.get('id')} for business {business['id']}")
        return appointment

    async def update(self, business: dict, appointment_id: str, request: AppointmentUpdateRequest) -> dict:
        """
        Reschedule, change status or edit an appointment.

        Completing an appointment charges the booking fee if it hasn't been
        charged yet.

        Returns:
            {"appointment": row, "billing": charge result or None}
        """
        appointment = await self.db.get_appointment(business["id"], appointment_id)
        if not appointment:
            raise AppointmentError("Appointment not found", status_code=404)

        updates = request.model_dump(exclude_unset=True, exclude_none=True)

        if "start_time" in updates or "duration_minutes" in updates:
            duration = updates.get("duration_minutes") or appointment.get("duration_minutes") or 60
            if request.start_time:
                start = _aware(request.start_time, business.get("timezone"))
            else:
                start = parse_timestamp(appointment["start_time"])
            end = start + timedelta(minutes=duration)
            await self._check_conflicts(business["id"], start, end, exclude_id=appointment_id)
            updates["start_time"] = start.astimezone(timezone.utc).isoformat()
            updates["end_time"] = end.astimezone(timezone.utc).isoformat()
            updates["duration_minutes"] = duration

        if "status" in updates:
            updates["status"] = AppointmentStatus(updates["status"]).value

        updated = await self.db.update_appointment(appointment_id, updates) if updates else appointment

        charge = None
        if updates.get("status") == AppointmentStatus.COMPLETED.value:
            charge = await self._charge(business, updated or appointment)

        return {"appointment": updated, "billing": charge}

    async def cancel(self, business: dict, appointment_id: str) -> dict:
        appointment = await self.db.get_appointment(business["id"], appointment_id)
        if not appointment:
            raise AppointmentError("Appointment not found", status_code=404)
        logger.info(f"Cancelling appointment {appointment_id}")
        return await self.db.update_appointment(appointment_id, {"status": AppointmentStatus.CANCELLED.value})

    async def _charge(self, business: dict, appointment: dict, call_id: Optional[str] = None) -> Optional[dict]:
        try:
            return await self.billing.charge_booking_fee(business, appointment, call_id)
        except Exception as e:
            logger.error(f"Booking fee charge failed for appointment {appointment.get('id')}: {e}")
            return {"charged": False, "reason": str(e)}

    async def book_from_ai(self, request: AIBookingRequest, business: Optional[dict] = None) -> dict:
        """
        Book an appointment on behalf of a caller.

        The booking lasts an hour and conflicts with any scheduled or
        confirmed appointment it overlaps. After the insert the booking fee
        is charged, the customer gets a confirmation SMS and the owner is
        notified; each of these is best-effort.

        Returns:
            {"appointment": row, "billing": charge result, "confirmation_sent": bool}
        """
        business = business or await self.db.get_business(request.business_id)
        if not business:
            raise AppointmentError("Business not found", status_code=404)

        phone = validate_and_format_phone(request.customer_phone)
        if not phone:
            raise AppointmentError("Invalid phone number format")

        start = parse_booking_time(request.scheduled_date, request.scheduled_time, business.get("timezone"))
        end = start + timedelta(minutes=AI_BOOKING_DURATION_MINUTES)
        await self._check_conflicts(
            business["id"], start, end,
            statuses=[AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value],
        )

        service_type = (request.service_type or "").strip() or "General Service"
        appointment = await self.db.create_appointment({
            "business_id": business["id"],
            "customer_name": request.customer_name.strip(),
            "customer_phone": phone,
            "service_type": service_type,
            "start_time": start.astimezone(timezone.utc).isoformat(),
            "end_time": end.astimezone(timezone.utc).isoformat(),
            "duration_minutes": AI_BOOKING_DURATION_MINUTES,
            "address": request.customer_address or "",
            "notes": request.notes or "",
            "status": AppointmentStatus.SCHEDULED.value,
            "source": "ai_phone_call",
            "call_id": request.call_id,
            "confirmation_sent": False,
        })
        logger.info(f"AI booked appointment {appointment.get('id')} for business {business['id']}")

        charge = await self._charge(business, appointment, request.call_id)

        confirmation_sent = False
        try:
            confirmation_sent = await self._send_customer_sms(
                business, phone, confirmation_message(appointment, business), "appointment_confirmation"
            )
            if confirmation_sent:
                await self.db.update_appointment(appointment["id"], {"confirmation_sent": True})
                appointment["confirmation_sent"] = True
        except Exception as e:
            logger.error(f"SMS confirmation failed for appointment {appointment['id']}: {e}")

        local_start = start.astimezone(get_zone(business.get("timezone")))
        try:
            await notify_owner(
                self.db,
                business,
                "appointment",
                "New appointment booked by AI",
                f"Customer: {request.customer_name} ({phone}). Service: {service_type}. "
                f"Date: {format_date(local_start)} at {format_time(local_start)}. "
                "Check your dashboard for details.",
                priority="high",
                telnyx=self.telnyx,
                sms=True,
                email=True,
            )
        except Exception as e:
            logger.warning(f"Owner notification failed for appointment {appointment['id']}: {e}")

        return {"appointment": appointment, "billing": charge, "confirmation_sent": confirmation_sent}

    async def send_reminder(self, business: dict, appointment: dict, reminder_type: str) -> bool:
        """
        Text one reminder and record it.

        Returns:
            False when the customer opted out or SMS isn't configured

        Raises:
            Whatever the SMS provider raised, after recording the failure
        """
        reminder_type = ReminderType(reminder_type).value
        text = reminder_message(appointment, business, reminder_type)
        try:
            sent = await self._send_customer_sms(
                business, appointment["customer_phone"], text, "appointment_reminder"
            )
        except Exception:
            await self.db.record_reminder(appointment["id"], business["id"], reminder_type, "failed")
            raise

        if sent:
            await self.db.record_reminder(appointment["id"], business["id"], reminder_type, "sent")
            logger.info(f"Sent {reminder_type} reminder for appointment {appointment['id']}")
        return sent

    async def process_due_reminders(self, now: Optional[datetime] = None) -> dict:
        """Send every reminder that has come due across all businesses."""
        now = now or datetime.now(timezone.utc)
        results = {"sent": 0, "skipped": 0, "failed": 0}

        for reminder_type, (window_start, window_end) in REMINDER_WINDOWS.items():
            appointments = await self.db.get_appointments_starting_between(
                (now + window_start).isoformat(), (now + window_end).isoformat()
            )
            for appointment in appointments:
                business = appointment.get("businesses")
                if not business or not appointment.get("customer_phone"):
                    results["skipped"] += 1
                    continue
                try:
                    if await self.db.reminder_already_sent(appointment["id"], reminder_type.value):
                        results["skipped"] += 1
                        continue
                    if await self.send_reminder(business, appointment, reminder_type.value):
                        results["sent"] += 1
                    else:
                        results["skipped"] += 1
                except Exception as e:
                    logger.error(f"Reminder {reminder_type.value} failed for appointment {appointment['id']}: {e}")
                    results["failed"] += 1

        if results["sent"] or results["failed"]:
            logger.info(f"Reminder run: {results}")
        return results
