"""Stripe billing: subscriptions and per-booking fees."""

import logging
from datetime import datetime, timezone
from typing import Optional

import stripe

from config import get_settings
from services.notifications import notify_owner
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


class BillingError(Exception):
    """Raised when Stripe can't complete a billing operation."""


class BillingService:
    """Charges per-booking fees and mirrors subscription state from Stripe."""

    def __init__(self, db: SupabaseClient, telnyx: Optional[TelnyxService] = None):
        self.db = db
        self.telnyx = telnyx
        self.settings = get_settings()
        if self.settings.stripe_secret_key:
            stripe.api_key = self.settings.stripe_secret_key

    def _require_stripe(self):
        if not self.settings.stripe_secret_key:
            raise BillingError("Stripe is not configured")

    async def charge_booking_fee(
        self,
        business: dict,
        appointment: dict,
        call_id: Optional[str] = None
    ) -> dict:
        """
        Charge the flat per-booking fee for an appointment.

        Nothing is charged without an active subscription or when the
        appointment's fee is already collected. A pending finance row holding
        the invoice id is written as soon as the invoice exists, so a retry
        after a failed payment resumes that invoice instead of billing again.
        Stripe calls carry idempotency keys derived from the appointment.

        Returns:
            {"charged": bool, ...} with amount (dollars), invoice_id and
            status when charged, or reason when not
        """
        if business.get("subscription_status") not in ACTIVE_SUBSCRIPTION_STATUSES:
            return {"charged": False, "reason": "No active subscription"}
        if not business.get("stripe_customer_id"):
            return {"charged": False, "reason": "No Stripe customer"}

        existing = await self.db.get_booking_fee_record(appointment["id"])
        resuming = bool(
            existing and existing.get("status") == "pending" and existing.get("stripe_invoice_id")
        )
        if existing and not resuming:
            return {
                "charged": False,
                "reason": "Already charged",
                "invoice_id": existing.get("stripe_invoice_id"),
            }

        self._require_stripe()

        fee = self.settings.per_booking_fee_cents
        customer_id = business["stripe_customer_id"]
        service_type = appointment.get("service_type") or "General Service"
        customer_name = appointment.get("customer_name") or "Customer"
        metadata = {
            "business_id": business["id"],
            "appointment_id": appointment["id"],
            "call_id": call_id or "",
        }
        key_prefix = f"booking-fee-{appointment['id']}"

        try:
            if resuming:
                invoice = stripe.Invoice.retrieve(existing["stripe_invoice_id"])
            else:
                stripe.InvoiceItem.create(
                    customer=customer_id,
                    amount=fee,
                    currency="usd",
                    description=f"Appointment booking fee - {customer_name} ({service_type})",
                    metadata=metadata,
                    idempotency_key=f"{key_prefix}-item",
                )
                invoice = stripe.Invoice.create(
                    customer=customer_id,
                    auto_advance=True,
                    collection_method="charge_automatically",
                    pending_invoice_items_behavior="include",
                    description=f"Appointment booking fee for {business.get('business_name', '')}",
                    metadata=metadata,
                    idempotency_key=f"{key_prefix}-invoice",
                )
        except stripe.StripeError as e:
            logger.error(f"Per-booking fee invoice failed for appointment {appointment['id']}: {e}")
            raise BillingError(str(e)) from e

        if resuming:
            record = existing
            logger.info(f"Resuming booking fee invoice {invoice['id']} for appointment {appointment['id']}")
        else:
            record = await self.db.create_finance_record({
                "business_id": business["id"],
                "appointment_id": appointment["id"],
                "amount": fee / 100,
                "currency": "USD",
                "type": "per_booking_fee",
                "status": "pending",
                "stripe_invoice_id": invoice["id"],
                "description": f"Booking fee for {customer_name}",
            })

        try:
            if invoice["status"] == "draft":
                invoice = stripe.Invoice.finalize_invoice(
                    invoice["id"], idempotency_key=f"{key_prefix}-finalize"
                )
            if invoice["status"] == "open":
                # Stripe replays a declined response for a reused key, so each attempt gets its own
                attempt = invoice.get("attempt_count") or 0
                invoice = stripe.Invoice.pay(
                    invoice["id"], idempotency_key=f"{key_prefix}-pay-{attempt}"
                )
        except stripe.StripeError as e:
            logger.error(f"Per-booking fee payment failed for appointment {appointment['id']}: {e}")
            raise BillingError(str(e)) from e

        status = invoice["status"]
        if status == "paid" and record.get("id"):
            await self.db.update_finance_record(record["id"], {"status": "completed"})

        logger.info(f"Charged booking fee for appointment {appointment['id']}: ${fee / 100:.2f} ({invoice['id']}, {status})")
        return {"charged": True, "amount": fee / 100, "invoice_id": invoice["id"], "status": status}

    async def create_checkout_session(self, business: dict) -> dict:
        """Start a subscription checkout, creating the Stripe customer if needed."""
        self._require_stripe()
        if not self.settings.stripe_price_id:
            raise BillingError("STRIPE_PRICE_ID is not configured")

        try:
            customer_id = business.get("stripe_customer_id")
            if not customer_id:
                customer = stripe.Customer.create(
                    email=business.get("email"),
                    name=business.get("business_name"),
                    metadata={"business_id": business["id"]},
                )
                customer_id = customer["id"]
                await self.db.update_business(business["id"], {"stripe_customer_id": customer_id})

            session = stripe.checkout.Session.create(
                mode="subscription",
                customer=customer_id,
                client_reference_id=business["id"],
                line_items=[{"price": self.settings.stripe_price_id, "quantity": 1}],
                success_url=f"{self.settings.base_url}/dashboard/billing?paid=1",
                cancel_url=f"{self.settings.base_url}/dashboard/billing?paid=0",
                metadata={"business_id": business["id"]},
            )
        except stripe.StripeError as e:
            logger.error(f"Checkout session failed for business {business['id']}: {e}")
            raise BillingError(str(e)) from e

        return {"url": session["url"], "session_id": session["id"]}

    async def handle_event(self, event) -> None:
        """Apply a verified Stripe webhook event to the businesses table."""
        event_type = event["type"]
        obj = event["data"]["object"]
        logger.info(f"Stripe webhook: {event_type}")

        if event_type == "checkout.session.completed":
            business_id = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("business_id")
            if not business_id:
                logger.warning("Checkout completed without a business reference")
                return
            await self.db.update_business(business_id, {
                "stripe_customer_id": obj.get("customer"),
                "stripe_subscription_id": obj.get("subscription"),
                "subscription_status": "active",
            })

        elif event_type in ("customer.subscription.created", "customer.subscription.updated",
                            "customer.subscription.deleted"):
            business = await self.db.get_business_by_stripe_customer(obj.get("customer"))
            if not business:
                logger.warning(f"No business for Stripe customer {obj.get('customer')}")
                return
            status = "canceled" if event_type == "customer.subscription.deleted" else obj.get("status")
            await self.db.update_business(business["id"], {
                "stripe_subscription_id": obj.get("id"),
                "subscription_status": status,
            })

        elif event_type == "invoice.payment_failed":
            business = await self.db.get_business_by_stripe_customer(obj.get("customer"))
            if not business:
                logger.warning(f"No business for Stripe customer {obj.get('customer')}")
                return
            await self.db.update_business(business["id"], {"subscription_status": "past_due"})
            amount = (obj.get("amount_due") or 0) / 100
            await notify_owner(
                self.db,
                business,
                "billing",
                "Payment failed",
                f"We couldn't collect ${amount:.2f} for your CloudGreet account. "
                "Please update your payment method to keep your receptionist live.",
                priority="high",
                telnyx=self.telnyx,
                email=True,
            )

        else:
            logger.debug(f"Ignoring Stripe event {event_type}")

    async def summary(self, business_id: str, now: Optional[datetime] = None) -> dict:
        """Booking fees charged this month and overall."""
        now = now or datetime.now(timezone.utc)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        records = await self.db.list_finance_records(business_id)
        fees = [r for r in records if r.get("type") == "per_booking_fee" and r.get("status") == "completed"]

        def in_month(record: dict) -> bool:
            created = record.get("created_at")
            if not created:
                return False
            created_at = datetime.fromisoformat(str(created).replace("Z", "+00:00"))
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            return created_at >= month_start

        this_month = [r for r in fees if in_month(r)]
        return {
            "bookings_charged_this_month": len(this_month),
            "fees_this_month": round(sum(float(r.get("amount") or 0) for r in this_month), 2),
            "bookings_charged_total": len(fees),
            "fees_total": round(sum(float(r.get("amount") or 0) for r in fees), 2),
        }
