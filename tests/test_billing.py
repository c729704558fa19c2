"""Tests for Stripe billing."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import stripe

from services.billing_service import BillingError, BillingService

APPOINTMENT = {"id": "appt-1", "customer_name": "Pat Lee", "service_type": "AC Repair"}


@pytest.fixture
def stripe_calls():
    with patch.object(stripe.InvoiceItem, "create") as item_create, \
            patch.object(stripe.Invoice, "create") as invoice_create, \
            patch.object(stripe.Invoice, "retrieve") as retrieve, \
            patch.object(stripe.Invoice, "finalize_invoice") as finalize, \
            patch.object(stripe.Invoice, "pay") as pay:
        invoice_create.return_value = {"id": "in_1", "status": "draft"}
        finalize.return_value = {"id": "in_1", "status": "open", "attempt_count": 0}
        pay.return_value = {"id": "in_1", "status": "paid"}
        yield {
            "item": item_create,
            "invoice": invoice_create,
            "retrieve": retrieve,
            "finalize": finalize,
            "pay": pay,
        }


class TestChargeBookingFee:
    async def test_charges_and_records(self, mock_db, business, stripe_calls):
        result = await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT, "call-1")

        assert result == {"charged": True, "amount": 50.0, "invoice_id": "in_1", "status": "paid"}
        item_kwargs = stripe_calls["item"].call_args.kwargs
        assert item_kwargs["customer"] == "cus_123"
        assert item_kwargs["amount"] == 5000
        assert item_kwargs["idempotency_key"] == "booking-fee-appt-1-item"
        assert stripe_calls["invoice"].call_args.kwargs["idempotency_key"] == "booking-fee-appt-1-invoice"
        stripe_calls["finalize"].assert_called_once_with("in_1", idempotency_key="booking-fee-appt-1-finalize")
        stripe_calls["pay"].assert_called_once_with("in_1", idempotency_key="booking-fee-appt-1-pay-0")

        record = mock_db.create_finance_record.call_args[0][0]
        assert record["type"] == "per_booking_fee"
        assert record["amount"] == 50.0
        assert record["status"] == "pending"
        assert record["stripe_invoice_id"] == "in_1"
        mock_db.update_finance_record.assert_awaited_once_with("fin-1", {"status": "completed"})

    async def test_unpaid_invoice_is_pending(self, mock_db, business, stripe_calls):
        stripe_calls["pay"].return_value = {"id": "in_1", "status": "open"}
        result = await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)
        assert result["status"] == "open"
        assert mock_db.create_finance_record.call_args[0][0]["status"] == "pending"
        mock_db.update_finance_record.assert_not_awaited()

    async def test_no_subscription(self, mock_db, business, stripe_calls):
        result = await BillingService(mock_db).charge_booking_fee(
            {**business, "subscription_status": "canceled"}, APPOINTMENT
        )
        assert result == {"charged": False, "reason": "No active subscription"}
        stripe_calls["item"].assert_not_called()

    async def test_already_charged(self, mock_db, business, stripe_calls):
        mock_db.get_booking_fee_record.return_value = {"stripe_invoice_id": "in_0", "status": "completed"}
        result = await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)
        assert result["charged"] is False
        assert result["reason"] == "Already charged"
        stripe_calls["item"].assert_not_called()

    async def test_stripe_error(self, mock_db, business, stripe_calls):
        stripe_calls["item"].side_effect = stripe.StripeError("api down")
        with pytest.raises(BillingError):
            await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)
        mock_db.create_finance_record.assert_not_awaited()

    async def test_declined_payment_then_retry_pays_same_invoice(self, mock_db, business, stripe_calls):
        stripe_calls["pay"].side_effect = stripe.CardError("card declined", None, "card_declined")

        with pytest.raises(BillingError):
            await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)

        pending = mock_db.create_finance_record.call_args[0][0]
        assert pending["status"] == "pending"
        assert pending["stripe_invoice_id"] == "in_1"
        mock_db.update_finance_record.assert_not_awaited()

        # The retry finds the pending row and resumes the open invoice
        mock_db.get_booking_fee_record.return_value = {"id": "fin-1", **pending}
        mock_db.create_finance_record.reset_mock()
        stripe_calls["item"].reset_mock()
        stripe_calls["invoice"].reset_mock()
        stripe_calls["finalize"].reset_mock()
        stripe_calls["retrieve"].return_value = {"id": "in_1", "status": "open", "attempt_count": 1}
        stripe_calls["pay"].side_effect = None
        stripe_calls["pay"].reset_mock()

        result = await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)

        assert result == {"charged": True, "amount": 50.0, "invoice_id": "in_1", "status": "paid"}
        stripe_calls["retrieve"].assert_called_once_with("in_1")
        stripe_calls["item"].assert_not_called()
        stripe_calls["invoice"].assert_not_called()
        stripe_calls["finalize"].assert_not_called()
        stripe_calls["pay"].assert_called_once_with("in_1", idempotency_key="booking-fee-appt-1-pay-1")
        mock_db.create_finance_record.assert_not_awaited()
        mock_db.update_finance_record.assert_awaited_once_with("fin-1", {"status": "completed"})

    async def test_resume_finalizes_draft_invoice(self, mock_db, business, stripe_calls):
        mock_db.get_booking_fee_record.return_value = {
            "id": "fin-1", "status": "pending", "stripe_invoice_id": "in_1",
        }
        stripe_calls["retrieve"].return_value = {"id": "in_1", "status": "draft"}

        result = await BillingService(mock_db).charge_booking_fee(business, APPOINTMENT)

        assert result["status"] == "paid"
        stripe_calls["finalize"].assert_called_once_with("in_1", idempotency_key="booking-fee-appt-1-finalize")
        stripe_calls["pay"].assert_called_once()


class TestCheckout:
    async def test_creates_customer_when_missing(self, mock_db, business):
        with patch.object(stripe.Customer, "create") as customer_create, \
                patch.object(stripe.checkout.Session, "create") as session_create:
            customer_create.return_value = {"id": "cus_new"}
            session_create.return_value = {"id": "cs_1", "url": "https://checkout.stripe.com/cs_1"}

            result = await BillingService(mock_db).create_checkout_session({**business, "stripe_customer_id": None})

        assert result == {"url": "https://checkout.stripe.com/cs_1", "session_id": "cs_1"}
        mock_db.update_business.assert_awaited_once_with(business["id"], {"stripe_customer_id": "cus_new"})
        kwargs = session_create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["client_reference_id"] == business["id"]
        assert kwargs["line_items"] == [{"price": "price_test", "quantity": 1}]


class TestHandleEvent:
    async def test_checkout_completed_activates(self, mock_db):
        event = {"type": "checkout.session.completed", "data": {"object": {
            "client_reference_id": "biz-1", "customer": "cus_1", "subscription": "sub_1",
        }}}
        await BillingService(mock_db).handle_event(event)
        mock_db.update_business.assert_awaited_once_with("biz-1", {
            "stripe_customer_id": "cus_1", "stripe_subscription_id": "sub_1", "subscription_status": "active",
        })

    async def test_subscription_deleted(self, mock_db, business):
        mock_db.get_business_by_stripe_customer.return_value = business
        event = {"type": "customer.subscription.deleted", "data": {"object": {
            "id": "sub_1", "customer": "cus_123", "status": "canceled",
        }}}
        await BillingService(mock_db).handle_event(event)
        assert mock_db.update_business.call_args[0][1]["subscription_status"] == "canceled"

    async def test_payment_failed_notifies_owner(self, mock_db, business):
        mock_db.get_business_by_stripe_customer.return_value = business
        event = {"type": "invoice.payment_failed", "data": {"object": {"customer": "cus_123", "amount_due": 9900}}}

        await BillingService(mock_db).handle_event(event)

        assert mock_db.update_business.call_args[0][1] == {"subscription_status": "past_due"}
        notification = mock_db.create_notification.call_args[0][0]
        assert notification["type"] == "billing"
        assert "$99.00" in notification["message"]


class TestSummary:
    async def test_counts_completed_fees(self, mock_db):
        mock_db.list_finance_records.return_value = [
            {"type": "per_booking_fee", "status": "completed", "amount": 50, "created_at": "2026-10-02T10:00:00Z"},
            {"type": "per_booking_fee", "status": "completed", "amount": 50, "created_at": "2026-09-20T10:00:00Z"},
            {"type": "per_booking_fee", "status": "pending", "amount": 50, "created_at": "2026-10-03T10:00:00Z"},
            {"type": "subscription", "status": "completed", "amount": 199, "created_at": "2026-10-01T10:00:00Z"},
        ]
        summary = await BillingService(mock_db).summary("biz-1", now=datetime(2026, 10, 19, tzinfo=timezone.utc))
        assert summary == {
            "bookings_charged_this_month": 1,
            "fees_this_month": 50.0,
            "bookings_charged_total": 2,
            "fees_total": 100.0,
        }


class TestStripeWebhookRoute:
    def test_bad_signature(self, client):
        with patch("routes.billing.construct_stripe_event") as construct:
            construct.side_effect = stripe.SignatureVerificationError("bad", "sig")
            response = client.post("/api/billing/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert response.status_code == 400

    def test_verified_event_is_acknowledged(self, client, mock_db):
        event = {"type": "checkout.session.completed", "data": {"object": {"client_reference_id": "biz-1"}}}
        with patch("routes.billing.construct_stripe_event", return_value=event):
            response = client.post("/api/billing/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert response.status_code == 200
        assert response.json() == {"received": True}
        mock_db.update_business.assert_awaited_once()

    def test_handler_errors_still_acknowledge(self, client, mock_db):
        mock_db.update_business.side_effect = RuntimeError("db down")
        event = {"type": "checkout.session.completed", "data": {"object": {"client_reference_id": "biz-1"}}}
        with patch("routes.billing.construct_stripe_event", return_value=event):
            response = client.post("/api/billing/webhook", content=b"{}")
        assert response.status_code == 200

    def test_per_booking_missing_appointment(self, client, mock_db, business, auth_headers):
        mock_db.get_business.return_value = business
        mock_db.get_appointment.return_value = None
        response = client.post("/api/billing/per-booking", json={"appointment_id": "nope"}, headers=auth_headers)
        assert response.status_code == 404
