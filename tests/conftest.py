"""
Shared pytest configuration and fixtures.

The Supabase client and Telnyx service are replaced with AsyncMocks; no test
touches the network.
"""

import os
import sys
from unittest.mock import AsyncMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Test settings must be in place before anything calls get_settings()
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["TELNYX_PUBLIC_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["STRIPE_PRICE_ID"] = "price_test"
os.environ["RESEND_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["BASE_URL"] = "https://app.cloudgreet.test"

from services.supabase_client import SupabaseClient  # noqa: E402
from services.telnyx_service import TelnyxService  # noqa: E402


@pytest.fixture
def business():
    return {
        "id": "biz-1",
        "business_name": "Acme HVAC",
        "business_type": "HVAC",
        "email": "owner@acmehvac.com",
        "phone": "+15555550100",
        "phone_number": "+18005550199",
        "notification_phone": "+15555550100",
        "sms_forwarding_enabled": True,
        "services": ["AC Repair", "Furnace Install"],
        "service_areas": ["Springfield"],
        "business_hours": {
            "monday": {"open": "08:00", "close": "17:00"},
            "tuesday": {"open": "08:00", "close": "17:00"},
            "wednesday": {"open": "08:00", "close": "17:00"},
            "thursday": {"open": "08:00", "close": "17:00"},
            "friday": {"open": "08:00", "close": "17:00"},
        },
        "timezone": "America/New_York",
        "greeting_message": "Thank you for calling Acme HVAC. How can I help you today?",
        "after_hours_policy": "voicemail",
        "subscription_status": "active",
        "stripe_customer_id": "cus_123",
        "onboarding_completed": True,
    }


@pytest.fixture
def mock_db():
    """SupabaseClient stand-in with empty-result defaults."""
    db = AsyncMock(spec=SupabaseClient)
    db.get_call_log_by_call_id.return_value = None
    db.get_business.return_value = None
    db.get_business_by_phone_number.return_value = None
    db.get_active_agent.return_value = None
    db.is_opted_out.return_value = False
    db.find_conflicting_appointments.return_value = []
    db.get_booking_fee_record.return_value = None
    db.reminder_already_sent.return_value = False
    db.get_appointments_starting_between.return_value = []
    db.get_unrecovered_missed_calls.return_value = []
    db.get_chat_history.return_value = []
    db.get_lead.return_value = None
    db.get_lead_by_phone.return_value = None
    db.list_appointments.return_value = []
    db.list_call_logs.return_value = []
    db.list_finance_records.return_value = []
    db.create_notification.return_value = {"id": "notif-1"}
    db.create_finance_record.return_value = {"id": "fin-1"}
    db.log_sms.return_value = {}

    async def append_call_transcript(call_log, role, content):
        call_log["transcript"] = list(call_log.get("transcript") or []) + [{"role": role, "content": content}]
        return call_log["transcript"]

    db.append_call_transcript.side_effect = append_call_transcript
    return db


@pytest.fixture
def mock_telnyx():
    telnyx = AsyncMock(spec=TelnyxService)
    telnyx.send_sms.return_value = "msg-123"
    return telnyx


@pytest.fixture
def client(mock_db, mock_telnyx):
    """TestClient with the database and Telnyx swapped for mocks. Lifespan is not run."""
    from fastapi.testclient import TestClient

    from main import app
    from routes.dependencies import get_optional_telnyx
    from services.supabase_client import get_supabase_client
    from services.telnyx_service import get_telnyx_service

    app.dependency_overrides[get_supabase_client] = lambda: mock_db
    app.dependency_overrides[get_telnyx_service] = lambda: mock_telnyx
    app.dependency_overrides[get_optional_telnyx] = lambda: mock_telnyx
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(business):
    from services.auth_service import create_access_token

    token = create_access_token("user-1", business["id"], "owner")
    return {"Authorization": f"Bearer {token}"}
