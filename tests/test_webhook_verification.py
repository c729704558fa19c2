"""Tests for Telnyx and Stripe webhook verification."""

import base64
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from services.webhook_verification import construct_stripe_event, verify_telnyx_signature

NOW = 1_800_000_000
BODY = b'{"data":{"event_type":"call.initiated"}}'


@pytest.fixture
def signing_key():
    private_key = Ed25519PrivateKey.generate()
    public_raw = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return private_key, base64.b64encode(public_raw).decode()


def sign(private_key, timestamp: str, body: bytes) -> str:
    return base64.b64encode(private_key.sign(f"{timestamp}|".encode() + body)).decode()


class TestVerifyTelnyxSignature:
    def test_valid_signature(self, signing_key):
        private_key, public_key = signing_key
        signature = sign(private_key, str(NOW), BODY)
        assert verify_telnyx_signature(BODY, signature, str(NOW), public_key=public_key, now=NOW)

    def test_tampered_body_is_rejected(self, signing_key):
        private_key, public_key = signing_key
        signature = sign(private_key, str(NOW), BODY)
        assert not verify_telnyx_signature(BODY + b" ", signature, str(NOW), public_key=public_key, now=NOW)

    def test_stale_timestamp_is_rejected(self, signing_key):
        private_key, public_key = signing_key
        old = str(NOW - 301)
        signature = sign(private_key, old, BODY)
        assert not verify_telnyx_signature(BODY, signature, old, public_key=public_key, now=NOW)

    def test_missing_headers_are_rejected(self, signing_key):
        _, public_key = signing_key
        assert not verify_telnyx_signature(BODY, None, str(NOW), public_key=public_key, now=NOW)
        assert not verify_telnyx_signature(BODY, "abc", None, public_key=public_key, now=NOW)

    def test_non_numeric_timestamp_is_rejected(self, signing_key):
        private_key, public_key = signing_key
        assert not verify_telnyx_signature(BODY, sign(private_key, "soon", BODY), "soon", public_key=public_key)

    def test_garbage_signature_is_rejected(self, signing_key):
        _, public_key = signing_key
        assert not verify_telnyx_signature(BODY, "bm90LWEtc2lnbmF0dXJl", str(NOW), public_key=public_key, now=NOW)

    def test_missing_key_rejected_outside_development(self):
        assert not verify_telnyx_signature(BODY, "sig", str(NOW), public_key="", now=NOW)

    def test_missing_key_allowed_in_development(self):
        with patch("services.webhook_verification.get_settings") as mock_settings:
            mock_settings.return_value.telnyx_public_key = ""
            mock_settings.return_value.is_development = True
            assert verify_telnyx_signature(BODY, None, None)


class TestConstructStripeEvent:
    def test_delegates_to_stripe(self):
        with patch("services.webhook_verification.stripe.Webhook.construct_event") as construct:
            construct.return_value = {"type": "checkout.session.completed"}
            event = construct_stripe_event(b"{}", "t=1,v1=abc")

        construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")
        assert event["type"] == "checkout.session.completed"

    def test_missing_secret_raises(self):
        with patch("services.webhook_verification.get_settings") as mock_settings:
            mock_settings.return_value.stripe_webhook_secret = ""
            with pytest.raises(ValueError):
                construct_stripe_event(b"{}", "sig")
