"""Signature verification for inbound provider webhooks."""

import base64
import logging
import time
from typing import Optional

import stripe
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from config import get_settings

logger = logging.getLogger(__name__)

# Webhooks older than this are treated as replays
MAX_TIMESTAMP_SKEW_SECONDS = 300


def verify_telnyx_signature(
    payload: bytes,
    signature: Optional[str],
    timestamp: Optional[str],
    public_key: Optional[str] = None,
    now: Optional[float] = None
) -> bool:
    """
    Verify a Telnyx webhook's Ed25519 signature.

    Telnyx signs "{timestamp}|{raw body}" and sends the base64 signature in
    telnyx-signature-ed25519 and the unix timestamp in telnyx-timestamp.

    Args:
        payload: Raw request body
        signature: Value of the telnyx-signature-ed25519 header
        timestamp: Value of the telnyx-timestamp header
        public_key: Base64 public key from the Telnyx portal (defaults to settings)
        now: Current unix time, for tests

    Returns:
        True if the webhook is authentic and fresh
    """
    settings = get_settings()
    public_key = public_key if public_key is not None else settings.telnyx_public_key

    if not public_key:
        if settings.is_development:
            logger.warning("TELNYX_PUBLIC_KEY not configured, skipping signature verification")
            return True
        logger.error("TELNYX_PUBLIC_KEY not configured, rejecting webhook")
        return False

    if not signature or not timestamp:
        logger.warning("Webhook missing signature or timestamp")
        return False

    try:
        webhook_time = int(timestamp)
    except ValueError:
        logger.warning(f"Webhook timestamp is not an integer: {timestamp!r}")
        return False

    current_time = int(now if now is not None else time.time())
    if abs(current_time - webhook_time) > MAX_TIMESTAMP_SKEW_SECONDS:
        logger.warning(f"Webhook timestamp too old: {current_time - webhook_time}s")
        return False

    try:
        key = Ed25519PublicKey.from_public_bytes(base64.b64decode(public_key))
        key.verify(base64.b64decode(signature), f"{timestamp}|".encode("utf-8") + payload)
        return True
    except InvalidSignature:
        logger.error(f"Invalid Telnyx webhook signature (payload length {len(payload)})")
        return False
    except ValueError as e:
        logger.error(f"Malformed Telnyx signature or public key: {e}")
        return False


def construct_stripe_event(payload: bytes, signature: Optional[str]):
    """
    Verify and parse a Stripe webhook.

    Raises:
        ValueError: If the payload isn't valid JSON or the secret is missing
        stripe.SignatureVerificationError: If the signature doesn't match
    """
    secret = get_settings().stripe_webhook_secret
    if not secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET must be set")
    return stripe.Webhook.construct_event(payload, signature or "", secret)
