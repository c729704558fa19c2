"""
Telnyx service for SMS and Call Control.

Inbound calls are driven by Telnyx Call Control webhooks: every event arrives
separately and we respond by issuing commands (answer, speak, start
transcription, record, hangup) against the call_control_id. Per-call context
that must survive between events travels in client_state.

See: https://developers.telnyx.com/docs/voice/programmable-voice
"""

import base64
import json
import logging
from typing import Optional

import httpx

from config import get_settings

logger = logging.getLogger(__name__)


class TelnyxError(Exception):
    """Raised when the Telnyx API rejects a request or can't be reached."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Telnyx API error {status_code}: {body}")


def encode_client_state(state: dict) -> str:
    return base64.b64encode(json.dumps(state).encode("utf-8")).decode("ascii")


def decode_client_state(value: Optional[str]) -> dict:
    """Decode client_state from a webhook, returning {} for anything unreadable."""
    if not value:
        return {}
    try:
        decoded = json.loads(base64.b64decode(value).decode("utf-8"))
        return decoded if isinstance(decoded, dict) else {}
    except (ValueError, UnicodeDecodeError):
        logger.warning("Ignoring undecodable client_state")
        return {}


class TelnyxService:
    """Thin async wrapper around the Telnyx v2 REST API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.telnyx_api_key
        self.base_url = (base_url or settings.telnyx_base_url).rstrip("/")

        if not self.api_key:
            raise ValueError("TELNYX_API_KEY must be set")

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=15.0,
        )

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            response = await self.client.post(path, json=payload)
        except httpx.RequestError as e:
            logger.error(f"Telnyx request to {path} failed: {e}")
            raise TelnyxError(503, f"Request failed: {e}") from e
        if response.status_code >= 300:
            raise TelnyxError(response.status_code, response.text)
        return response.json() if response.content else {}

    # ==================== Messaging ====================

    async def send_sms(self, from_number: str, to_number: str, text: str) -> Optional[str]:
        """
        Send an SMS.

        Args:
            from_number: The business number sending the message (E.164)
            to_number: The recipient (E.164)
            text: Message body

        Returns:
            The Telnyx message ID
        """
        result = await self._post("/v2/messages", {
            "from": from_number,
            "to": to_number,
            "text": text,
            "type": "SMS",
        })
        message_id = (result.get("data") or {}).get("id")
        logger.info(f"Sent SMS to {to_number} ({message_id})")
        return message_id

    # ==================== Call Control ====================

    async def _call_action(self, call_control_id: str, action: str, payload: Optional[dict] = None) -> dict:
        return await self._post(f"/v2/calls/{call_control_id}/actions/{action}", payload or {})

    async def answer(self, call_control_id: str, client_state: Optional[dict] = None) -> dict:
        payload = {}
        if client_state is not None:
            payload["client_state"] = encode_client_state(client_state)
        logger.info(f"Answering call {call_control_id}")
        return await self._call_action(call_control_id, "answer", payload)

    async def speak(
        self,
        call_control_id: str,
        text: str,
        voice: str = "female",
        language: str = "en-US",
        client_state: Optional[dict] = None
    ) -> dict:
        payload = {"payload": text, "voice": voice, "language": language}
        if client_state is not None:
            payload["client_state"] = encode_client_state(client_state)
        return await self._call_action(call_control_id, "speak", payload)

    async def transcription_start(
        self,
        call_control_id: str,
        language: str = "en",
        client_state: Optional[dict] = None
    ) -> dict:
        payload = {"language": language, "transcription_tracks": "inbound"}
        if client_state is not None:
            payload["client_state"] = encode_client_state(client_state)
        return await self._call_action(call_control_id, "transcription_start", payload)

    async def record_start(self, call_control_id: str, max_length: int = 300) -> dict:
        return await self._call_action(call_control_id, "record_start", {
            "format": "mp3",
            "channels": "single",
            "max_length": max_length,
            "play_beep": True,
        })

    async def transfer(self, call_control_id: str, to_number: str) -> dict:
        logger.info(f"Transferring call {call_control_id} to {to_number}")
        return await self._call_action(call_control_id, "transfer", {"to": to_number})

    async def hangup(self, call_control_id: str) -> dict:
        logger.info(f"Hanging up call {call_control_id}")
        return await self._call_action(call_control_id, "hangup")

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()


# Singleton instance
_service: Optional[TelnyxService] = None


def get_telnyx_service() -> TelnyxService:
    """Get or create the Telnyx service singleton."""
    global _service
    if _service is None:
        _service = TelnyxService()
    return _service
