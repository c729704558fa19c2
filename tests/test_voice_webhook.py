"""Tests for the Telnyx voice call flow."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent.prompts import UNAVAILABLE_MESSAGE
from agent.receptionist_agent import AgentReply
from services.call_handler import VoiceCallHandler
from services.telnyx_service import decode_client_state, encode_client_state

CALL_ID = "v3:call-control-1"


def event(event_type, **payload):
    payload.setdefault("call_control_id", CALL_ID)
    return {"data": {"event_type": event_type, "payload": payload}}


def agent_returning(reply):
    agent_class = MagicMock()
    agent_class.return_value.respond = AsyncMock(return_value=reply)
    return agent_class


@pytest.fixture
def call_log(business):
    return {
        "id": "log-1",
        "call_id": CALL_ID,
        "business_id": business["id"],
        "from_number": "+15552223333",
        "status": "in_progress",
        "started_at": "2026-10-19T14:00:00+00:00",
        "transcript": [{"role": "assistant", "content": "Hello"}],
    }


class TestClientState:
    def test_round_trip(self):
        state = {"business_id": "biz-1", "state": "listen"}
        assert decode_client_state(encode_client_state(state)) == state

    def test_garbage_is_empty(self):
        assert decode_client_state("not base64!!") == {}
        assert decode_client_state(None) == {}


class TestInitiated:
    async def test_answers_and_logs_call(self, mock_db, mock_telnyx, business):
        mock_db.get_business_by_phone_number.return_value = business

        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
            event("call.initiated", direction="incoming", to=business["phone_number"], **{"from": "+15552223333"})
        )

        row = mock_db.create_call_log.call_args[0][0]
        assert row["business_id"] == business["id"]
        assert row["status"] == "initiated"
        assert row["from_number"] == "+15552223333"
        mock_telnyx.answer.assert_awaited_once_with(CALL_ID, client_state={"business_id": business["id"]})

    async def test_duplicate_event_is_ignored(self, mock_db, mock_telnyx, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event("call.initiated", direction="incoming"))
        mock_db.create_call_log.assert_not_awaited()
        mock_telnyx.answer.assert_not_awaited()

    async def test_unassigned_number(self, mock_db, mock_telnyx):
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
            event("call.initiated", direction="incoming", to="+18005550000")
        )
        mock_telnyx.answer.assert_awaited_once_with(CALL_ID, client_state={"unavailable": True})
        mock_db.create_call_log.assert_not_awaited()

    async def test_outgoing_legs_are_ignored(self, mock_db, mock_telnyx):
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event("call.initiated", direction="outgoing"))
        mock_telnyx.answer.assert_not_awaited()


class TestAnswered:
    async def test_greets_during_business_hours(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_business.return_value = business
        mock_db.get_active_agent.return_value = {"voice": "male", "language": "en-US", "is_active": True}
        mock_db.get_call_log_by_call_id.return_value = call_log

        with patch("services.call_handler.is_within_business_hours", return_value=True):
            await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
                event("call.answered", client_state=encode_client_state({"business_id": business["id"]}))
            )

        args, kwargs = mock_telnyx.speak.call_args
        assert args[0] == CALL_ID
        assert args[2] == "male"
        assert kwargs["client_state"]["state"] == "listen"
        mock_db.update_call_log.assert_awaited_once_with("log-1", {"status": "in_progress"})

    async def test_after_hours_voicemail(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_business.return_value = business
        mock_db.get_active_agent.return_value = {"is_active": True}
        mock_db.get_call_log_by_call_id.return_value = call_log

        with patch("services.call_handler.is_within_business_hours", return_value=False):
            await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
                event("call.answered", client_state=encode_client_state({"business_id": business["id"]}))
            )

        assert mock_telnyx.speak.call_args.kwargs["client_state"]["state"] == "record"
        mock_db.update_call_log.assert_awaited_once_with("log-1", {"after_hours": True})
        mock_telnyx.send_sms.assert_not_awaited()

    async def test_after_hours_sms(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_business.return_value = {**business, "after_hours_policy": "sms"}
        mock_db.get_active_agent.return_value = {"is_active": True}
        mock_db.get_call_log_by_call_id.return_value = call_log

        with patch("services.call_handler.is_within_business_hours", return_value=False):
            await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
                event("call.answered", client_state=encode_client_state({"business_id": business["id"]}),
                      **{"from": "+15552223333"})
            )

        assert mock_telnyx.send_sms.call_args[0][1] == "+15552223333"
        assert mock_db.log_sms.call_args[0][0]["message_type"] == "after_hours"
        assert mock_telnyx.speak.call_args.kwargs["client_state"]["state"] == "hangup"

    async def test_unavailable_number(self, mock_db, mock_telnyx):
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
            event("call.answered", client_state=encode_client_state({"unavailable": True}))
        )
        mock_telnyx.speak.assert_awaited_once_with(CALL_ID, UNAVAILABLE_MESSAGE, client_state={"state": "hangup"})


class TestSpeakEnded:
    async def test_listen_starts_transcription_once(self, mock_db, mock_telnyx):
        handler = VoiceCallHandler(mock_db, mock_telnyx)
        await handler.handle_event(event("call.speak.ended", client_state=encode_client_state({"state": "listen"})))
        mock_telnyx.transcription_start.assert_awaited_once()
        assert mock_telnyx.transcription_start.call_args.kwargs["client_state"]["transcribing"] is True

        await handler.handle_event(event(
            "call.speak.ended", client_state=encode_client_state({"state": "listen", "transcribing": True})
        ))
        mock_telnyx.transcription_start.assert_awaited_once()

    async def test_record(self, mock_db, mock_telnyx):
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
            event("call.speak.ended", client_state=encode_client_state({"state": "record"}))
        )
        mock_telnyx.record_start.assert_awaited_once_with(CALL_ID, max_length=300)

    async def test_transfer_and_hangup(self, mock_db, mock_telnyx):
        handler = VoiceCallHandler(mock_db, mock_telnyx)
        await handler.handle_event(event(
            "call.speak.ended", client_state=encode_client_state({"state": "transfer", "transfer_to": "+15555550100"})
        ))
        await handler.handle_event(event("call.speak.ended", client_state=encode_client_state({"state": "hangup"})))
        mock_telnyx.transfer.assert_awaited_once_with(CALL_ID, "+15555550100")
        mock_telnyx.hangup.assert_awaited_once_with(CALL_ID)


class TestTranscription:
    async def test_agent_reply_is_spoken(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business
        agent_class = agent_returning(AgentReply("Sure, what day works for you?"))

        await VoiceCallHandler(mock_db, mock_telnyx, agent_class).handle_event(event(
            "call.transcription",
            client_state=encode_client_state({"state": "listen", "transcribing": True}),
            transcription_data={"transcript": "I need my AC fixed", "is_final": True},
        ))

        history = agent_class.return_value.respond.call_args[0][0]
        assert history[-1] == {"role": "user", "content": "I need my AC fixed"}
        assert call_log["transcript"][-1] == {"role": "assistant", "content": "Sure, what day works for you?"}
        args, kwargs = mock_telnyx.speak.call_args
        assert args[1] == "Sure, what day works for you?"
        assert kwargs["client_state"]["state"] == "listen"
        assert kwargs["client_state"]["transcribing"] is True

    async def test_interim_results_are_ignored(self, mock_db, mock_telnyx):
        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event(
            "call.transcription", transcription_data={"transcript": "I need", "is_final": False},
        ))
        mock_db.get_call_log_by_call_id.assert_not_awaited()

    async def test_end_call(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business
        agent_class = agent_returning(AgentReply("Goodbye!", end_call=True))

        await VoiceCallHandler(mock_db, mock_telnyx, agent_class).handle_event(event(
            "call.transcription", transcription_data={"transcript": "That's all, thanks", "is_final": True},
        ))

        assert mock_telnyx.speak.call_args.kwargs["client_state"]["state"] == "hangup"

    async def test_transfer(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business
        agent_class = agent_returning(AgentReply("", transfer=True))

        await VoiceCallHandler(mock_db, mock_telnyx, agent_class).handle_event(event(
            "call.transcription", transcription_data={"transcript": "Let me talk to a person", "is_final": True},
        ))

        state = mock_telnyx.speak.call_args.kwargs["client_state"]
        assert state["state"] == "transfer"
        assert state["transfer_to"] == business["notification_phone"]

    async def test_transfer_uses_agent_escalation_phone(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business
        settings = {"id": "agent-1", "escalation_phone": "+15555550177", "tone": "friendly"}
        mock_db.get_active_agent.return_value = settings
        agent_class = agent_returning(AgentReply("", transfer=True))

        await VoiceCallHandler(mock_db, mock_telnyx, agent_class).handle_event(event(
            "call.transcription", transcription_data={"transcript": "It's an emergency", "is_final": True},
        ))

        assert agent_class.call_args.kwargs["settings"] == settings
        assert mock_telnyx.speak.call_args.kwargs["client_state"]["transfer_to"] == "+15555550177"


class TestRecordingAndHangup:
    async def test_recording_saved(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business

        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event(
            "call.recording.saved", recording_urls={"mp3": "https://example.com/rec.mp3"},
        ))

        mock_db.update_call_log.assert_awaited_once_with(
            "log-1", {"recording_url": "https://example.com/rec.mp3", "status": "voicemail"}
        )
        assert mock_db.create_notification.call_args[0][0]["type"] == "voicemail"

    async def test_hangup_after_conversation(self, mock_db, mock_telnyx, business, call_log):
        call_log["transcript"].append({"role": "user", "content": "Book me for Tuesday"})
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business

        with patch("services.call_handler.summarize_conversation", AsyncMock(return_value="Caller booked Tuesday.")):
            await VoiceCallHandler(mock_db, mock_telnyx).handle_event(
                event("call.hangup", hangup_cause="normal_clearing")
            )

        updates = mock_db.update_call_log.call_args[0][1]
        assert updates["status"] == "completed"
        assert updates["summary"] == "Caller booked Tuesday."
        assert updates["hangup_cause"] == "normal_clearing"
        assert updates["duration_seconds"] >= 0
        mock_db.create_lead.assert_awaited_once()

    async def test_hangup_without_conversation_is_missed(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = call_log
        mock_db.get_business.return_value = business

        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event("call.hangup"))

        assert mock_db.update_call_log.call_args[0][1]["status"] == "missed"
        mock_db.create_lead.assert_not_awaited()

    async def test_hangup_after_voicemail(self, mock_db, mock_telnyx, business, call_log):
        mock_db.get_call_log_by_call_id.return_value = {**call_log, "recording_url": "https://example.com/rec.mp3"}
        mock_db.get_business.return_value = business

        await VoiceCallHandler(mock_db, mock_telnyx).handle_event(event("call.hangup"))

        assert mock_db.update_call_log.call_args[0][1]["status"] == "voicemail"


class TestVoiceWebhookRoute:
    def test_unsigned_webhook_is_rejected(self, client):
        response = client.post("/api/telnyx/voice", content=json.dumps(event("call.hangup")))
        assert response.status_code == 401

    def test_invalid_json(self, client):
        with patch("routes.telnyx.verify_telnyx_signature", return_value=True):
            response = client.post("/api/telnyx/voice", content=b"{not json")
        assert response.status_code == 400

    def test_verified_event_is_handled(self, client, mock_db, mock_telnyx, business):
        mock_db.get_business_by_phone_number.return_value = business
        body = event("call.initiated", direction="incoming", to=business["phone_number"], **{"from": "+15552223333"})

        with patch("routes.telnyx.verify_telnyx_signature", return_value=True):
            response = client.post("/api/telnyx/voice", content=json.dumps(body))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        mock_telnyx.answer.assert_awaited_once()

    def test_handler_errors_still_acknowledge(self, client, mock_db):
        mock_db.get_call_log_by_call_id.side_effect = RuntimeError("db down")
        with patch("routes.telnyx.verify_telnyx_signature", return_value=True):
            response = client.post("/api/telnyx/voice", content=json.dumps(event("call.hangup")))
        assert response.status_code == 200
