from unittest.mock import patch

from wabot.config import settings

from wabot.models import Conversation, Message
from wabot.services.ai_service import AIResponder
from wabot.services.handover_service import HANDOVER_MESSAGE
from wabot.services.inbound_service import (
    CHANNEL_META,
    CHANNEL_TWILIO,
    InboundMessage,
    InboundOutcome,
    InboundPipeline,
    handle_inbound,
)
from wabot.services.whatsapp_service import TransportError

from conftest import CLOSED_HOURS_UTC, OPEN_HOURS_UTC, WEEKDAY_HOURS, FakeProvider, FakeTransport, failing_provider


def twilio_message(body="Jam berapa toko buka?", **overrides):
    values = {
        "channel": CHANNEL_TWILIO,
        "body": body,
        "customer_phone": "whatsapp:+628123456789",
        "business_id": "whatsapp:+628111111111",
        "provider_message_id": "SM0001",
        "profile_name": "Budi",
    }
    values.update(overrides)
    return InboundMessage(**values)


def make_pipeline(db_session, responder, transport, now=OPEN_HOURS_UTC, **kwargs):
    return InboundPipeline(db_session, responder, transport, now=lambda: now, **kwargs)


def outbound_messages(db_session):
    return db_session.query(Message).filter(Message.direction == "outbound").all()


def direction_counts(db_session):
    rows = db_session.query(Message.direction).all()
    return {"inbound": sum(1 for (d,) in rows if d == "inbound"), "outbound": sum(1 for (d,) in rows if d == "outbound")}


class TestValidation:
    def test_missing_body_is_invalid(self, db_session, responder, transport):
        outcome = make_pipeline(db_session, responder, transport).process(twilio_message(body="  "))

        assert outcome == InboundOutcome.INVALID
        assert db_session.query(Message).count() == 0
        assert transport.sent == []

    def test_missing_sender_is_invalid(self, db_session, responder, transport):
        outcome = make_pipeline(db_session, responder, transport).process(twilio_message(customer_phone=None))
        assert outcome == InboundOutcome.INVALID

    def test_bare_prefix_sender_is_invalid(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot()

        outcome = handle_inbound(make_pipeline(db_session, responder, transport), twilio_message(customer_phone="whatsapp:"))

        assert outcome == InboundOutcome.INVALID
        assert db_session.query(Conversation).count() == 0
        assert db_session.query(Message).count() == 0
        assert primary.calls == []
        assert transport.sent == []

    def test_bare_prefix_business_number_is_invalid(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot()

        outcome = handle_inbound(make_pipeline(db_session, responder, transport), twilio_message(business_id="whatsapp: "))

        assert outcome == InboundOutcome.INVALID
        assert db_session.query(Conversation).count() == 0
        assert primary.calls == []
        assert transport.sent == []

    def test_blank_phone_number_id_is_invalid(self, db_session, make_chatbot, responder, transport):
        make_chatbot()
        message = twilio_message(channel=CHANNEL_META, customer_phone="628123456789", business_id="   ")

        assert make_pipeline(db_session, responder, transport).process(message) == InboundOutcome.INVALID
        assert db_session.query(Conversation).count() == 0

    def test_unknown_business_number(self, db_session, responder, transport):
        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())

        assert outcome == InboundOutcome.CHATBOT_NOT_FOUND
        assert db_session.query(Conversation).count() == 0

    def test_inactive_chatbot_is_not_found(self, db_session, make_chatbot, responder, transport):
        make_chatbot(is_active=False)
        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())
        assert outcome == InboundOutcome.CHATBOT_NOT_FOUND


class TestGates:
    def test_auto_reply_disabled_stores_inbound_only(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot(auto_reply_enabled=False)

        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())

        assert outcome == InboundOutcome.AUTO_REPLY_DISABLED
        assert db_session.query(Message).count() == 1
        assert primary.calls == []
        assert transport.sent == []

    def test_out_of_hours(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot(business_hours={**WEEKDAY_HOURS, "out_of_hours_message": "Kami buka besok jam 9."})

        outcome = make_pipeline(db_session, responder, transport, now=CLOSED_HOURS_UTC).process(twilio_message())

        assert outcome == InboundOutcome.OUT_OF_HOURS
        assert primary.calls == []
        assert transport.sent[0]["body"] == "Kami buka besok jam 9."
        assert transport.sent[0]["to"] == "+628123456789"
        assert direction_counts(db_session) == {"inbound": 1, "outbound": 1}
        replies = outbound_messages(db_session)
        assert replies[0].content == "Kami buka besok jam 9."
        assert replies[0].ai_generated is False

    def test_malformed_schedule_does_not_gate(self, db_session, make_chatbot, responder, transport):
        make_chatbot(business_hours={"enabled": True, "monday": {"open": True, "start": "nine"}})

        outcome = make_pipeline(db_session, responder, transport, now=CLOSED_HOURS_UTC).process(twilio_message())

        assert outcome == InboundOutcome.REPLIED

    def test_chatbot_timezone_is_used(self, db_session, make_chatbot, responder, transport):
        # 15:00 UTC is 22:00 in Jakarta but 10:00 in New York
        make_chatbot(business_hours=WEEKDAY_HOURS, timezone="America/New_York")

        outcome = make_pipeline(db_session, responder, transport, now=CLOSED_HOURS_UTC).process(twilio_message())

        assert outcome == InboundOutcome.REPLIED

    def test_handover(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot()

        outcome = make_pipeline(db_session, responder, transport).process(
            twilio_message(body="tolong hubungkan ke CS")
        )

        assert outcome == InboundOutcome.HANDOVER
        assert primary.calls == []
        assert transport.sent[0]["body"] == HANDOVER_MESSAGE
        assert direction_counts(db_session) == {"inbound": 1, "outbound": 1}
        reply = outbound_messages(db_session)[0]
        assert reply.content == HANDOVER_MESSAGE
        assert reply.ai_generated is False
        conversation = db_session.query(Conversation).one()
        assert conversation.status == "escalated"

    def test_out_of_hours_checked_before_handover(self, db_session, make_chatbot, responder, transport):
        make_chatbot(business_hours=WEEKDAY_HOURS)

        outcome = make_pipeline(db_session, responder, transport, now=CLOSED_HOURS_UTC).process(
            twilio_message(body="tolong hubungkan ke CS")
        )

        assert outcome == InboundOutcome.OUT_OF_HOURS


class TestReply:
    def test_happy_path(self, db_session, make_chatbot, responder, primary, transport):
        chatbot = make_chatbot()

        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())

        assert outcome == InboundOutcome.REPLIED
        assert transport.sent == [
            {"to": "+628123456789", "body": "Jam buka kami 09.00-17.00.", "sender": chatbot.whatsapp_number}
        ]
        conversation = db_session.query(Conversation).one()
        assert conversation.customer_phone == "+628123456789"
        assert conversation.customer_name == "Budi"

        messages = db_session.query(Message).order_by(Message.created_at).all()
        assert [m.direction for m in messages] == ["inbound", "outbound"]
        reply = messages[1]
        assert reply.ai_generated is True
        assert reply.ai_provider == "openai"
        assert reply.tokens_used == 120
        assert reply.cost is not None
        assert reply.provider_message_id == "SM0001"

    def test_ai_options(self, db_session, make_chatbot, responder, primary, transport):
        make_chatbot(ai_personality="Formal dan profesional")

        make_pipeline(db_session, responder, transport).process(twilio_message())

        call = primary.calls[0]
        assert call["max_tokens"] == 300
        assert call["temperature"] == 0.7
        assert "Nama pelanggan: Budi" in call["messages"][0]["content"]
        assert "formal dan profesional" in call["messages"][0]["content"]

    def test_generation_settings_read_at_construction(self, db_session, make_chatbot, responder, primary, transport, monkeypatch):
        make_chatbot()
        monkeypatch.setattr(settings, "webhook_max_tokens", 150)
        monkeypatch.setattr(settings, "webhook_temperature", 0.2)

        make_pipeline(db_session, responder, transport).process(twilio_message())

        assert primary.calls[0]["max_tokens"] == 150
        assert primary.calls[0]["temperature"] == 0.2

    def test_explicit_arguments_override_settings(self, db_session, make_chatbot, responder, primary, transport, monkeypatch):
        make_chatbot()
        monkeypatch.setattr(settings, "webhook_max_tokens", 150)

        make_pipeline(db_session, responder, transport, max_tokens=80).process(twilio_message())

        assert primary.calls[0]["max_tokens"] == 80

    def test_secondary_provider_fallback(self, db_session, make_chatbot, secondary, transport):
        make_chatbot()
        responder = AIResponder(failing_provider("openai"), secondary)

        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())

        assert outcome == InboundOutcome.REPLIED
        assert outbound_messages(db_session)[0].ai_provider == "gemini"

    def test_knowledge_direct_answer(self, db_session, make_chatbot, make_knowledge, responder, primary, transport):
        chatbot = make_chatbot()
        make_knowledge(chatbot, "Jam berapa toko buka?", "Setiap hari 08.00-20.00", keywords=["buka"])

        outcome = make_pipeline(db_session, responder, transport).process(twilio_message())

        assert outcome == InboundOutcome.REPLIED
        assert primary.calls == []
        reply = outbound_messages(db_session)[0]
        assert reply.content == "Setiap hari 08.00-20.00"
        assert reply.ai_provider == "knowledge_base"
        assert reply.ai_generated is False
        assert reply.message_metadata["knowledge_used"] is True

    def test_knowledge_disabled(self, db_session, make_chatbot, make_knowledge, responder, primary, transport):
        chatbot = make_chatbot(knowledge_base_enabled=False)
        make_knowledge(chatbot, "Jam berapa toko buka?", "Setiap hari 08.00-20.00")

        make_pipeline(db_session, responder, transport).process(twilio_message())

        assert len(primary.calls) == 1
        assert "basis pengetahuan" not in primary.calls[0]["messages"][0]["content"]

    def test_meta_channel_uses_phone_number_id(self, db_session, make_chatbot, responder, transport):
        make_chatbot()
        message = InboundMessage(
            channel=CHANNEL_META,
            body="Halo",
            customer_phone="628123456789",
            business_id="1055512345",
            provider_message_id="wamid.1",
        )

        outcome = make_pipeline(db_session, responder, transport).process(message)

        assert outcome == InboundOutcome.REPLIED
        assert transport.sent[0]["sender"] == "1055512345"
        assert transport.sent[0]["to"] == "+628123456789"

    def test_repeated_message_processed_twice_without_dedup(self, db_session, make_chatbot, responder, transport):
        make_chatbot()
        pipeline = make_pipeline(db_session, responder, transport)

        pipeline.process(twilio_message())
        pipeline.process(twilio_message())

        assert len(transport.sent) == 2
        assert db_session.query(Conversation).count() == 1
        assert db_session.query(Message).count() == 4

    def test_dedup_enabled(self, db_session, make_chatbot, responder, transport):
        make_chatbot()
        pipeline = make_pipeline(db_session, responder, transport, dedup_enabled=True)

        assert pipeline.process(twilio_message()) == InboundOutcome.REPLIED
        assert pipeline.process(twilio_message()) == InboundOutcome.DUPLICATE
        assert len(transport.sent) == 1


class TestHandleInbound:
    def test_both_providers_fail(self, db_session, make_chatbot, transport):
        make_chatbot()
        responder = AIResponder(failing_provider("openai"), failing_provider("gemini"))
        pipeline = make_pipeline(db_session, responder, transport)

        with patch("wabot.services.inbound_service.alert_ai_unavailable") as mock_alert:
            outcome = handle_inbound(pipeline, twilio_message())

        assert outcome == InboundOutcome.FAILED
        mock_alert.assert_called_once()
        assert mock_alert.call_args[0][1] == ["openai", "gemini"]
        assert transport.sent == []
        assert outbound_messages(db_session) == []
        inbound = db_session.query(Message).one()
        assert inbound.direction == "inbound"

    def test_transport_failure(self, db_session, make_chatbot, responder):
        make_chatbot()
        transport = FakeTransport(error=TransportError("twilio", "Twilio API error: unreachable", status_code=503))
        pipeline = make_pipeline(db_session, responder, transport)

        with patch("wabot.services.inbound_service.alert_send_failed") as mock_alert:
            outcome = handle_inbound(pipeline, twilio_message())

        assert outcome == InboundOutcome.FAILED
        mock_alert.assert_called_once()
        assert mock_alert.call_args[0][0] == "twilio"
        assert outbound_messages(db_session) == []

    def test_unexpected_error(self, db_session, make_chatbot, transport):
        make_chatbot()
        responder = AIResponder(FakeProvider("openai"))
        pipeline = make_pipeline(db_session, responder, transport)

        with patch.object(pipeline, "resolve_chatbot", side_effect=RuntimeError("boom")):
            outcome = handle_inbound(pipeline, twilio_message())

        assert outcome == InboundOutcome.FAILED

    def test_passes_through_success(self, db_session, make_chatbot, responder, transport):
        make_chatbot()
        assert handle_inbound(make_pipeline(db_session, responder, transport), twilio_message()) == InboundOutcome.REPLIED
