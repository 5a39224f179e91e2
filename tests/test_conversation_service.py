from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from wabot.models import Conversation, Message
from wabot.services.conversation_service import INBOUND, OUTBOUND, ConversationStore


class TestGetOrCreateConversation:
    def test_creates_once_per_phone(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)

        first = store.get_or_create_conversation(chatbot.id, "+628123456789", "Budi")
        second = store.get_or_create_conversation(chatbot.id, "+628123456789")

        assert first.id == second.id
        assert first.status == "active"
        assert db_session.query(Conversation).count() == 1

    def test_updates_customer_name(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        store.get_or_create_conversation(chatbot.id, "+628123456789")

        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789", "Siti")

        assert conversation.customer_name == "Siti"

    def test_separate_threads_per_chatbot(self, db_session, make_chatbot):
        store = ConversationStore(db_session)
        first = make_chatbot()
        second = make_chatbot(whatsapp_number="+628122222222", whatsapp_phone_number_id="999")

        a = store.get_or_create_conversation(first.id, "+628123456789")
        b = store.get_or_create_conversation(second.id, "+628123456789")

        assert a.id != b.id


class TestRecordMessages:
    def test_inbound_then_outbound(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")

        store.record_inbound(conversation, "Halo", provider_message_id="SM1")
        store.record_outbound(
            conversation,
            "Halo juga!",
            ai_generated=True,
            tokens_used=120,
            cost=0.24,
            ai_provider="openai",
            metadata={"knowledge_used": False},
        )

        messages = store.list_messages(conversation.id)
        assert [m.direction for m in messages] == [INBOUND, OUTBOUND]
        assert messages[0].provider_message_id == "SM1"
        assert messages[0].ai_generated is False
        assert messages[1].tokens_used == 120
        assert float(messages[1].cost) == 0.24
        assert messages[1].message_metadata == {"knowledge_used": False}
        assert conversation.last_message_at is not None

    def test_inbound_reopens_resolved_thread(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")
        conversation.status = "resolved"
        db_session.commit()

        store.record_inbound(conversation, "Halo lagi")

        assert conversation.status == "active"

    def test_escalated_outbound(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")

        store.record_outbound(conversation, "Mohon tunggu", escalated=True)

        assert conversation.status == "escalated"

    def test_escalating_resolved_thread_keeps_status(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")
        conversation.status = "resolved"
        db_session.commit()

        message = store.record_outbound(conversation, "Mohon tunggu", escalated=True)

        assert message is not None
        assert conversation.status == "resolved"

    def test_has_inbound_message(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")
        store.record_inbound(conversation, "Halo", provider_message_id="SM1")

        assert store.has_inbound_message(conversation.id, "SM1") is True
        assert store.has_inbound_message(conversation.id, "SM2") is False

    def test_persistence_failure_returns_none(self, db_session, make_chatbot):
        chatbot = make_chatbot()
        store = ConversationStore(db_session)
        conversation = store.get_or_create_conversation(chatbot.id, "+628123456789")
        db_session.commit()

        with patch.object(db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
            result = store.record_inbound(conversation, "Halo")

        assert result is None
        assert db_session.query(Message).count() == 0
