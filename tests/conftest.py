import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone  # noqa: E402
from typing import List, Optional  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from wabot.config import settings  # noqa: E402
from wabot.database import Base, get_db  # noqa: E402
from wabot.main import app  # noqa: E402
from wabot.models import Chatbot, KnowledgeItem  # noqa: E402
from wabot.routers.deps import get_ai_responder, get_clock, get_meta_transport, get_twilio_transport  # noqa: E402
from wabot.services.ai_service import AIResponder  # noqa: E402
from wabot.services.llm import LLMProvider, LLMProviderError, LLMResponse  # noqa: E402
from wabot.services.whatsapp_service import SendResult, TransportError, WhatsAppTransport  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

# Monday 2024-01-15 10:00 in Asia/Jakarta (UTC+7)
OPEN_HOURS_UTC = datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc)
# Monday 2024-01-15 22:00 in Asia/Jakarta
CLOSED_HOURS_UTC = datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)

WEEKDAY_HOURS = {
    "enabled": True,
    "monday": {"open": True, "start": "09:00", "end": "17:00"},
    "tuesday": {"open": True, "start": "09:00", "end": "17:00"},
    "wednesday": {"open": True, "start": "09:00", "end": "17:00"},
    "thursday": {"open": True, "start": "09:00", "end": "17:00"},
    "friday": {"open": True, "start": "09:00", "end": "17:00"},
    "saturday": {"open": False},
    "sunday": {"open": False},
}


class FakeProvider(LLMProvider):
    """In-memory LLM provider returning a canned reply or raising."""

    def __init__(self, name: str, content: str = "Halo! Ada yang bisa kami bantu?", error: Optional[Exception] = None):
        self.name = name
        self.content = content
        self.error = error
        self.calls: List[dict] = []

    def generate(self, messages, model=None, temperature=0.7, max_tokens=500):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return LLMResponse(content=self.content, model=f"{self.name}-test", usage={"total_tokens": 120})


def failing_provider(name: str, quota: bool = False) -> FakeProvider:
    status_code = 429 if quota else 500
    return FakeProvider(name, error=LLMProviderError(name, f"API error {status_code}", status_code=status_code, quota=quota))


class FakeTransport(WhatsAppTransport):
    name = "fake"

    def __init__(self, error: Optional[TransportError] = None):
        self.error = error
        self.sent: List[dict] = []

    def send_text(self, to, body, sender=None):
        if self.error:
            raise self.error
        self.sent.append({"to": to, "body": body, "sender": sender})
        return SendResult(message_id=f"SM{len(self.sent):04d}", status="queued")


@pytest.fixture(autouse=True)
def _no_alerts(monkeypatch):
    monkeypatch.setattr(settings, "alert_bot_token", None)
    monkeypatch.setattr(settings, "alert_chat_id", None)


@pytest.fixture
def db_session():
    """Fresh SQLite in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def make_chatbot(db_session, user_id):
    def _make(**overrides) -> Chatbot:
        values = {
            "user_id": user_id,
            "name": "Toko Kopi Nusantara",
            "whatsapp_number": "+628111111111",
            "whatsapp_phone_number_id": "1055512345",
            "business_description": "Toko kopi lokal di Bandung",
            "ai_personality": "Ramah dan membantu",
            "business_hours": None,
            "auto_reply_enabled": True,
            "knowledge_base_enabled": True,
            "human_handover_keywords": ["cs", "agent", "manusia"],
            "is_active": True,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        chatbot = Chatbot(**values)
        db_session.add(chatbot)
        db_session.commit()
        db_session.refresh(chatbot)
        return chatbot

    return _make


@pytest.fixture
def make_knowledge(db_session):
    def _make(chatbot, question, answer, keywords=None, is_active=True, created_at=None) -> KnowledgeItem:
        item = KnowledgeItem(
            chatbot_id=chatbot.id,
            question=question,
            answer=answer,
            keywords=keywords,
            is_active=is_active,
            usage_count=0,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make


@pytest.fixture
def primary():
    return FakeProvider("openai", content="Jam buka kami 09.00-17.00.")


@pytest.fixture
def secondary():
    return FakeProvider("gemini", content="Kami buka pukul 09.00 sampai 17.00.")


@pytest.fixture
def responder(primary, secondary):
    return AIResponder(primary=primary, secondary=secondary)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(db_session, responder, transport):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_ai_responder] = lambda: responder
    app.dependency_overrides[get_twilio_transport] = lambda: transport
    app.dependency_overrides[get_meta_transport] = lambda: transport
    app.dependency_overrides[get_clock] = lambda: (lambda: OPEN_HOURS_UTC)
    yield TestClient(app)
    app.dependency_overrides.clear()
