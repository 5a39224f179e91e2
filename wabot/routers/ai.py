"""Dashboard AI endpoints: prompt playground and per-chatbot replies."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from wabot.database import get_db
from wabot.logging_config import get_logger
from wabot.models import Chatbot
from wabot.routers.deps import ai_http_error, get_ai_responder, get_current_user_id
from wabot.schemas.ai import AIReplyResponse, AITestRequest, AITestResponse, ChatbotMessageRequest
from wabot.services.ai_service import (
    AIOptions,
    AIProviderError,
    AIResponder,
    build_business_context,
    resolve_tone,
)
from wabot.services.chatbot_service import NotFoundError, get_owned_chatbot
from wabot.services.conversation_service import ConversationStore
from wabot.services.whatsapp_service import normalize_phone

logger = get_logger("ai")

router = APIRouter(prefix="/api", tags=["ai"])

SAMPLE_PRODUCTS = [
    {"name": "Kopi Arabica Premium", "description": "Kopi arabica berkualitas tinggi dari Aceh", "price": 85000},
    {"name": "Kopi Robusta Original", "description": "Kopi robusta asli dengan rasa yang kuat", "price": 65000},
    {"name": "Kopi Luwak Special", "description": "Kopi luwak premium dengan cita rasa unik", "price": 250000},
]

CUSTOMER_SERVICE_INSTRUCTION = (
    "Anda adalah perwakilan layanan pelanggan. "
    "Bantu pelanggan dengan pertanyaan mereka secara profesional dan membantu."
)
SALES_INSTRUCTION = (
    "Anda adalah asisten penjualan. "
    "Bantu pelanggan memahami produk dan arahkan mereka untuk melakukan pembelian."
)


def _with_instruction(context: str, instruction: str) -> str:
    return f"{context}\n{instruction}" if context else instruction


@router.post("/test-ai", response_model=AITestResponse)
def run_ai_test(
    data: AITestRequest,
    user_id: UUID = Depends(get_current_user_id),
    responder: AIResponder = Depends(get_ai_responder),
    db: Session = Depends(get_db),
):
    """Try a prompt against the configured providers, optionally with a chatbot's context."""
    if not (data.message or "").strip():
        raise HTTPException(status_code=400, detail="Message is required")

    context = ""
    if data.chatbot_id:
        try:
            chatbot = get_owned_chatbot(db, data.chatbot_id, user_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        context = build_business_context(chatbot)

    if data.test_type == "product_recommendation":
        options = AIOptions(tone="friendly", max_tokens=300, temperature=0.7)
    elif data.test_type == "customer_service":
        context = _with_instruction(context, CUSTOMER_SERVICE_INSTRUCTION)
        options = AIOptions(tone="formal", max_tokens=300, temperature=0.6)
    elif data.test_type == "sales":
        context = _with_instruction(context, SALES_INSTRUCTION)
        options = AIOptions(tone="friendly", max_tokens=300, temperature=0.8)
    else:
        options = AIOptions(tone="friendly", max_tokens=300, temperature=0.7)

    try:
        if data.test_type == "product_recommendation":
            response = responder.generate_product_recommendation(data.message, SAMPLE_PRODUCTS, options)
        else:
            response = responder.generate(data.message, context, options)
    except AIProviderError as e:
        logger.error(f"Test AI failed: {e}", extra={"context": {"test_type": data.test_type}})
        raise ai_http_error(e)

    return AITestResponse(
        response=response.content,
        tokens_used=response.tokens_used,
        cost=response.cost,
        model=response.model,
        provider_used=response.provider_used,
        test_type=data.test_type,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/chatbot/message", response_model=AIReplyResponse)
def chatbot_message(
    data: ChatbotMessageRequest,
    responder: AIResponder = Depends(get_ai_responder),
    db: Session = Depends(get_db),
):
    """Generate a reply as a chatbot; with ``customer_phone`` both turns are logged."""
    if not (data.message or "").strip() or not data.chatbot_id:
        raise HTTPException(status_code=400, detail="Message and chatbot ID are required")

    chatbot = db.query(Chatbot).filter(Chatbot.id == data.chatbot_id).first()
    if not chatbot:
        raise HTTPException(status_code=404, detail="Chatbot not found")

    try:
        response = responder.generate(
            data.message,
            build_business_context(chatbot),
            AIOptions(tone=resolve_tone(chatbot), max_tokens=300, temperature=0.7),
        )
    except AIProviderError as e:
        logger.error(f"Chatbot message failed: {e}", extra={"context": {"chatbot_id": str(chatbot.id)}})
        raise ai_http_error(e)

    if data.customer_phone:
        store = ConversationStore(db)
        conversation = store.get_or_create_conversation(chatbot.id, normalize_phone(data.customer_phone))
        if store.record_inbound(conversation, data.message) is not None:
            store.record_outbound(
                conversation,
                response.content,
                ai_generated=True,
                tokens_used=response.tokens_used,
                cost=response.cost,
                ai_provider=response.provider_used,
            )

    return AIReplyResponse(
        response=response.content,
        tokens_used=response.tokens_used,
        cost=response.cost,
        model=response.model,
        provider_used=response.provider_used,
    )
