from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from wabot.config import settings
from wabot.database import Base, engine, get_db
from wabot.logging_config import get_logger, setup_logging
from wabot.models import Chatbot, Conversation, KnowledgeItem, Message
from wabot.routers import ai, knowledge, send, webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="WhatsApp AI Chatbot API",
    description="WhatsApp customer-service chatbot for Indonesian small businesses",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(send.router)
app.include_router(knowledge.router)
app.include_router(ai.router)


@app.on_event("startup")
def create_tables() -> None:
    if not settings.db_auto_create:
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "chatbots": db.query(Chatbot).count(),
        "conversations": db.query(Conversation).count(),
        "messages": db.query(Message).count(),
        "knowledge_items": db.query(KnowledgeItem).count(),
    }
