"""Knowledge base management and search endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from wabot.database import get_db
from wabot.logging_config import get_logger
from wabot.routers.deps import get_current_user_id
from wabot.schemas.knowledge import (
    KnowledgeItemCreate,
    KnowledgeItemEnvelope,
    KnowledgeItemResponse,
    KnowledgeItemUpdate,
    KnowledgeListResponse,
    KnowledgeSearchRequest,
    KnowledgeSearchResponse,
)
from wabot.services import knowledge_service
from wabot.services.chatbot_service import NotFoundError, get_owned_chatbot, get_owned_knowledge_item
from wabot.services.knowledge_service import KnowledgeMatcher

logger = get_logger("knowledge")

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])


@router.get("", response_model=KnowledgeListResponse)
def list_knowledge(
    chatbot_id: Optional[UUID] = Query(default=None),
    query: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not chatbot_id:
        raise HTTPException(status_code=400, detail="Chatbot ID is required")
    try:
        get_owned_chatbot(db, chatbot_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    items = knowledge_service.list_items(db, chatbot_id, query=query, category=category)
    return KnowledgeListResponse(data=[KnowledgeItemResponse.model_validate(item) for item in items])


@router.post("", response_model=KnowledgeItemEnvelope)
def create_knowledge(
    data: KnowledgeItemCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not data.chatbot_id or not (data.question or "").strip() or not (data.answer or "").strip():
        raise HTTPException(status_code=400, detail="Chatbot ID, question, and answer are required")
    try:
        get_owned_chatbot(db, data.chatbot_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    item = knowledge_service.create_item(
        db,
        data.chatbot_id,
        data.question,
        data.answer,
        category=data.category,
        keywords=data.keywords,
    )
    logger.info("Knowledge item created", extra={"context": {"item_id": str(item.id), "chatbot_id": str(item.chatbot_id)}})
    return KnowledgeItemEnvelope(data=KnowledgeItemResponse.model_validate(item))


@router.put("", response_model=KnowledgeItemEnvelope)
def update_knowledge(
    data: KnowledgeItemUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not data.id:
        raise HTTPException(status_code=400, detail="Knowledge item ID is required")
    try:
        item = get_owned_knowledge_item(db, data.id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    changes = data.model_dump(exclude_unset=True, exclude={"id"})
    item = knowledge_service.update_item(db, item, changes)
    return KnowledgeItemEnvelope(data=KnowledgeItemResponse.model_validate(item))


@router.delete("")
def delete_knowledge(
    id: Optional[UUID] = Query(default=None),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Knowledge item ID is required")
    try:
        item = get_owned_knowledge_item(db, id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    knowledge_service.delete_item(db, item)
    logger.info("Knowledge item deleted", extra={"context": {"item_id": str(id)}})
    return {"success": True}


def _search(db: Session, request: KnowledgeSearchRequest) -> KnowledgeSearchResponse:
    if not request.chatbot_id or not (request.query or "").strip():
        raise HTTPException(status_code=400, detail="Chatbot ID and query are required")

    matches = KnowledgeMatcher(db).match(
        request.chatbot_id,
        request.query,
        limit=request.limit,
        threshold=request.threshold,
    )
    return KnowledgeSearchResponse(
        data=[match.to_dict() for match in matches],
        total_found=len(matches),
        query_processed=request.query,
    )


@router.post("/search", response_model=KnowledgeSearchResponse)
def search_knowledge(request: KnowledgeSearchRequest, db: Session = Depends(get_db)):
    return _search(db, request)


@router.get("/search", response_model=KnowledgeSearchResponse)
def search_knowledge_get(
    chatbot_id: Optional[UUID] = Query(default=None),
    query: Optional[str] = Query(default=None),
    limit: int = Query(default=5, ge=1, le=50),
    threshold: float = Query(default=0.1, ge=0.0, le=1.0),
    db: Session = Depends(get_db),
):
    return _search(db, KnowledgeSearchRequest(chatbot_id=chatbot_id, query=query, limit=limit, threshold=threshold))
