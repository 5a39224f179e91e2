from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeItemCreate(BaseModel):
    chatbot_id: Optional[UUID] = None
    question: Optional[str] = None
    answer: Optional[str] = None
    category: Optional[str] = None
    keywords: Optional[List[str]] = None


class KnowledgeItemUpdate(BaseModel):
    id: Optional[UUID] = None
    question: Optional[str] = None
    answer: Optional[str] = None
    category: Optional[str] = None
    keywords: Optional[List[str]] = None
    is_active: Optional[bool] = None


class KnowledgeItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chatbot_id: UUID
    question: str
    answer: str
    category: Optional[str] = None
    keywords: Optional[List[str]] = None
    is_active: bool
    usage_count: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class KnowledgeListResponse(BaseModel):
    data: List[KnowledgeItemResponse]


class KnowledgeItemEnvelope(BaseModel):
    data: KnowledgeItemResponse


class KnowledgeSearchRequest(BaseModel):
    chatbot_id: Optional[UUID] = None
    query: Optional[str] = None
    limit: int = Field(default=5, ge=1, le=50)
    threshold: float = Field(default=0.1, ge=0.0, le=1.0)


class KnowledgeSearchHit(BaseModel):
    id: UUID
    chatbot_id: UUID
    question: str
    answer: str
    category: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    similarity_score: float


class KnowledgeSearchResponse(BaseModel):
    data: List[KnowledgeSearchHit]
    total_found: int
    query_processed: str
