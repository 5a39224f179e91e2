"""Keyword-scored knowledge base matching and CRUD helpers.

Scoring is a heuristic, not semantic search:

    0.7 * overlap(query, question) + 0.2 * overlap(query, answer)
    + 0.3 if a keyword and the query contain one another
    + 0.4 if the query and the question contain one another
    + 0.2 if the answer contains the query

clamped to [0, 1]. ``overlap`` is the Jaccard index of the two token sets.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wabot.logging_config import get_logger
from wabot.models import KnowledgeItem

logger = get_logger("knowledge_service")

DEFAULT_MATCH_LIMIT = 5
DEFAULT_MATCH_THRESHOLD = 0.1

QUESTION_WEIGHT = 0.7
ANSWER_WEIGHT = 0.2
KEYWORD_BONUS = 0.3
QUESTION_PHRASE_BONUS = 0.4
ANSWER_PHRASE_BONUS = 0.2
MIN_TOKEN_LENGTH = 3


@dataclass
class KnowledgeMatch:
    item: KnowledgeItem
    score: float

    def to_dict(self) -> dict:
        return {
            "id": str(self.item.id),
            "chatbot_id": str(self.item.chatbot_id),
            "question": self.item.question,
            "answer": self.item.answer,
            "category": self.item.category,
            "keywords": self.item.keywords or [],
            "similarity_score": round(self.score, 4),
        }


def tokenize(text: Optional[str]) -> Set[str]:
    """Lowercase whitespace-separated words longer than two characters."""
    if not text:
        return set()
    return {word for word in text.lower().split() if len(word) >= MIN_TOKEN_LENGTH}


def word_overlap(a: Optional[str], b: Optional[str]) -> float:
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def matches_keywords(query: str, keywords: Optional[Iterable[str]]) -> bool:
    query_lower = (query or "").lower()
    if not query_lower or not keywords:
        return False
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            continue
        keyword_lower = keyword.lower()
        if keyword_lower in query_lower or query_lower in keyword_lower:
            return True
    return False


def score_item(
    query: str,
    question: Optional[str],
    answer: Optional[str],
    keywords: Optional[Iterable[str]] = None,
) -> float:
    question = question or ""
    answer = answer or ""
    score = QUESTION_WEIGHT * word_overlap(query, question) + ANSWER_WEIGHT * word_overlap(query, answer)

    if matches_keywords(query, keywords):
        score += KEYWORD_BONUS

    query_lower = query.lower()
    question_lower = question.lower()
    if question_lower and (query_lower in question_lower or question_lower in query_lower):
        score += QUESTION_PHRASE_BONUS
    if answer and query_lower in answer.lower():
        score += ANSWER_PHRASE_BONUS

    return max(0.0, min(score, 1.0))


def rank_items(
    query: str,
    items: Sequence[KnowledgeItem],
    limit: int = DEFAULT_MATCH_LIMIT,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> List[KnowledgeMatch]:
    """Score active items, keep those at or above threshold, best first."""
    if not query or not query.strip():
        return []

    scored = [
        KnowledgeMatch(item=item, score=score_item(query, item.question, item.answer, item.keywords))
        for item in items
        if item.is_active
    ]
    relevant = [match for match in scored if match.score >= threshold]
    # sorted() is stable: equal scores keep their load order
    relevant = sorted(relevant, key=lambda match: match.score, reverse=True)
    return relevant[: max(limit, 0)]


def format_knowledge_context(matches: Sequence[KnowledgeMatch]) -> str:
    """Format matches as Q/A blocks for the LLM context."""
    if not matches:
        return ""

    blocks = ["Informasi relevan dari basis pengetahuan:"]
    for match in matches:
        if not match.item.question or not match.item.answer:
            continue
        blocks.append(f"Q: {match.item.question}\nA: {match.item.answer}")
    if len(blocks) == 1:
        return ""
    return "\n\n".join(blocks)


class KnowledgeMatcher:
    """Knowledge matching bound to a database session."""

    def __init__(self, db: Session):
        self.db = db

    def load_active_items(self, chatbot_id: UUID) -> List[KnowledgeItem]:
        return (
            self.db.query(KnowledgeItem)
            .filter(KnowledgeItem.chatbot_id == chatbot_id, KnowledgeItem.is_active.is_(True))
            .order_by(KnowledgeItem.created_at.desc())
            .all()
        )

    def match(
        self,
        chatbot_id: UUID,
        query: str,
        limit: int = DEFAULT_MATCH_LIMIT,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> List[KnowledgeMatch]:
        items = self.load_active_items(chatbot_id)
        if not items:
            return []

        matches = rank_items(query, items, limit=limit, threshold=threshold)
        if matches:
            self._increment_usage(matches)

        logger.info(
            "Knowledge match",
            extra={
                "context": {
                    "chatbot_id": str(chatbot_id),
                    "candidates": len(items),
                    "matched": len(matches),
                    "top_score": round(matches[0].score, 4) if matches else None,
                }
            },
        )
        return matches

    def _increment_usage(self, matches: Sequence[KnowledgeMatch]) -> None:
        """Bump usage counters; failures are logged and never raised."""
        ids = [match.item.id for match in matches]
        try:
            self.db.execute(
                update(KnowledgeItem)
                .where(KnowledgeItem.id.in_(ids))
                .values(
                    usage_count=KnowledgeItem.usage_count + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Knowledge usage update failed: {e}", extra={"context": {"item_ids": [str(i) for i in ids]}})


def list_items(
    db: Session,
    chatbot_id: UUID,
    query: Optional[str] = None,
    category: Optional[str] = None,
) -> List[KnowledgeItem]:
    items = db.query(KnowledgeItem).filter(KnowledgeItem.chatbot_id == chatbot_id)
    if query:
        pattern = f"%{query}%"
        items = items.filter(or_(KnowledgeItem.question.ilike(pattern), KnowledgeItem.answer.ilike(pattern)))
    if category and category != "all":
        items = items.filter(KnowledgeItem.category == category)
    return items.order_by(KnowledgeItem.created_at.desc()).all()


def create_item(
    db: Session,
    chatbot_id: UUID,
    question: str,
    answer: str,
    category: Optional[str] = None,
    keywords: Optional[List[str]] = None,
) -> KnowledgeItem:
    now = datetime.now(timezone.utc)
    item = KnowledgeItem(
        chatbot_id=chatbot_id,
        question=question.strip(),
        answer=answer.strip(),
        category=category or None,
        keywords=keywords or None,
        is_active=True,
        usage_count=0,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def update_item(db: Session, item: KnowledgeItem, changes: dict) -> KnowledgeItem:
    """Apply a partial update; only keys present in ``changes`` are touched."""
    if "question" in changes and changes["question"] is not None:
        item.question = changes["question"].strip()
    if "answer" in changes and changes["answer"] is not None:
        item.answer = changes["answer"].strip()
    if "category" in changes:
        item.category = changes["category"] or None
    if "keywords" in changes:
        item.keywords = changes["keywords"] or None
    if "is_active" in changes and changes["is_active"] is not None:
        item.is_active = changes["is_active"]
    item.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, item: KnowledgeItem) -> None:
    db.delete(item)
    db.commit()
