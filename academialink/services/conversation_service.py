"""
Conversation management service.
Handles CRUD operations for paper conversations and their messages.
"""
from typing import Dict, List, Any, Optional

from sqlalchemy import select

from ..db import SessionLocal
from ..logging_config import logger
from ..models import PaperConversation, PaperMessage

ROLES = ("user", "assistant")


def get_or_create_conversation(
    paper_id: str,
    user_id: str,
    conversation_id: Optional[str] = None,
) -> str:
    """
    Resolve the conversation a chat turn belongs to.

    An explicit conversation_id must belong to the same paper and user.
    Without one, a new conversation is created.

    Returns:
        str: The conversation ID

    Raises:
        ValueError: If the given conversation does not exist for this paper/user
    """
    with SessionLocal() as db, db.begin():
        if conversation_id:
            conv = db.get(PaperConversation, conversation_id)
            if conv is None or conv.paper_id != paper_id or conv.user_id != user_id:
                raise ValueError(f"Conversation {conversation_id} not found")
            return conv.id

        conv = PaperConversation(paper_id=paper_id, user_id=user_id)
        db.add(conv)
        db.flush()
        logger.info("Created new conversation", conversation_id=conv.id, paper_id=paper_id)
        return conv.id


def store_message(
    conversation_id: str,
    role: str,
    content: str,
    chunks_used: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Store a message in the conversation.

    Args:
        conversation_id: The conversation ID
        role: "user" or "assistant"
        content: The message content
        chunks_used: Chunk ids given to the model as context (assistant turns)

    Returns:
        The stored message as a dict
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}")

    with SessionLocal() as db, db.begin():
        msg = PaperMessage(
            conversation_id=conversation_id,
            role=role,
            content=content,
            chunks_used=list(chunks_used or []),
        )
        db.add(msg)
        conv = db.get(PaperConversation, conversation_id)
        if conv is not None and conv.title is None and role == "user":
            conv.title = content[:80]
        db.flush()
        logger.debug("Stored message", conversation_id=conversation_id, role=role)
        return _serialize_message(msg)


def list_conversations(paper_id: str, user_id: str) -> List[Dict[str, Any]]:
    """Conversations of one user about one paper, newest first."""
    with SessionLocal() as db:
        rows = db.execute(
            select(PaperConversation)
            .where(PaperConversation.paper_id == paper_id, PaperConversation.user_id == user_id)
            .order_by(PaperConversation.created_at.desc())
        ).scalars().all()
        return [
            {
                "id": c.id,
                "paper_id": c.paper_id,
                "user_id": c.user_id,
                "title": c.title,
                "created_at": c.created_at.isoformat() if c.created_at else None,
                "updated_at": c.updated_at.isoformat() if c.updated_at else None,
            }
            for c in rows
        ]


def get_conversation_by_id(conversation_id: str) -> Dict[str, Any]:
    """
    Retrieve all messages from a conversation.

    Returns:
        Dictionary with conversation fields and messages list (chronological)

    Raises:
        ValueError: If conversation not found
    """
    with SessionLocal() as db:
        conv = db.get(PaperConversation, conversation_id)
        if conv is None:
            raise ValueError(f"Conversation {conversation_id} not found")

        messages = db.execute(
            select(PaperMessage)
            .where(PaperMessage.conversation_id == conversation_id)
            .order_by(PaperMessage.created_at.asc())
        ).scalars().all()

        return {
            "conversation_id": conv.id,
            "paper_id": conv.paper_id,
            "user_id": conv.user_id,
            "title": conv.title,
            "messages": [_serialize_message(m) for m in messages],
        }


def delete_conversation_by_id(conversation_id: str) -> bool:
    """
    Delete a conversation and all its messages.

    Returns:
        True if a conversation was deleted
    """
    with SessionLocal() as db, db.begin():
        conv = db.get(PaperConversation, conversation_id)
        if conv is None:
            return False
        db.delete(conv)
    logger.info("Deleted conversation", conversation_id=conversation_id)
    return True


def _serialize_message(msg: PaperMessage) -> Dict[str, Any]:
    return {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "role": msg.role,
        "content": msg.content,
        "chunks_used": list(msg.chunks_used or []),
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
    }
