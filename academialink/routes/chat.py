"""
Paper Chat API routes.
Handles conversation management and RAG question answering.
"""
from fastapi import APIRouter, HTTPException, Query

from ..db import SessionLocal
from ..errors import EmbeddingError, GenerationError
from ..logging_config import logger
from ..models import Paper
from ..schemas import ChatBody, ChatResponse
from ..services.conversation_service import (
    delete_conversation_by_id,
    get_conversation_by_id,
    get_or_create_conversation,
    list_conversations,
    store_message,
)
from ..services.rag_service import answer_question

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/paper-chat", response_model=ChatResponse)
async def paper_chat(payload: ChatBody):
    """
    Answer a question about one paper.

    Workflow:
    1. Resolve the conversation (created lazily)
    2. Store the user message
    3. Embed question, retrieve top chunks of this paper, generate grounded answer
    4. Store the assistant message with the chunk ids given as context
    """
    with SessionLocal() as db:
        paper = db.get(Paper, payload.paper_id)
        if paper is None:
            raise HTTPException(status_code=404, detail="Paper not found")
        user_id = payload.user_id or paper.user_id

    try:
        conversation_id = get_or_create_conversation(
            payload.paper_id, user_id, payload.conversation_id
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    store_message(conversation_id, "user", payload.message)

    try:
        answer = await answer_question(payload.paper_id, payload.message)
    except (EmbeddingError, GenerationError) as e:
        logger.error("Paper chat failed", paper_id=payload.paper_id, error=str(e))
        raise HTTPException(
            status_code=502,
            detail="Could not answer right now. Please try again or check that the paper is processed.",
        )

    store_message(conversation_id, "assistant", answer.response, chunks_used=answer.chunks_used)

    return ChatResponse(
        response=answer.response,
        chunks_used=answer.chunks_used,
        chunks=answer.chunks,
        grounded=answer.grounded,
        conversation_id=conversation_id,
    )


@router.get("/papers/{paper_id}/conversations")
async def get_paper_conversations(paper_id: str, user_id: str = Query(..., min_length=1)):
    """Conversations of a user about one paper, newest first."""
    return list_conversations(paper_id, user_id)


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    """
    Retrieve all messages from a conversation.
    Returns messages in chronological order.
    """
    try:
        return get_conversation_by_id(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    """Delete a conversation and all its messages."""
    if not delete_conversation_by_id(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"ok": True}
