"""
RAG (Retrieval-Augmented Generation) service for Paper Chat.
Embeds the question, retrieves the paper's closest chunks and grounds one
non-streaming completion in them.
"""
import time
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError

from ..config import RAG_TOP_K
from ..db import SessionLocal
from ..embedding import embed_text
from ..logging_config import logger
from ..openai_client import complete_chat
from ..retrieval import RetrievedChunk, search_chunks

NO_GROUNDING_MARKER = "[NO GROUNDING AVAILABLE]"

NO_GROUNDING_DISCLOSURE = (
    "Note: I could not find any processed text from this paper to ground my answer, "
    "so this response is based on general knowledge."
)

GROUNDED_SYSTEM_PROMPT = (
    "You are a research assistant helping a user understand an academic paper.\n\n"
    "Rules:\n"
    "1. Answer using the PAPER EXCERPTS provided below.\n"
    "2. Cite the page number of every excerpt you rely on, e.g. (p. 3).\n"
    "3. If the excerpts do not contain the answer, say so plainly instead of guessing.\n"
    "4. Be concise and precise."
)

UNGROUNDED_SYSTEM_PROMPT = (
    "You are a research assistant helping a user understand an academic paper.\n\n"
    f"The context below is {NO_GROUNDING_MARKER}: no text from the paper could be retrieved "
    "(it may not be processed yet).\n"
    "Answer from general knowledge, and begin your answer by telling the user that it is "
    "not grounded in the paper's text."
)


@dataclass
class ChatAnswer:
    response: str
    grounded: bool
    chunks_used: List[str] = field(default_factory=list)
    chunks: List[Dict] = field(default_factory=list)


def build_context(chunks: List[RetrievedChunk]) -> str:
    """
    Interleave each chunk's page number with its text, in retrieval order.
    """
    if not chunks:
        return NO_GROUNDING_MARKER
    parts = []
    for chunk in chunks:
        page = chunk.page_number if chunk.page_number is not None else "?"
        parts.append(f"[Page {page}]\n{chunk.chunk_text}")
    return "\n\n---\n\n".join(parts)


def build_messages(question: str, chunks: List[RetrievedChunk]) -> List[Dict]:
    system_prompt = GROUNDED_SYSTEM_PROMPT if chunks else UNGROUNDED_SYSTEM_PROMPT
    context = build_context(chunks)
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": f"PAPER EXCERPTS:\n{context}\n\nQUESTION: {question}"},
    ]


def _retrieve(paper_id: str, query_vector: List[float], top_k: int) -> List[RetrievedChunk]:
    """Store failures degrade to an empty result instead of failing the turn."""
    try:
        with SessionLocal() as db:
            return search_chunks(db, paper_id, query_vector, top_k=top_k)
    except SQLAlchemyError as e:
        logger.error("Chunk retrieval failed; answering without grounding",
                     paper_id=paper_id, error=str(e))
        return []


def _mentions_missing_grounding(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in ("general knowledge", "not grounded", "no text from the paper"))


async def answer_question(paper_id: str, question: str, top_k: int = RAG_TOP_K) -> ChatAnswer:
    """
    Answer a question about one paper.

    chunks_used lists every chunk supplied as context (not only the ones the
    model ends up citing). Nothing is persisted here.

    Raises:
        EmbeddingError: if the question cannot be embedded
        GenerationError: if the generation model fails
    """
    start_time = time.time()
    question = question.strip()

    query_vector = await embed_text(question)
    chunks = _retrieve(paper_id, query_vector, top_k)
    logger.info("Retrieved chunks", paper_id=paper_id, count=len(chunks))

    messages = build_messages(question, chunks)
    answer = (await complete_chat(messages)).strip()

    grounded = bool(chunks)
    if not grounded and not _mentions_missing_grounding(answer):
        answer = f"{NO_GROUNDING_DISCLOSURE}\n\n{answer}"

    elapsed_ms = round((time.time() - start_time) * 1000, 2)
    logger.info("Question answered", paper_id=paper_id, grounded=grounded, time_ms=elapsed_ms)

    return ChatAnswer(
        response=answer,
        grounded=grounded,
        chunks_used=[c.id for c in chunks],
        chunks=[
            {"id": c.id, "page_number": c.page_number, "chunk_text": c.chunk_text}
            for c in chunks
        ],
    )
