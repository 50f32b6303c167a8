from dataclasses import dataclass
from time import perf_counter
from typing import List, Optional, Sequence

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .chunking import TextChunk
from .config import RAG_TOP_K
from .logging_config import logger
from .models import PaperChunk


@dataclass
class RetrievedChunk:
    id: str
    chunk_index: int
    page_number: Optional[int]
    chunk_text: str
    score: float


def delete_chunks(db: Session, paper_id: str) -> int:
    """Delete every chunk of a paper. Returns the number of rows removed."""
    res = db.execute(delete(PaperChunk).where(PaperChunk.paper_id == paper_id))
    return res.rowcount or 0


def replace_chunks(
    db: Session,
    paper_id: str,
    chunks: Sequence[TextChunk],
    vectors: Sequence[Sequence[float]],
) -> List[str]:
    """
    Swap a paper's chunk set for a new one, indexed 0..N-1.

    Runs inside the caller's transaction: either the old set or the complete
    new set is visible, never a mix.
    """
    if len(chunks) != len(vectors):
        raise ValueError(f"{len(chunks)} chunks but {len(vectors)} vectors")

    removed = delete_chunks(db, paper_id)
    # Flush the delete first so the (paper_id, chunk_index) unique constraint holds
    db.flush()

    rows = [
        PaperChunk(
            paper_id=paper_id,
            chunk_index=i,
            chunk_text=chunk.text,
            page_number=chunk.page_number,
            embedding=list(vec),
        )
        for i, (chunk, vec) in enumerate(zip(chunks, vectors))
    ]
    db.add_all(rows)
    db.flush()
    logger.info("Replaced paper chunks", paper_id=paper_id, removed=removed, inserted=len(rows))
    return [r.id for r in rows]


def count_chunks(db: Session, paper_id: str) -> int:
    return db.execute(
        select(func.count(PaperChunk.id)).where(PaperChunk.paper_id == paper_id)
    ).scalar_one()


def list_chunks(db: Session, paper_id: str) -> List[PaperChunk]:
    return list(
        db.execute(
            select(PaperChunk)
            .where(PaperChunk.paper_id == paper_id)
            .order_by(PaperChunk.chunk_index)
        ).scalars()
    )


def _search_pgvector(db: Session, paper_id: str, query_vector, top_k: int) -> List[RetrievedChunk]:
    distance = PaperChunk.embedding.cosine_distance(query_vector)
    rows = db.execute(
        select(
            PaperChunk.id,
            PaperChunk.chunk_index,
            PaperChunk.page_number,
            PaperChunk.chunk_text,
            (1 - distance).label("score"),
        )
        .where(PaperChunk.paper_id == paper_id)
        .order_by(distance, PaperChunk.chunk_index)
        .limit(top_k)
    ).all()
    return [
        RetrievedChunk(
            id=r.id,
            chunk_index=r.chunk_index,
            page_number=r.page_number,
            chunk_text=r.chunk_text,
            score=float(r.score),
        )
        for r in rows
    ]


def _search_scan(db: Session, paper_id: str, query_vector, top_k: int) -> List[RetrievedChunk]:
    """Exact cosine ranking over one paper's vectors, for stores without pgvector."""
    chunks = list_chunks(db, paper_id)
    if not chunks:
        return []

    matrix = np.array([np.asarray(c.embedding, dtype=float) for c in chunks])
    q = np.asarray(query_vector, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    scores = np.divide(matrix @ q, norms, out=np.zeros(len(chunks)), where=norms > 0)

    # Stable sort on -score keeps chunk_index order among ties
    order = np.argsort(-scores, kind="stable")[:top_k]
    return [
        RetrievedChunk(
            id=chunks[i].id,
            chunk_index=chunks[i].chunk_index,
            page_number=chunks[i].page_number,
            chunk_text=chunks[i].chunk_text,
            score=float(scores[i]),
        )
        for i in order
    ]


def search_chunks(
    db: Session,
    paper_id: str,
    query_vector: Sequence[float],
    top_k: int = RAG_TOP_K,
) -> List[RetrievedChunk]:
    """
    Return the top_k chunks of one paper most similar to query_vector.

    Results never include chunks of another paper. Ordered by cosine
    similarity descending, ties by chunk_index.
    """
    t = perf_counter()
    if db.get_bind().dialect.name == "postgresql":
        results = _search_pgvector(db, paper_id, list(query_vector), top_k)
    else:
        results = _search_scan(db, paper_id, query_vector, top_k)
    logger.info(
        "Searched paper chunks",
        paper_id=paper_id,
        returned=len(results),
        time_ms=round((perf_counter() - t) * 1000, 2),
    )
    return results
