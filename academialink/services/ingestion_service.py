"""
Paper ingestion pipeline.
Extract -> chunk -> embed -> store, run once per upload (and on manual retry).

Stage names are written to papers.status so the client can poll progress:
uploaded -> extracting -> chunking -> embedding -> writing -> processed | failed
"""
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from ..chunking import chunk_pages
from ..db import SessionLocal
from ..embedding import embed_text
from ..errors import ExtractionError, IngestionError, PaperNotFoundError
from ..logging_config import logger
from ..models import Paper
from ..retrieval import delete_chunks, replace_chunks
from ..text_extraction import extract_metadata, extract_pdf, load_paper_bytes

STATUS_UPLOADED = "uploaded"
STATUS_EXTRACTING = "extracting"
STATUS_CHUNKING = "chunking"
STATUS_EMBEDDING = "embedding"
STATUS_WRITING = "writing"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"


@dataclass
class IngestionResult:
    paper_id: str
    success: bool
    chunks_count: int = 0
    page_count: Optional[int] = None
    metadata: Dict = field(default_factory=dict)
    error: Optional[str] = None


def _start_run(paper_id: str) -> str:
    """
    Reset the paper to an unprocessed, chunk-free state and return its file_url.

    From here on a failed run leaves nothing behind but status=failed.
    """
    with SessionLocal() as db, db.begin():
        paper = db.get(Paper, paper_id)
        if paper is None:
            raise PaperNotFoundError(f"Paper {paper_id} not found")
        if not paper.file_url:
            raise IngestionError("Paper has no file_url")

        delete_chunks(db, paper_id)
        paper.processed = False
        paper.status = STATUS_EXTRACTING
        paper.processing_error = None
        return paper.file_url


def _set_status(paper_id: str, status: str) -> None:
    with SessionLocal() as db, db.begin():
        paper = db.get(Paper, paper_id)
        if paper is not None:
            paper.status = status


def _mark_failed(paper_id: str, error: str) -> None:
    with SessionLocal() as db, db.begin():
        paper = db.get(Paper, paper_id)
        if paper is None:
            return
        delete_chunks(db, paper_id)
        paper.processed = False
        paper.status = STATUS_FAILED
        paper.processing_error = error


def _write_results(paper_id: str, chunks, vectors, page_count: int, extracted: Dict) -> None:
    """Replace chunks and flip the paper to processed in one transaction."""
    with SessionLocal() as db, db.begin():
        paper = db.get(Paper, paper_id)
        if paper is None:
            raise PaperNotFoundError(f"Paper {paper_id} was deleted during ingestion")

        replace_chunks(db, paper_id, chunks, vectors)

        merged = dict(paper.meta) if isinstance(paper.meta, dict) else {}
        merged.update(extracted)
        paper.meta = merged
        paper.page_count = page_count
        if extracted.get("title"):
            paper.title = extracted["title"]
        paper.processed = True
        paper.status = STATUS_PROCESSED
        paper.processing_error = None


async def _embed_all(chunks) -> List[List[float]]:
    # Sequential on purpose: stays under provider rate limits; first failure aborts
    vectors = []
    for i, chunk in enumerate(chunks):
        vectors.append(await embed_text(chunk.text))
        logger.debug("Embedded chunk", index=i, total=len(chunks))
    return vectors


async def ingest_paper(paper_id: str) -> IngestionResult:
    """
    Run the full ingestion pipeline for one paper.

    Safe to re-run: previous chunks are cleared first, so retries never
    accumulate duplicates. Failures are logged, recorded on the paper
    (status=failed, processing_error) and returned as an unsuccessful
    IngestionResult.

    Raises:
        PaperNotFoundError: if the paper does not exist
        IngestionError: if the paper has no file to ingest
    """
    start_time = time.time()
    with structlog.contextvars.bound_contextvars(paper_id=paper_id):
        file_url = _start_run(paper_id)
        logger.info("Ingestion started", file_url=file_url)

        try:
            data = await load_paper_bytes(file_url)
            document = extract_pdf(data)
            extracted = extract_metadata(document.full_text)

            _set_status(paper_id, STATUS_CHUNKING)
            chunks = chunk_pages(document.pages)
            if not chunks:
                raise ExtractionError("No text chunks produced")
            logger.info("Created chunks", chunk_count=len(chunks), page_count=document.page_count)

            _set_status(paper_id, STATUS_EMBEDDING)
            vectors = await _embed_all(chunks)

            _set_status(paper_id, STATUS_WRITING)
            _write_results(paper_id, chunks, vectors, document.page_count, extracted)
        except Exception as e:
            logger.error("Ingestion failed", error=str(e), exc_info=e)
            _mark_failed(paper_id, str(e))
            return IngestionResult(paper_id=paper_id, success=False, error=str(e))

        elapsed_ms = round((time.time() - start_time) * 1000, 2)
        logger.info("Ingestion completed", chunk_count=len(chunks), time_ms=elapsed_ms)
        return IngestionResult(
            paper_id=paper_id,
            success=True,
            chunks_count=len(chunks),
            page_count=document.page_count,
            metadata=extracted,
        )


async def run_ingestion_task(paper_id: str) -> None:
    """Background-task entry point: never raises, the outcome lives on the paper row."""
    try:
        await ingest_paper(paper_id)
    except (PaperNotFoundError, IngestionError) as e:
        logger.warning("Ingestion not started", paper_id=paper_id, error=str(e))
