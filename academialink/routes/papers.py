"""
Paper management API routes.
Handles upload, ingestion triggering, status polling, listing and deletion.
"""
import os
import uuid
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from ..config import MAX_FILE_SIZE_BYTES, UPLOAD_DIR
from ..db import SessionLocal
from ..errors import IngestionError, PaperNotFoundError
from ..logging_config import logger
from ..models import Paper, PaperChunk
from ..retrieval import count_chunks
from ..schemas import IngestionResultOut, PaperCreate, PaperOut, ProcessPaperBody
from ..services.ingestion_service import ingest_paper, run_ingestion_task

router = APIRouter(prefix="/api", tags=["papers"])

PDF_MIME_TYPES = ("application/pdf", "application/x-pdf")


def _paper_out(paper: Paper, chunk_count: int = 0) -> PaperOut:
    return PaperOut(
        id=paper.id,
        user_id=paper.user_id,
        title=paper.title,
        filename=paper.filename,
        file_url=paper.file_url,
        file_size=paper.file_size,
        page_count=paper.page_count,
        processed=paper.processed,
        status=paper.status,
        processing_error=paper.processing_error,
        metadata=paper.meta or {},
        chunk_count=chunk_count,
        created_at=paper.created_at,
        updated_at=paper.updated_at,
    )


def _default_title(filename: str) -> str:
    return os.path.splitext(filename)[0] or filename


# ==================== Upload & registration ====================

@router.post("/papers/upload", status_code=201, response_model=PaperOut)
async def upload_paper(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user_id: str = Form(...),
    title: Optional[str] = Form(None),
):
    """
    Upload a PDF and queue it for ingestion.

    The paper is returned immediately with processed=false; poll
    GET /api/papers/{id} until processed flips to true.
    """
    filename = file.filename or "paper.pdf"
    if not (filename.lower().endswith(".pdf") or (file.content_type or "") in PDF_MIME_TYPES):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File '{filename}' is too large. Max size is {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB.",
        )

    paper_id = str(uuid.uuid4())
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    path = os.path.join(UPLOAD_DIR, f"{paper_id}.pdf")
    with open(path, "wb") as f:
        f.write(data)

    with SessionLocal() as db, db.begin():
        paper = Paper(
            id=paper_id,
            user_id=user_id,
            title=title or _default_title(filename),
            filename=filename,
            file_url=path,
            file_size=len(data),
            processed=False,
            status="uploaded",
            meta={},
        )
        db.add(paper)
        db.flush()
        out = _paper_out(paper)

    background_tasks.add_task(run_ingestion_task, paper_id)
    logger.info("Paper uploaded", paper_id=paper_id, filename=filename, size_bytes=len(data))
    return out


@router.post("/papers", status_code=201, response_model=PaperOut)
async def register_paper(payload: PaperCreate, background_tasks: BackgroundTasks):
    """Register a paper already in external storage and queue it for ingestion."""
    with SessionLocal() as db, db.begin():
        paper = Paper(
            user_id=payload.user_id,
            title=payload.title or _default_title(payload.filename),
            filename=payload.filename,
            file_url=payload.file_url,
            file_size=payload.file_size,
            processed=False,
            status="uploaded",
            meta={},
        )
        db.add(paper)
        db.flush()
        out = _paper_out(paper)

    background_tasks.add_task(run_ingestion_task, out.id)
    logger.info("Paper registered", paper_id=out.id, file_url=payload.file_url)
    return out


# ==================== Ingestion trigger ====================

@router.post("/process-paper")
async def process_paper(payload: ProcessPaperBody, background_tasks: BackgroundTasks):
    """
    Start (or retry) ingestion for a paper.

    Re-running is always safe: existing chunks are replaced, never appended.
    By default the run happens in the background and 202 is returned;
    wait=true runs it inline and returns the ingestion result.
    """
    with SessionLocal() as db:
        paper = db.get(Paper, payload.paper_id)
        if paper is None:
            raise HTTPException(status_code=404, detail="Paper not found")
        if not paper.file_url:
            raise HTTPException(status_code=400, detail="Paper has no file_url")

    if not payload.wait:
        background_tasks.add_task(run_ingestion_task, payload.paper_id)
        return JSONResponse({"ok": True, "paper_id": payload.paper_id, "status": "queued"},
                            status_code=202)

    try:
        result = await ingest_paper(payload.paper_id)
    except PaperNotFoundError:
        raise HTTPException(status_code=404, detail="Paper not found")
    except IngestionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    body = IngestionResultOut(**asdict(result)).model_dump()
    return JSONResponse(body, status_code=200 if result.success else 500)


# ==================== Listing & polling ====================

@router.get("/papers", response_model=List[PaperOut])
async def list_papers(user_id: str = Query(..., min_length=1)):
    """Papers of one user, newest first, with chunk counts."""
    with SessionLocal() as db:
        counts = (
            select(PaperChunk.paper_id, func.count(PaperChunk.id).label("n"))
            .group_by(PaperChunk.paper_id)
            .subquery()
        )
        rows = db.execute(
            select(Paper, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.paper_id == Paper.id)
            .where(Paper.user_id == user_id)
            .order_by(Paper.created_at.desc())
        ).all()
        papers = [_paper_out(paper, n) for paper, n in rows]

    logger.info("Listed papers", user_id=user_id, count=len(papers))
    return papers


@router.get("/papers/{paper_id}", response_model=PaperOut)
async def get_paper(paper_id: str):
    """Polling endpoint: processed, status and chunk_count reflect ingestion progress."""
    with SessionLocal() as db:
        paper = db.get(Paper, paper_id)
        if paper is None:
            raise HTTPException(status_code=404, detail="Paper not found")
        return _paper_out(paper, count_chunks(db, paper_id))


@router.delete("/papers/{paper_id}")
async def delete_paper(paper_id: str):
    """
    Delete a paper with its chunks and conversations.
    A locally stored upload is removed too.
    """
    with SessionLocal() as db, db.begin():
        paper = db.get(Paper, paper_id)
        if paper is None:
            logger.warning("Paper not found for deletion", paper_id=paper_id)
            raise HTTPException(status_code=404, detail="Paper not found")
        file_url = paper.file_url
        db.delete(paper)

    upload_root = os.path.abspath(UPLOAD_DIR)
    if file_url and os.path.abspath(file_url).startswith(upload_root + os.sep):
        try:
            os.remove(file_url)
        except OSError as e:
            logger.warning("Could not remove uploaded file", path=file_url, error=str(e))

    logger.info("Paper deleted", paper_id=paper_id)
    return {"ok": True, "deleted": paper_id}
