from pathlib import Path

import pytest

from academialink.chunking import chunk_pages
from academialink.db import SessionLocal
from academialink.errors import EmbeddingError, IngestionError, PaperNotFoundError
from academialink.models import Paper
from academialink.retrieval import list_chunks
from academialink.services import ingestion_service
from academialink.text_extraction import extract_pdf


@pytest.fixture(autouse=True)
def patched_embedder(monkeypatch, fake_embedder):
    monkeypatch.setattr(ingestion_service, "embed_text", fake_embedder)
    return fake_embedder


def _load(paper_id):
    with SessionLocal() as db:
        paper = db.get(Paper, paper_id)
        return paper, list_chunks(db, paper_id)


async def test_three_page_paper_is_fully_ingested(three_page_paper, make_paper, fake_embedder):
    expected = chunk_pages(extract_pdf(Path(three_page_paper).read_bytes()).pages)
    paper_id = make_paper(file_url=three_page_paper)

    result = await ingestion_service.ingest_paper(paper_id)

    assert result.success
    assert result.page_count == 3
    assert result.chunks_count == len(expected)
    assert 10 <= len(expected) <= 14

    paper, chunks = _load(paper_id)
    assert paper.processed is True
    assert paper.status == "processed"
    assert paper.page_count == 3
    assert paper.processing_error is None
    assert len(chunks) == len(expected)
    assert [c.chunk_index for c in chunks] == list(range(len(expected)))
    assert {c.page_number for c in chunks} == {1, 2, 3}
    assert len(fake_embedder.calls) == len(expected)


async def test_extracted_metadata_merges_into_existing(three_page_paper, make_paper):
    paper_id = make_paper(file_url=three_page_paper, meta={"doi": "10.1000/xyz", "title": "stale"})

    await ingestion_service.ingest_paper(paper_id)

    paper, _ = _load(paper_id)
    assert paper.meta["doi"] == "10.1000/xyz"
    assert paper.meta["title"] == "Grounded Question Answering Over Scientific Papers"
    assert paper.title == "Grounded Question Answering Over Scientific Papers"
    assert paper.meta.get("abstract")


async def test_reingestion_replaces_instead_of_duplicating(three_page_paper, make_paper):
    paper_id = make_paper(file_url=three_page_paper)

    first = await ingestion_service.ingest_paper(paper_id)
    _, first_chunks = _load(paper_id)
    second = await ingestion_service.ingest_paper(paper_id)
    _, second_chunks = _load(paper_id)

    assert first.chunks_count == second.chunks_count == len(second_chunks)
    assert [c.chunk_text for c in first_chunks] == [c.chunk_text for c in second_chunks]
    assert not {c.id for c in first_chunks} & {c.id for c in second_chunks}


async def test_embedding_failure_leaves_no_chunks(three_page_paper, make_paper, monkeypatch):
    from .conftest import FakeEmbedder

    paper_id = make_paper(file_url=three_page_paper)
    await ingestion_service.ingest_paper(paper_id)

    failing = FakeEmbedder(fail_on_call=3, exc=EmbeddingError("rate limited"))
    monkeypatch.setattr(ingestion_service, "embed_text", failing)
    result = await ingestion_service.ingest_paper(paper_id)

    assert not result.success
    assert "rate limited" in result.error
    assert len(failing.calls) == 3

    paper, chunks = _load(paper_id)
    assert chunks == []
    assert paper.processed is False
    assert paper.status == "failed"
    assert "rate limited" in paper.processing_error


async def test_corrupt_file_marks_paper_failed(tmp_path, make_paper, fake_embedder):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"not a pdf")
    paper_id = make_paper(file_url=str(path))

    result = await ingestion_service.ingest_paper(paper_id)

    assert not result.success
    paper, chunks = _load(paper_id)
    assert paper.status == "failed"
    assert paper.processed is False
    assert chunks == []
    assert fake_embedder.calls == []


async def test_missing_paper_raises():
    with pytest.raises(PaperNotFoundError):
        await ingestion_service.ingest_paper("no-such-paper")


async def test_paper_without_file_raises(make_paper):
    paper_id = make_paper(file_url=None)
    with pytest.raises(IngestionError):
        await ingestion_service.ingest_paper(paper_id)


async def test_background_task_swallows_precondition_errors():
    await ingestion_service.run_ingestion_task("no-such-paper")


async def test_crash_during_write_commits_no_partial_chunks(three_page_paper, make_paper, monkeypatch):
    paper_id = make_paper(file_url=three_page_paper, meta={"doi": "10.1000/xyz"})
    await ingestion_service.ingest_paper(paper_id)

    real_replace = ingestion_service.replace_chunks
    inserted = []

    def crash_after_insert(db, pid, chunks, vectors):
        inserted.extend(real_replace(db, pid, chunks, vectors))
        raise RuntimeError("connection lost mid-insert")

    monkeypatch.setattr(ingestion_service, "replace_chunks", crash_after_insert)
    result = await ingestion_service.ingest_paper(paper_id)

    assert inserted
    assert not result.success
    assert "connection lost" in result.error

    paper, chunks = _load(paper_id)
    assert chunks == []
    assert paper.processed is False
    assert paper.status == "failed"
    assert "connection lost" in paper.processing_error
    assert paper.meta["doi"] == "10.1000/xyz"
