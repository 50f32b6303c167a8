import pytest
from sqlalchemy.exc import OperationalError

from academialink.db import SessionLocal
from academialink.errors import GenerationError
from academialink.retrieval import list_chunks
from academialink.services import ingestion_service, rag_service

from .conftest import FakeEmbedder


class FakeChat:
    def __init__(self, reply="The method uses attention (p. 1).", exc=None):
        self.reply = reply
        self.exc = exc
        self.messages = []

    async def __call__(self, messages, **kwargs):
        self.messages.append(messages)
        if self.exc:
            raise self.exc
        return self.reply


@pytest.fixture
def embedder(monkeypatch):
    fake = FakeEmbedder()
    monkeypatch.setattr(ingestion_service, "embed_text", fake)
    monkeypatch.setattr(rag_service, "embed_text", fake)
    return fake


@pytest.fixture
def chat(monkeypatch):
    fake = FakeChat()
    monkeypatch.setattr(rag_service, "complete_chat", fake)
    return fake


async def test_answer_is_grounded_in_one_paper(three_page_paper, make_paper, embedder, chat):
    paper_id = make_paper(file_url=three_page_paper)
    other_id = make_paper(file_url=three_page_paper)
    await ingestion_service.ingest_paper(paper_id)
    await ingestion_service.ingest_paper(other_id)

    answer = await rag_service.answer_question(paper_id, "  How is retrieval evaluated?  ")

    with SessionLocal() as db:
        own_ids = {c.id for c in list_chunks(db, paper_id)}
    assert answer.grounded
    assert 0 < len(answer.chunks_used) <= 5
    assert set(answer.chunks_used) <= own_ids
    assert [c["id"] for c in answer.chunks] == answer.chunks_used
    assert answer.response == "The method uses attention (p. 1)."

    # question is embedded trimmed, and the prompt carries page-tagged excerpts
    assert embedder.calls[-1] == "How is retrieval evaluated?"
    user_prompt = chat.messages[0][1]["content"]
    assert "[Page " in user_prompt
    assert "QUESTION: How is retrieval evaluated?" in user_prompt


async def test_no_chunks_discloses_missing_grounding(make_paper, embedder, chat):
    paper_id = make_paper()
    chat.reply = "Transformers rely on self-attention."

    answer = await rag_service.answer_question(paper_id, "What is attention?")

    assert not answer.grounded
    assert answer.chunks_used == []
    assert answer.response.startswith(rag_service.NO_GROUNDING_DISCLOSURE)
    assert rag_service.NO_GROUNDING_MARKER in chat.messages[0][1]["content"]


async def test_model_disclosure_is_not_repeated(make_paper, embedder, chat):
    paper_id = make_paper()
    chat.reply = "This answer is not grounded in the paper's text, but generally..."

    answer = await rag_service.answer_question(paper_id, "What is attention?")

    assert answer.response == chat.reply


async def test_store_failure_degrades_to_ungrounded(make_paper, embedder, chat, monkeypatch):
    def broken_search(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(rag_service, "search_chunks", broken_search)
    answer = await rag_service.answer_question(make_paper(), "Anything?")

    assert not answer.grounded
    assert answer.chunks_used == []


async def test_generation_failure_propagates(make_paper, embedder, monkeypatch):
    monkeypatch.setattr(rag_service, "complete_chat", FakeChat(exc=GenerationError("down")))
    with pytest.raises(GenerationError):
        await rag_service.answer_question(make_paper(), "Anything?")


def test_context_marks_unknown_pages():
    chunk = rag_service.RetrievedChunk(id="c1", chunk_index=0, page_number=None,
                                       chunk_text="text", score=1.0)
    assert rag_service.build_context([chunk]) == "[Page ?]\ntext"
    assert rag_service.build_context([]) == rag_service.NO_GROUNDING_MARKER
