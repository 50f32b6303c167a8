from types import SimpleNamespace

import openai
import pytest

from academialink import embedding
from academialink.config import EMBED_DIM, EMBED_MAX_CHARS
from academialink.errors import EmbeddingError


class FakeEmbeddings:
    def __init__(self, vector=None, exc=None):
        self.inputs = []
        self.vector = vector if vector is not None else [0.1] * EMBED_DIM
        self.exc = exc

    async def create(self, model, input):
        self.inputs.append(input)
        if self.exc:
            raise self.exc
        return SimpleNamespace(data=[SimpleNamespace(embedding=self.vector)])


@pytest.fixture
def fake_client(monkeypatch):
    def _install(**kwargs):
        fake = FakeEmbeddings(**kwargs)
        monkeypatch.setattr(embedding, "client", SimpleNamespace(embeddings=fake))
        return fake
    return _install


async def test_embed_text_returns_vector(fake_client):
    fake = fake_client()
    vec = await embedding.embed_text("hello")
    assert len(vec) == EMBED_DIM
    assert fake.inputs == ["hello"]


async def test_long_input_is_truncated_not_rejected(fake_client):
    fake = fake_client()
    await embedding.embed_text("a" * (EMBED_MAX_CHARS + 500))
    assert len(fake.inputs[0]) == EMBED_MAX_CHARS == 8191


async def test_provider_error_is_surfaced(fake_client):
    fake_client(exc=openai.OpenAIError("rate limited"))
    with pytest.raises(EmbeddingError):
        await embedding.embed_text("hello")


async def test_wrong_dimension_is_rejected(fake_client):
    fake_client(vector=[0.0, 1.0])
    with pytest.raises(EmbeddingError):
        await embedding.embed_text("hello")


async def test_missing_vector_is_rejected(monkeypatch):
    class Empty:
        async def create(self, model, input):
            return SimpleNamespace(data=[])

    monkeypatch.setattr(embedding, "client", SimpleNamespace(embeddings=Empty()))
    with pytest.raises(EmbeddingError):
        await embedding.embed_text("hello")
