from typing import List

from openai import OpenAIError

from .config import EMBED_MODEL, EMBED_DIM, EMBED_MAX_CHARS
from .errors import EmbeddingError
from .openai_client import client


def truncate_for_embedding(text: str) -> str:
    """Cut input to the provider's ceiling (EMBED_MAX_CHARS characters)."""
    return text[:EMBED_MAX_CHARS]


async def embed_text(text: str) -> List[float]:
    """
    Embed one text with the external embedding model.

    Never returns a placeholder vector: any provider failure, missing vector
    or wrong dimensionality raises EmbeddingError.
    """
    try:
        resp = await client.embeddings.create(model=EMBED_MODEL, input=truncate_for_embedding(text))
    except OpenAIError as e:
        raise EmbeddingError(f"Embedding provider error: {e}") from e

    embedding = resp.data[0].embedding if resp.data else None
    if not isinstance(embedding, list):
        raise EmbeddingError("Invalid embedding response")
    if len(embedding) != EMBED_DIM:
        raise EmbeddingError(f"Expected {EMBED_DIM}-dim embedding, got {len(embedding)}")
    return embedding
