"""Embeddings for long-term memory records."""

from __future__ import annotations

import litellm
import structlog

from ..exceptions import ContextEngineError
from ..llm import provider_retry

logger = structlog.get_logger()


class EmbeddingError(ContextEngineError):
    """The provider returned a vector of the wrong dimension."""


class EmbeddingService:
    """Turns memory summaries into vectors via LiteLLM.

    Attributes:
        model: Embedding model name
        dimension: Vector size the store's column expects
    """

    def __init__(self, model: str = "text-embedding-3-small", dimension: int = 1536) -> None:
        self.model = model
        self.dimension = dimension

    @provider_retry
    async def embed_text(self, text: str) -> list[float]:
        """Embed one summary.

        Raises:
            EmbeddingError: If the vector does not fit the store's column
        """
        response = await litellm.aembedding(model=self.model, input=[text])
        embedding: list[float] = response.data[0]["embedding"]

        if len(embedding) != self.dimension:
            raise EmbeddingError(
                f"Expected {self.dimension}-dimensional embedding from {self.model}, "
                f"got {len(embedding)}"
            )

        logger.debug("memory_embedded", model=self.model, text_length=len(text))
        return embedding
