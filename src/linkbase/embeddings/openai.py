"""OpenAI embedding provider.

Uses OpenAI's text-embedding models via the official SDK.
"""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

from linkbase.exceptions import EmbeddingProviderError

from .base import Embedder

logger = logging.getLogger(__name__)

# Native dimensions for known models
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Models that accept the ``dimensions`` request parameter
SHORTENABLE_MODELS = {"text-embedding-3-small", "text-embedding-3-large"}


class OpenAIEmbedder(Embedder):
    """OpenAI embedding provider.

    Uses AsyncOpenAI client for non-blocking API calls. The vector column
    has a fixed size, so the requested dimensionality is sent with every
    call and every response is checked against it.

    Example:
        ```python
        embedder = OpenAIEmbedder()
        vector = await embedder.embed("Hello world")
        # vector has 1536 dimensions
        ```
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        """Initialize OpenAI embedder.

        Args:
            model: OpenAI embedding model name.
            api_key: OpenAI API key. If None, uses OPENAI_API_KEY env var.
            dimensions: Requested vector size. Defaults to the model's native size.
            timeout: Seconds before a request is abandoned.
            max_retries: Client-side retries for transient failures.
        """
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self._dimensions = dimensions or MODEL_DIMENSIONS.get(model, 1536)

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector of ``dimensions`` floats.

        Raises:
            EmbeddingProviderError: If the API call fails or returns unexpected data.
        """
        kwargs: dict[str, object] = {"model": self.model, "input": text}
        if self.model in SHORTENABLE_MODELS:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)  # type: ignore[arg-type]
        except Exception as e:
            raise EmbeddingProviderError(f"OpenAI embedding API failed: {e}") from e

        if not response.data:
            raise EmbeddingProviderError("OpenAI returned empty embedding data")

        embedding = list(response.data[0].embedding)
        if len(embedding) != self._dimensions:
            logger.warning(
                "Embedding dimension mismatch: expected %d, got %d (model=%s)",
                self._dimensions,
                len(embedding),
                self.model,
            )
            raise EmbeddingProviderError(
                f"OpenAI returned {len(embedding)} dimensions, expected {self._dimensions}"
            )

        return embedding

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        return self._dimensions
