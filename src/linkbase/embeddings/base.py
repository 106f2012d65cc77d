"""Base classes for embedding providers.

Embedders convert text to vector representations for semantic search.
All embedders implement async interfaces for non-blocking I/O.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class Embedder(ABC):
    """Abstract base class for embedding providers.

    The provider is an external collaborator with its own latency and
    failure modes. Implementations raise EmbeddingProviderError on any
    failure so callers see a single error type.

    Example:
        ```python
        embedder = OpenAIEmbedder()
        vector = await embedder.embed("Hello world")
        print(f"Dimensions: {embedder.dimensions}")
        ```
    """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector as list of floats, ``dimensions`` long.

        Raises:
            EmbeddingProviderError: If the provider call fails.
        """
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the dimensionality of embedding vectors.

        Returns:
            Number of dimensions in the embedding vector.
        """
        ...
