"""Embedding providers and the persistent embedding cache.

Supports OpenAI (cloud) and FastEmbed (local) providers. Providers are
wrapped by EmbeddingCache, which stores every computed vector by its
exact text.

Example:
    ```python
    from linkbase.embeddings import EmbeddingCache, get_embedder
    from linkbase.config import Settings

    embedder = get_embedder(Settings(embedding_provider="fastembed"))
    cache = EmbeddingCache(storage, embedder)
    resolved = await cache.get_embedding("plays chess")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import Embedder
from .cache import EmbeddingCache

if TYPE_CHECKING:
    from linkbase.config import Settings


def get_embedder(settings: Settings | None = None) -> Embedder:
    """Create an embedder based on settings.

    Args:
        settings: Optional settings. Uses default Settings() if None.

    Returns:
        Configured Embedder instance.

    Raises:
        ValueError: If embedding provider is unknown.
    """
    if settings is None:
        from linkbase.config import Settings

        settings = Settings()

    provider = settings.embedding_provider

    if provider == "openai":
        from .openai import OpenAIEmbedder

        return OpenAIEmbedder(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            dimensions=settings.embedding_dimensions,
            timeout=settings.embedding_timeout,
            max_retries=settings.embedding_max_retries,
        )
    if provider == "fastembed":
        from .fastembed import FastEmbedEmbedder

        return FastEmbedEmbedder(model=settings.embedding_model)

    msg = f"Unknown embedding provider: {provider}"
    raise ValueError(msg)


__all__ = [
    "Embedder",
    "EmbeddingCache",
    "get_embedder",
]
