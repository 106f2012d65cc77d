"""Linkbase: memory for the people you meet.

Stores short facts about a user's connections as embeddings, searches
them by meaning, and ranks connections by their best-matching fact.

Quick Start:
    from linkbase.service import MemoryService

    async with MemoryService.create() as memory:
        connection = await memory.create_connection(
            user_id="user_123",
            name="Dana",
            met_at="PyCon",
            facts=["loves coffee", "works at Acme"],
        )

        # Facts whose meaning is close to the topic
        result = await memory.search_facts("espresso", user_id="user_123")

        # Connections ranked by their best-matching fact
        ranked = await memory.search_connections_by_fact("chess", user_id="user_123")

Data:
    - Connection: A person the user met
    - Fact: A short note about a connection
    - CachedEmbedding: A vector shared by every fact with the same text
"""

__version__ = "0.1.0"

# Configuration
from .config import SearchDefaults, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    EmbeddingProviderError,
    LinkbaseError,
    NotFoundError,
    PartialReconciliationError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    request_context,
)

# Models
from .models import (
    CachedEmbedding,
    Connection,
    ConnectionMatch,
    Fact,
    FeatureType,
    ScoredFact,
    SearchConnectionsResult,
    SearchCursor,
    SearchFactsResult,
    TextEmbedding,
)

# Service
from .service import MemoryService

__all__ = [
    "__version__",
    # Configuration
    "SearchDefaults",
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "EmbeddingProviderError",
    "LinkbaseError",
    "NotFoundError",
    "PartialReconciliationError",
    "StorageError",
    "ValidationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "request_context",
    # Models
    "CachedEmbedding",
    "Connection",
    "ConnectionMatch",
    "Fact",
    "FeatureType",
    "ScoredFact",
    "SearchConnectionsResult",
    "SearchCursor",
    "SearchFactsResult",
    "TextEmbedding",
    # Service
    "MemoryService",
]
