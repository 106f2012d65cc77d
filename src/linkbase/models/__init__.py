"""Data models for the Linkbase memory engine.

Persisted rows:
    - Connection: A person the user met
    - Fact: A short note about a connection, referencing a cached embedding
    - CachedEmbedding: A vector keyed by its exact source text

Supporting types:
    - FeatureType: Search domain tags on cached embeddings
    - TextEmbedding: Result of resolving text through the embedding cache
    - ScoredFact, SearchCursor, SearchFactsResult: Fact search
    - ConnectionMatch, SearchConnectionsResult: Connection ranking
"""

from .base import FeatureType, RecordBase, generate_id, utcnow
from .connection import Connection
from .embedding import CachedEmbedding, TextEmbedding
from .fact import Fact, ScoredFact
from .search import ConnectionMatch, SearchConnectionsResult, SearchCursor, SearchFactsResult

__all__ = [
    # Base types
    "FeatureType",
    "RecordBase",
    "generate_id",
    "utcnow",
    # Rows
    "Connection",
    "Fact",
    "CachedEmbedding",
    # Embedding cache
    "TextEmbedding",
    # Search
    "ScoredFact",
    "SearchCursor",
    "SearchFactsResult",
    "ConnectionMatch",
    "SearchConnectionsResult",
]
