"""Configuration management for Linkbase."""

import logging
import os
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class SearchDefaults(BaseModel):
    """Default thresholds and page sizes for fact search.

    Attributes:
        min_similarity: Inclusive lower bound for fact search (0.2 default).
        limit: Page size when the caller does not pass one (10 default).
        max_limit: Largest page a caller may request (100 default).
        connection_min_similarity: Lower bound for ranking connections.
        similar_fact_threshold: Threshold used by find_similar_facts / add_fact_if_new.
        fact_exists_threshold: Threshold used by fact_exists.
    """

    min_similarity: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for fact search (inclusive)",
    )
    limit: int = Field(
        default=10,
        ge=1,
        description="Default page size for fact search",
    )
    max_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum page size for fact search",
    )
    connection_min_similarity: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Minimum top-fact similarity when ranking connections",
    )
    similar_fact_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Similarity at which two facts are treated as near duplicates",
    )
    fact_exists_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Similarity at which a fact is treated as already stored",
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "SearchDefaults":
        """Ensure the default page size fits under the maximum."""
        if self.limit > self.max_limit:
            raise ValueError(
                f"search limit ({self.limit}) must not exceed max_limit ({self.max_limit})"
            )
        return self


class Settings(BaseSettings):
    """Linkbase configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the LINKBASE_ prefix. For example:
        LINKBASE_DATABASE_URL=postgresql://localhost:5432/linkbase
        LINKBASE_EMBEDDING_PROVIDER=fastembed
        LINKBASE_SEARCH__MIN_SIMILARITY=0.3
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    database_url: str = Field(
        default="postgresql://localhost:5432/linkbase",
        description="PostgreSQL connection URL (requires the pgvector extension)",
    )
    db_pool_min_size: int = Field(
        default=1,
        ge=0,
        description="Minimum connections kept in the pool",
    )
    db_pool_max_size: int = Field(
        default=10,
        ge=1,
        description="Maximum connections in the pool",
    )
    db_command_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-statement timeout in seconds",
    )
    db_ensure_schema: bool = Field(
        default=True,
        description="Create the extension, enum and tables on startup if missing",
    )

    # Embeddings
    embedding_provider: Literal["openai", "fastembed"] = Field(
        default="openai",
        description="Embedding provider to use",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model name",
    )
    embedding_dimensions: int = Field(
        default=1536,
        ge=1,
        le=16000,
        description="Fixed dimensionality of the vector column",
    )
    embedding_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds before a provider call is abandoned",
    )
    embedding_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Client-side retries for provider calls",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )

    # Search
    search: SearchDefaults = Field(
        default_factory=SearchDefaults,
        description="Fact and connection search defaults",
    )

    # Reconciliation
    reembed_kept_facts: bool = Field(
        default=True,
        description=(
            "Re-resolve embeddings for facts kept unchanged during an upsert. "
            "Costs a cache lookup per kept fact; refreshes the embedding reference "
            "if the cache row for that text was replaced."
        ),
    )

    # Query expansion
    query_expansion_model: str = Field(
        default="openai:gpt-4o-mini",
        description="Full model spec for Pydantic AI query expansion",
    )

    # API
    api_page_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Page size for connection search in the HTTP API (below search.max_limit)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "LINKBASE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_bounds(self) -> "Settings":
        """Validate settings that constrain each other.

        A fact that "exists" must also be "similar", so the existence
        threshold cannot be looser than the similarity threshold.
        """
        if self.search.fact_exists_threshold < self.search.similar_fact_threshold:
            raise ValueError(
                f"fact_exists_threshold ({self.search.fact_exists_threshold}) must be at least "
                f"similar_fact_threshold ({self.search.similar_fact_threshold})"
            )
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError(
                f"db_pool_min_size ({self.db_pool_min_size}) must not exceed "
                f"db_pool_max_size ({self.db_pool_max_size})"
            )
        # Connection search fetches one row past the page to detect the next page
        if self.api_page_size >= self.search.max_limit:
            raise ValueError(
                f"api_page_size ({self.api_page_size}) must be less than "
                f"search.max_limit ({self.search.max_limit})"
            )
        return self

    @model_validator(mode="after")
    def sync_openai_api_key(self) -> "Settings":
        """Accept either LINKBASE_OPENAI_API_KEY or OPENAI_API_KEY.

        If only one is set, the other is populated so both the linkbase config
        and downstream libraries (Pydantic AI, OpenAI SDK) can find the key.
        """
        if not self.openai_api_key:
            fallback_key = os.environ.get("OPENAI_API_KEY")
            if fallback_key:
                object.__setattr__(self, "openai_api_key", fallback_key)
                logger.debug("Using OPENAI_API_KEY as fallback for LINKBASE_OPENAI_API_KEY")

        if self.openai_api_key and not os.environ.get("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = self.openai_api_key
            logger.debug("Synced LINKBASE_OPENAI_API_KEY to OPENAI_API_KEY")

        return self


# Global settings instance
settings = Settings()
