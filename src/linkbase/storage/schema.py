"""Database schema for Linkbase.

Statements are idempotent and run on startup when
``settings.db_ensure_schema`` is enabled.
"""

from __future__ import annotations

from linkbase.models import FeatureType


def schema_statements(dimensions: int) -> list[str]:
    """DDL for the extension, enum, tables and indexes.

    Args:
        dimensions: Fixed size of the ``cached_embedding.embedding`` column.
    """
    feature_values = ", ".join(f"'{f.value}'" for f in FeatureType)
    return [
        "CREATE EXTENSION IF NOT EXISTS vector",
        f"""
        DO $$ BEGIN
            CREATE TYPE embedding_feature_type AS ENUM ({feature_values});
        EXCEPTION
            WHEN duplicate_object THEN NULL;
        END $$
        """,
        """
        CREATE TABLE IF NOT EXISTS connection (
            id text PRIMARY KEY,
            user_id text NOT NULL,
            name varchar(100) NOT NULL,
            met_at varchar(200) NOT NULL,
            met_when timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS cached_embedding (
            id text PRIMARY KEY,
            text text NOT NULL UNIQUE,
            embedding vector({dimensions}) NOT NULL,
            feature_tags embedding_feature_type[] NOT NULL DEFAULT '{{}}',
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS fact (
            id text PRIMARY KEY,
            text text NOT NULL,
            connection_id text NOT NULL REFERENCES connection (id) ON DELETE CASCADE,
            embedding_id text NOT NULL REFERENCES cached_embedding (id) ON DELETE RESTRICT,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_connection_user_id ON connection (user_id)",
        "CREATE INDEX IF NOT EXISTS idx_fact_connection_id ON fact (connection_id)",
        "CREATE INDEX IF NOT EXISTS idx_fact_embedding_id ON fact (embedding_id)",
    ]
