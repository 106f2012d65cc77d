"""Query expansion for connection search.

Uses an LLM to append related terms to a short search topic, so
"coffee" can also match facts such as "runs a café".
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field
from pydantic_ai import Agent

logger = logging.getLogger(__name__)


class ExpandedQuery(BaseModel):
    """Result of query expansion.

    Attributes:
        original: The original query.
        expanded_terms: Related terms.
    """

    original: str = Field(description="The original query")
    expanded_terms: list[str] = Field(
        default_factory=list,
        max_length=8,
        description="Related terms (max 8)",
    )

    def to_search_text(self) -> str:
        """Join the query and its terms into the text that gets embedded."""
        terms = [t.strip() for t in self.expanded_terms if t.strip()]
        if not terms:
            return self.original
        return f"{self.original}, {', '.join(terms)}"


_agents: dict[str, Agent[None, ExpandedQuery]] = {}


def get_expansion_agent(model: str = "openai:gpt-4o-mini") -> Agent[None, ExpandedQuery]:
    """Get or create the query expansion agent for a model."""
    if model not in _agents:
        _agents[model] = Agent(
            model,
            output_type=ExpandedQuery,
            system_prompt="""You expand search queries for a personal contact list.

Each contact has short facts written by the user, such as "loves coffee",
"works at Acme" or "has two kids". Given a search query, list up to 8 words
or short phrases that facts about matching people are likely to contain.

Guidelines:
- Prefer concrete interests, occupations, places and activities
- Include synonyms and closely related concepts
- Don't repeat the original query

Examples:
- "coffee" → "espresso", "café", "barista", "latte"
- "startup founder" → "entrepreneur", "CEO", "venture", "co-founder"
""",
        )
    return _agents[model]


async def expand_query(query: str, model: str = "openai:gpt-4o-mini") -> ExpandedQuery:
    """Expand a query with related terms.

    Never raises: on any failure the query is returned without terms.
    """
    try:
        agent = get_expansion_agent(model)
        result = await agent.run(f"Expand this query: {query}")
        expanded = result.output
        expanded.original = query
        logger.debug(f"Expanded '{query}' → {expanded.expanded_terms}")
        return expanded
    except Exception as e:
        logger.warning(f"Query expansion failed for '{query}': {e}")
        return ExpandedQuery(original=query)


async def expand_search_text(query: str, model: str = "openai:gpt-4o-mini") -> str:
    """Return ``"<query>, <terms>"``, or the query itself if expansion yields nothing."""
    expanded = await expand_query(query, model)
    return expanded.to_search_text()
