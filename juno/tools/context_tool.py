"""Repository context lookup tool."""

from __future__ import annotations

from typing import Any

from juno.functions.base import Tool
from juno.llm.embeddings import Embedder
from juno.retrieval.formatter import format_results
from juno.retrieval.index import VectorIndex
from juno.retrieval.search import search


class RepositoryContextTool(Tool):
    """Searches the vector index and returns the matching chunks as text."""

    name = "getContext"
    description = "Search the repository for additional context"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "keyword to search for"},
        },
        "required": ["query"],
    }

    def __init__(self, embedder: Embedder, index: VectorIndex, top_k: int = 3) -> None:
        self._embedder = embedder
        self._index = index
        self._top_k = top_k

    async def run(self, **kwargs: Any) -> str:
        query: str = kwargs["query"]
        results = await search(self._embedder, self._index, query, self._top_k)
        return format_results(results)

    def describe_invocation(self, arguments: dict[str, Any]) -> str | None:
        keywords = str(arguments.get("query", "")).split()
        return f"gathering data: {', '.join(keywords)}"
