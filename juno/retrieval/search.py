"""Semantic search over the vector index."""

from __future__ import annotations

import logging

from juno.llm.embeddings import Embedder
from juno.models import RankedResult
from juno.retrieval.index import VectorIndex

LOGGER = logging.getLogger(__name__)


async def search(embedder: Embedder, index: VectorIndex, text: str, top_k: int = 3) -> list[RankedResult]:
    vector = await embedder.embed(text)
    results = index.query(vector, top_k)
    if results:
        LOGGER.info("%d records matched", len(results))
    else:
        LOGGER.info("No results found.")
    return results
