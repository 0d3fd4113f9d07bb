"""Embedding providers used by indexing and retrieval."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

import httpx

from juno.config import Settings, require_api_key
from juno.errors import EmbeddingProviderError

_LOGGER = logging.getLogger(__name__)


class Embedder(ABC):
    """Turns one text into a fixed-length vector."""

    model: str

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one input."""


class OpenAIEmbedder(Embedder):
    """Embedder backed by an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._api_key = require_api_key(settings)
        self._transport = transport
        self.model = settings.embedding_model

    async def embed(self, text: str) -> list[float]:
        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/embeddings",
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"model": self.model, "input": text},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc
        except ValueError as exc:
            raise EmbeddingProviderError(f"Embedding response was not JSON: {exc}") from exc

        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingProviderError(f"Unexpected embedding response shape: {data!r:.200}") from exc
        if not isinstance(vector, list) or not vector:
            raise EmbeddingProviderError("Embedding response contained no vector")
        _LOGGER.debug("Embedded %d characters into %d dimensions", len(text), len(vector))
        return [float(value) for value in vector]


class HashingEmbedder(Embedder):
    """Deterministic token-hashing embedder that needs no network.

    Useful for offline indexing and tests; vectors are L2-normalised so
    cosine similarity behaves the same as for provider embeddings.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension
        self.model = f"hashing-{dimension}"

    async def embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]
