"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class LLMProvider(ABC):
    """Abstract streaming completion endpoint used by the conversation engine."""

    @abstractmethod
    def stream_chat(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        functions: list[dict[str, Any]] | None = None,
        function_call: str | dict[str, str] | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[bytes]:
        """Open a streaming completion and yield raw body buffers as they arrive."""
