"""OpenAI-compatible implementation of LLMProvider."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from juno.config import Settings, require_api_key
from juno.errors import TransportError
from juno.llm.base import LLMProvider

_LOGGER = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW = 500


class OpenAIProvider(LLMProvider):
    """Streams chat completions from an OpenAI-compatible endpoint.

    Transport failures are not retried here; callers decide whether to
    resubmit the conversation.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._api_key = require_api_key(settings)
        self._transport = transport

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        functions: list[dict[str, Any]] | None = None,
        function_call: str | dict[str, str] | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[bytes]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if functions:
            payload["functions"] = functions
            payload["function_call"] = function_call or "auto"
        if temperature is not None:
            payload["temperature"] = temperature

        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                async with client.stream(
                    "POST",
                    "/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                        "Accept": "text/event-stream",
                    },
                    json=payload,
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        _LOGGER.warning(
                            "Completion request failed: status=%d body=%r",
                            response.status_code,
                            body[:_ERROR_BODY_PREVIEW],
                        )
                        raise TransportError(
                            f"Completion request failed with status {response.status_code}: "
                            f"{body[:_ERROR_BODY_PREVIEW]}",
                            status_code=response.status_code,
                        )
                    async for data in response.aiter_bytes():
                        yield data
        except httpx.HTTPError as exc:
            raise TransportError(f"Completion request failed: {exc}") from exc
