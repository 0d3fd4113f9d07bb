"""Streaming conversation engine."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Callable

from juno.errors import ConversationCancelledError, StreamDecodeError, TransportError
from juno.llm.base import LLMProvider
from juno.llm.sse import ChunkedStreamDecoder, FunctionCallAccumulator
from juno.models import DELTA, DONE, FINISH, FUNCTION_CALL, MALFORMED, Completion, Message, StreamEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
TURN_SEPARATOR = "\n\n---\n\n"


@dataclass(slots=True)
class ConversationCallbacks:
    """Lifecycle hooks invoked synchronously while a completion streams."""

    on_start: Callable[[], None] | None = None
    on_chunk: Callable[[str], None] | None = None
    on_update: Callable[[str], None] | None = None
    on_end: Callable[[str], None] | None = None
    on_error: Callable[[Exception], None] | None = None


@dataclass(slots=True)
class _StreamState:
    text: str = ""
    calls: FunctionCallAccumulator = field(default_factory=FunctionCallAccumulator)
    started: bool = False
    finish_reason: str | None = None


class ConversationEngine:
    """Drives one streaming completion request to exhaustion per call.

    The engine never appends to the history it is given. Text accumulated for
    a request lives only for that request, so concurrent calls on the same
    engine cannot interleave. Completed turns are also collected in
    ``transcript``, which restarts whenever a history holds a single user
    message.
    """

    def __init__(self, provider: LLMProvider, default_model: str = DEFAULT_MODEL) -> None:
        self._provider = provider
        self._default_model = default_model
        self._turns: list[str] = []

    @property
    def transcript(self) -> str:
        return TURN_SEPARATOR.join(self._turns)

    async def run(
        self,
        history: list[Message],
        *,
        model: str | None = None,
        callbacks: ConversationCallbacks | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Stream a completion for ``history`` and return the final text."""

        completion = await self.complete(
            history,
            model=model,
            callbacks=callbacks,
            cancel_event=cancel_event,
        )
        return completion.content

    async def complete(
        self,
        history: list[Message],
        *,
        model: str | None = None,
        functions: list[dict[str, Any]] | None = None,
        function_call: str | dict[str, str] | None = None,
        temperature: float | None = None,
        callbacks: ConversationCallbacks | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Completion:
        """Stream a completion and also report requested function calls.

        Raises:
            TransportError: the request failed; ``on_error`` has been called.
            ConversationCancelledError: ``cancel_event`` was set mid-stream.
        """

        callbacks = callbacks or ConversationCallbacks()
        if cancel_event is not None and cancel_event.is_set():
            raise ConversationCancelledError("Completion cancelled before it started")
        current_model = model or self._default_model
        LOGGER.info("creating chat completion using %s", current_model)

        messages = [message.to_wire() for message in history]
        decoder = ChunkedStreamDecoder()
        state = _StreamState()

        stream = self._provider.stream_chat(
            messages,
            model=current_model,
            functions=functions,
            function_call=function_call,
            temperature=temperature,
        )
        try:
            async with aclosing(stream) as buffers:
                async for data in buffers:
                    if cancel_event is not None and cancel_event.is_set():
                        raise ConversationCancelledError("Completion cancelled by the user")
                    for event in decoder.feed(data):
                        self._handle_event(event, state, callbacks)
                    if decoder.done:
                        break
            if not decoder.done:
                LOGGER.debug("Stream ended without a [DONE] sentinel")
                for event in decoder.close():
                    self._handle_event(event, state, callbacks)
        except TransportError as exc:
            LOGGER.warning("Completion stream failed: %s", exc)
            if callbacks.on_error:
                callbacks.on_error(exc)
            raise

        completion = Completion(
            content=state.text,
            finish_reason=state.finish_reason,
            function_calls=state.calls.finalize(),
        )
        if not completion.requests_function_call:
            self._record_turn(history, completion.content)
        if callbacks.on_end:
            callbacks.on_end(completion.content)
        return completion

    def _handle_event(self, event: StreamEvent, state: _StreamState, callbacks: ConversationCallbacks) -> None:
        if event.kind == DELTA:
            if not state.started:
                state.started = True
                if callbacks.on_start:
                    callbacks.on_start()
            state.text += event.text
            if callbacks.on_chunk:
                callbacks.on_chunk(event.text)
            if callbacks.on_update:
                callbacks.on_update(state.text)
        elif event.kind == FUNCTION_CALL:
            state.calls.feed(event)
        elif event.kind == FINISH:
            state.finish_reason = event.finish_reason
        elif event.kind == MALFORMED:
            LOGGER.warning("Skipping malformed stream frame: %r", event.raw[:200])
            if callbacks.on_error:
                callbacks.on_error(StreamDecodeError(event.raw))
        elif event.kind == DONE:
            LOGGER.debug("Completion stream finished")

    def _record_turn(self, history: list[Message], content: str) -> None:
        user_turns = sum(1 for message in history if message.role == "user")
        if user_turns <= 1:
            self._turns = []
        self._turns.append(content)
