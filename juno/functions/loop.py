"""Completion / tool-execution loop."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any, Callable

from juno.conversation import ConversationCallbacks, ConversationEngine
from juno.errors import (
    IncompleteCompletionError,
    InvalidArgumentsError,
    ToolExecutionError,
    ToolLoopLimitError,
    UnknownToolError,
)
from juno.functions.registry import FunctionRegistry
from juno.models import FunctionCallIntent, Message

LOGGER = logging.getLogger(__name__)

_NORMAL_STOPS = (None, "stop")


class LoopState(enum.Enum):
    AWAITING_COMPLETION = "awaiting_completion"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_EXECUTED = "tool_executed"
    FINAL_ANSWER = "final_answer"
    FAILED = "failed"


class FunctionCallLoop:
    """Alternates completions and tool calls until the model answers.

    Tool calls requested in one completion are resolved one at a time in the
    order the model listed them. Unknown tools, bad arguments and retryable
    tool failures are reported back to the model as an ``{"error": ...}``
    result so it can correct itself; anything else ends the loop.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        registry: FunctionRegistry,
        *,
        model: str,
        temperature: float | None = None,
        max_rounds: int = 5,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._engine = engine
        self._registry = registry
        self._model = model
        self._temperature = temperature
        self._max_rounds = max_rounds
        self._notify = notify
        self._state = LoopState.AWAITING_COMPLETION

    @property
    def state(self) -> LoopState:
        return self._state

    async def run(
        self,
        system_message: str,
        user_message: str,
        *,
        history: list[Message] | None = None,
        callbacks: ConversationCallbacks | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Answer ``user_message`` and return the model's final content.

        ``history`` holds prior turns and is rewritten in place to
        ``[system, *prior, user, <function call messages>...]``. The final
        answer itself is not appended; that stays with the caller.
        """

        conversation = history if history is not None else []
        conversation[:] = [Message.system(system_message), *conversation, Message.user(user_message)]
        try:
            return await self._drive(conversation, callbacks, cancel_event)
        except BaseException:
            self._state = LoopState.FAILED
            raise

    async def _drive(
        self,
        conversation: list[Message],
        callbacks: ConversationCallbacks | None,
        cancel_event: asyncio.Event | None,
    ) -> str:
        functions = self._registry.as_functions()
        rounds = 0
        while True:
            self._state = LoopState.AWAITING_COMPLETION
            completion = await self._engine.complete(
                conversation,
                model=self._model,
                functions=functions or None,
                function_call="auto" if functions else None,
                temperature=self._temperature,
                callbacks=callbacks,
                cancel_event=cancel_event,
            )
            if not completion.requests_function_call:
                if not completion.content or completion.finish_reason not in _NORMAL_STOPS:
                    raise IncompleteCompletionError(completion.finish_reason)
                self._state = LoopState.FINAL_ANSWER
                LOGGER.info("Final answer after %d tool round(s)", rounds)
                return completion.content

            if rounds >= self._max_rounds:
                raise ToolLoopLimitError(self._max_rounds)
            rounds += 1
            self._state = LoopState.TOOL_CALL_REQUESTED

            for intent in completion.function_calls:
                result = await self._resolve(intent)
                conversation.append(
                    Message(
                        role="assistant",
                        content=None,
                        function_call={"name": intent.name, "arguments": intent.raw_arguments},
                    )
                )
                conversation.append(Message.function(intent.name, json.dumps(result)))
            self._state = LoopState.TOOL_EXECUTED

    async def _resolve(self, intent: FunctionCallIntent) -> Any:
        try:
            return await self._registry.dispatch(intent, notify=self._notify)
        except (UnknownToolError, InvalidArgumentsError) as exc:
            LOGGER.warning("Returning dispatch error to the model: %s", exc)
            return {"error": str(exc)}
        except ToolExecutionError as exc:
            if not exc.retryable:
                raise
            LOGGER.warning("Returning retryable tool failure to the model: %s", exc)
            return {"error": str(exc)}
