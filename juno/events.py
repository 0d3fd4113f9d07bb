"""Lifecycle events forwarded to a UI shell."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from juno.conversation import ConversationCallbacks

EventType = Literal["stream.start", "stream.update", "stream.end", "stream.function_call", "chunk"]


@dataclass(slots=True)
class UIEvent:
    type: EventType
    content: str | None = None


EventSink = Callable[[UIEvent], None]


def stream_callbacks(sink: EventSink) -> ConversationCallbacks:
    """Build engine callbacks that forward each stage to ``sink``."""

    return ConversationCallbacks(
        on_start=lambda: sink(UIEvent("stream.start")),
        on_chunk=lambda delta: sink(UIEvent("chunk", delta)),
        on_update=lambda content: sink(UIEvent("stream.update", content)),
        on_end=lambda content: sink(UIEvent("stream.end", content)),
    )


def function_call_notifier(sink: EventSink) -> Callable[[str], None]:
    return lambda description: sink(UIEvent("stream.function_call", description))
