"""Incremental decoder for server-sent completion streams."""

from __future__ import annotations

import json
import logging
from typing import Any

from juno.models import (
    DELTA,
    DONE,
    FINISH,
    FUNCTION_CALL,
    MALFORMED,
    FunctionCallIntent,
    StreamEvent,
)

LOGGER = logging.getLogger(__name__)

_FRAME_SEPARATOR = b"\n\n"
_DONE_SENTINEL = "[DONE]"


class ChunkedStreamDecoder:
    """Turns raw response-body buffers into ordered ``StreamEvent`` values.

    Frames are terminated by a blank line. Bytes are buffered until a full
    frame is available, so a frame (or a multi-byte character) split across
    two deliveries decodes the same as one delivered whole. After the
    ``[DONE]`` sentinel the decoder ignores any further input.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, data: bytes) -> list[StreamEvent]:
        if self._done:
            return []
        self._buffer.extend(data)
        if b"\r" in self._buffer:
            self._buffer = bytearray(self._buffer.replace(b"\r\n", b"\n"))

        events: list[StreamEvent] = []
        while not self._done:
            end = self._buffer.find(_FRAME_SEPARATOR)
            if end == -1:
                break
            frame = bytes(self._buffer[:end])
            del self._buffer[: end + len(_FRAME_SEPARATOR)]
            events.extend(self._decode_frame(frame))
        if self._done:
            self._buffer.clear()
        return events

    def close(self) -> list[StreamEvent]:
        """Flush a trailing frame that was not followed by a blank line."""

        if self._done or not self._buffer.strip():
            self._buffer.clear()
            return []
        frame = bytes(self._buffer).strip(b"\n")
        self._buffer.clear()
        return self._decode_frame(frame)

    def _decode_frame(self, frame: bytes) -> list[StreamEvent]:
        try:
            text = frame.decode("utf-8")
        except UnicodeDecodeError:
            return [StreamEvent(kind=MALFORMED, raw=frame.decode("utf-8", errors="replace"))]

        data_lines: list[str] = []
        for line in text.split("\n"):
            if not line.startswith("data:"):
                # Comments (":") and event/id/retry fields carry no content.
                continue
            value = line[len("data:") :]
            data_lines.append(value[1:] if value.startswith(" ") else value)
        if not data_lines:
            return []

        payload = "\n".join(data_lines)
        if payload.strip() == _DONE_SENTINEL:
            self._done = True
            return [StreamEvent(kind=DONE, raw=payload)]

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return [StreamEvent(kind=MALFORMED, raw=payload)]
        return _events_from_payload(data, payload)


def _events_from_payload(data: Any, payload: str) -> list[StreamEvent]:
    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        return [StreamEvent(kind=MALFORMED, raw=payload)]
    if not data["choices"]:
        # Usage-only trailer frames have no choices.
        return []
    choice = data["choices"][0]
    if not isinstance(choice, dict):
        return [StreamEvent(kind=MALFORMED, raw=payload)]

    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        return [StreamEvent(kind=MALFORMED, raw=payload)]

    events: list[StreamEvent] = []
    content = delta.get("content")
    if content:
        events.append(StreamEvent(kind=DELTA, text=content, raw=payload))

    function_call = delta.get("function_call")
    if isinstance(function_call, dict):
        events.append(
            StreamEvent(
                kind=FUNCTION_CALL,
                raw=payload,
                function_name=function_call.get("name") or None,
                function_arguments=function_call.get("arguments") or "",
            )
        )

    for tool_call in delta.get("tool_calls") or []:
        if not isinstance(tool_call, dict) or not isinstance(tool_call.get("function"), dict):
            continue
        function = tool_call["function"]
        events.append(
            StreamEvent(
                kind=FUNCTION_CALL,
                raw=payload,
                function_name=function.get("name") or None,
                function_arguments=function.get("arguments") or "",
                index=int(tool_call.get("index", 0)),
            )
        )

    finish_reason = choice.get("finish_reason")
    if finish_reason:
        events.append(StreamEvent(kind=FINISH, raw=payload, finish_reason=finish_reason))
    return events


class FunctionCallAccumulator:
    """Accumulate function-call fragments from streaming deltas.

    The first fragment of a call carries its name; the arguments arrive as
    string pieces that must be concatenated. Calls are keyed by index.
    """

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, str]] = {}

    def feed(self, event: StreamEvent) -> None:
        entry = self._calls.setdefault(event.index, {"name": "", "arguments": ""})
        if event.function_name:
            entry["name"] = event.function_name
        entry["arguments"] += event.function_arguments

    def has_calls(self) -> bool:
        return bool(self._calls)

    def finalize(self) -> list[FunctionCallIntent]:
        intents: list[FunctionCallIntent] = []
        for index in sorted(self._calls):
            entry = self._calls[index]
            if not entry["name"]:
                LOGGER.warning("Dropping function call fragment without a name: %r", entry)
                continue
            intents.append(FunctionCallIntent(name=entry["name"], raw_arguments=entry["arguments"]))
        return intents
