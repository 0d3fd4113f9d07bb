"""Core domain models used across layers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "function"]

DELTA = "delta"
FUNCTION_CALL = "function_call"
FINISH = "finish"
DONE = "done"
MALFORMED = "malformed"


@dataclass(slots=True)
class Message:
    """One entry of a conversation history."""

    role: Role
    content: str | None
    name: str | None = None
    function_call: dict[str, str] | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role="assistant", content=content)

    @classmethod
    def function(cls, name: str, content: str) -> Message:
        return cls(role="function", name=name, content=content)

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if self.function_call is not None:
            payload["function_call"] = dict(self.function_call)
        return payload


@dataclass(slots=True)
class StreamEvent:
    """A decoded unit of the completion stream."""

    kind: str
    text: str = ""
    raw: str = ""
    function_name: str | None = None
    function_arguments: str = ""
    index: int = 0
    finish_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Calling contract advertised to the model."""

    name: str
    description: str
    parameter_schema: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameter_schema,
        }


@dataclass(slots=True)
class FunctionCallIntent:
    """Function call requested by the model, not yet resolved."""

    name: str
    raw_arguments: str


@dataclass(slots=True)
class Completion:
    """Outcome of one streamed completion request."""

    content: str
    finish_reason: str | None = None
    function_calls: list[FunctionCallIntent] = field(default_factory=list)

    @property
    def requests_function_call(self) -> bool:
        return bool(self.function_calls)


@dataclass(slots=True)
class Chunk:
    text: str
    offset: int
    index: int


@dataclass(slots=True)
class IndexedItem:
    vector: list[float]
    metadata: dict[str, Any]


@dataclass(slots=True)
class RankedResult:
    """Query hit. ``score`` is cosine similarity, ``distance`` is ``1 - score``."""

    item: IndexedItem
    score: float
    distance: float
    rank: int


@dataclass(slots=True)
class SourceFile:
    """A candidate file supplied by workspace enumeration."""

    path: str
    text: str
    language_id: str = "plaintext"

    @property
    def line_count(self) -> int:
        if not self.text:
            return 0
        return self.text.count("\n") + (0 if self.text.endswith("\n") else 1)

    @property
    def content_hash(self) -> str:
        return hashlib.sha1(self.text.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class IndexingReport:
    """Summary of one indexing batch."""

    indexed_files: list[str] = field(default_factory=list)
    unchanged_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    failed_files: dict[str, str] = field(default_factory=dict)
    chunks_indexed: int = 0
    cancelled: bool = False
