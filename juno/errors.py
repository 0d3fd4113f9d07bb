"""Typed error hierarchy shared by every layer."""

from __future__ import annotations


class JunoError(Exception):
    """Base class for all errors raised by the assistant core."""


class ConfigurationError(JunoError):
    """A required setting is invalid or unavailable."""

    def __init__(self, message: str, settings_key: str) -> None:
        super().__init__(message)
        self.settings_key = settings_key


class ConfigurationMissingError(ConfigurationError):
    """A required setting has not been provided."""

    def __init__(self, settings_key: str, friendly_name: str) -> None:
        super().__init__(f"Missing setting: {friendly_name}", settings_key)
        self.friendly_name = friendly_name


class AggregateConfigurationMissingError(JunoError):
    """Several required settings are missing at once."""

    def __init__(self, errors: list[ConfigurationMissingError]) -> None:
        names = ", ".join(error.friendly_name for error in errors)
        super().__init__(f"Missing settings: {names}")
        self.errors = errors
        self.settings_keys = [error.settings_key for error in errors]


class TransportError(JunoError):
    """Network failure or non-2xx response from the provider."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamDecodeError(JunoError):
    """A single stream frame could not be decoded."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Malformed stream frame: {raw[:200]!r}")
        self.raw = raw


class ConversationCancelledError(JunoError):
    """The consumer aborted an in-flight completion."""


class ToolDispatchError(JunoError):
    """Base class for failures resolving or running a requested tool."""

    def __init__(self, message: str, tool_name: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class UnknownToolError(ToolDispatchError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", tool_name)


class InvalidArgumentsError(ToolDispatchError):
    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {detail}", tool_name)
        self.detail = detail


class ToolExecutionError(ToolDispatchError):
    """A tool handler raised; the original exception is kept as ``cause``."""

    def __init__(self, tool_name: str, cause: BaseException, retryable: bool = False) -> None:
        super().__init__(f"Tool {tool_name} failed: {cause}", tool_name)
        self.cause = cause
        self.retryable = retryable


class RetryableToolError(JunoError):
    """Raised by a tool when the model may recover by calling again differently."""


class IncompleteCompletionError(JunoError):
    """The model stopped without a function call and without a usable answer."""

    def __init__(self, finish_reason: str | None) -> None:
        super().__init__(f"Model ended without an answer (finish reason: {finish_reason})")
        self.finish_reason = finish_reason


class ToolLoopLimitError(JunoError):
    def __init__(self, max_rounds: int) -> None:
        super().__init__(f"Model kept requesting tools after {max_rounds} round trips")
        self.max_rounds = max_rounds


class VectorIndexError(JunoError):
    """Base class for vector index failures."""


class IndexNotFoundError(VectorIndexError):
    def __init__(self, path: object) -> None:
        super().__init__(f"Vector index has not been created: {path}")
        self.path = path


class DimensionMismatchError(VectorIndexError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector has {actual} dimensions, index expects {expected}")
        self.expected = expected
        self.actual = actual


class InvalidArgumentError(VectorIndexError):
    pass


class EmbeddingProviderError(JunoError):
    """The embedding endpoint failed for a single input."""
