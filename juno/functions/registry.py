"""Registry for tool registration and dispatch."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Iterable

from pydantic import ConfigDict, ValidationError, create_model

from juno.errors import (
    InvalidArgumentsError,
    RetryableToolError,
    ToolExecutionError,
    UnknownToolError,
)
from juno.functions.base import Tool
from juno.models import FunctionCallIntent, ToolDescriptor

LOGGER = logging.getLogger(__name__)


class FunctionRegistry:
    """Name-keyed table of tools, fixed before a dialogue begins."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if self._frozen:
            raise RuntimeError("Cannot register tools after the registry is frozen")
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def freeze(self) -> None:
        self._frozen = True

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_descriptors(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def as_functions(self) -> list[dict[str, Any]]:
        """Descriptors in the shape the completion endpoint expects."""

        return [descriptor.to_wire() for descriptor in self.list_descriptors()]

    async def dispatch(
        self,
        intent: FunctionCallIntent,
        notify: Callable[[str], None] | None = None,
    ) -> Any:
        """Resolve, validate and execute one function call.

        Raises:
            UnknownToolError: no tool is registered under ``intent.name``.
            InvalidArgumentsError: arguments are not a JSON object or do not
                satisfy the tool's parameter schema. The tool is not run.
            ToolExecutionError: the tool raised, or returned a value that
                cannot be serialised to JSON.
        """

        tool = self._tools.get(intent.name)
        if tool is None:
            LOGGER.warning("Model requested unknown tool %r", intent.name)
            raise UnknownToolError(intent.name)

        arguments = _parse_arguments(intent)
        validated = _validate_json_schema(tool.name, tool.parameters_schema, arguments)

        if notify is not None:
            description = tool.describe_invocation(validated)
            if description:
                notify(description)

        started = time.perf_counter()
        try:
            result = await tool.run(**validated)
        except RetryableToolError as exc:
            LOGGER.warning("Tool %s failed (retryable): %s", tool.name, exc)
            raise ToolExecutionError(tool.name, exc, retryable=True) from exc
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Tool %s failed", tool.name)
            raise ToolExecutionError(tool.name, exc) from exc

        try:
            json.dumps(result)
        except (TypeError, ValueError) as exc:
            raise ToolExecutionError(tool.name, exc) from exc

        LOGGER.info(
            "Executed tool %s in %.1f ms",
            tool.name,
            (time.perf_counter() - started) * 1000,
        )
        return result


def _parse_arguments(intent: FunctionCallIntent) -> dict[str, Any]:
    raw = intent.raw_arguments.strip() or "{}"
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Unparsable arguments for %s: %r", intent.name, intent.raw_arguments[:200])
        raise InvalidArgumentsError(intent.name, f"arguments are not valid JSON ({exc.msg})") from exc
    if not isinstance(arguments, dict):
        raise InvalidArgumentsError(intent.name, "arguments must be a JSON object")
    return arguments


def _validate_json_schema(tool_name: str, schema: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    props = schema.get("properties", {})
    required = set(schema.get("required", []))
    fields: dict[str, tuple[Any, Any]] = {}
    for name, config in props.items():
        typ = _python_type(config.get("type", "string"))
        if name in required:
            fields[name] = (typ, ...)
        else:
            fields[name] = (typ | None, config.get("default"))

    if schema.get("additionalProperties") is False:
        extra = "forbid"
    elif props:
        extra = "ignore"
    else:
        extra = "allow"
    model = create_model(
        "ToolInputModel",
        __config__=ConfigDict(extra=extra),
        **fields,
    )
    try:
        value = model(**payload)
    except ValidationError as exc:
        LOGGER.warning("Invalid arguments for %s: %s", tool_name, exc)
        raise InvalidArgumentsError(tool_name, str(exc)) from exc
    return value.model_dump(exclude_none=True)


def _python_type(schema_type: str) -> type[Any]:
    mapping: dict[str, type[Any]] = {
        "string": str,
        "integer": int,
        "number": float,
        "boolean": bool,
        "object": dict,
        "array": list,
    }
    return mapping.get(schema_type, str)
