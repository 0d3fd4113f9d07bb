"""Tool contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from juno.models import ToolDescriptor


class Tool(ABC):
    """Base class for all functions the model may call."""

    name: str
    description: str
    parameters_schema: dict[str, Any]

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        """Execute tool with validated arguments."""

    def describe_invocation(self, arguments: dict[str, Any]) -> str | None:
        """Human-readable progress line shown before the tool runs."""

        return None

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            parameter_schema=self.parameters_schema,
        )


class FunctionTool(Tool):
    """Adapts a plain async callable to the ``Tool`` contract."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters_schema: dict[str, Any],
        func: Callable[..., Awaitable[Any]],
        describe: Callable[[dict[str, Any]], str] | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters_schema = parameters_schema
        self._func = func
        self._describe = describe

    async def run(self, **kwargs: Any) -> Any:
        return await self._func(**kwargs)

    def describe_invocation(self, arguments: dict[str, Any]) -> str | None:
        if self._describe is None:
            return None
        return self._describe(arguments)
