"""Tool system types for endpoint registries.

A tool couples a :class:`ToolSpec` (what the model sees) with an executor
(what runs when the model calls it). Executors receive the parsed argument
mapping and the subject (project) id, and may be sync or async.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

__all__ = [
    "ToolSpec",
    "ToolCategory",
    "ToolExecutor",
    "ToolDefinition",
    "FunctionExecutionResult",
]


# -----------------------------------------------------------------------------
# Tool Categories
# -----------------------------------------------------------------------------


class ToolCategory:
    """Standard tool categories for organization."""

    READ = "read"
    WRITE = "write"
    ANALYSIS = "analysis"
    UTILITY = "utility"


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool within an endpoint.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's parameters.
        category: Tool category for organization.
        is_write: Whether the tool produces an ordering to apply.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    category: str = ToolCategory.UTILITY
    is_write: bool = False

    def json_schema(self) -> dict[str, Any]:
        if self.parameters:
            return dict(self.parameters)
        return {"type": "object", "properties": {}}

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters) if self.parameters else {},
            "category": self.category,
            "is_write": self.is_write,
        }


# -----------------------------------------------------------------------------
# Tool Definition
# -----------------------------------------------------------------------------

ToolExecutor = Callable[[Mapping[str, Any], str], Union[Any, Awaitable[Any]]]


@dataclass(slots=True)
class ToolDefinition:
    """A named, schema-described tool bound to its executor."""

    spec: ToolSpec
    executor: ToolExecutor

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any], subject_id: str) -> Any:
        result = self.executor(arguments, subject_id)
        if inspect.isawaitable(result):
            result = await result
        return result


# -----------------------------------------------------------------------------
# Execution Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class FunctionExecutionResult:
    """Outcome of dispatching one tool call.

    Attributes:
        function_name: Name of the tool that ran (or was requested).
        success: Whether the tool executed successfully.
        result: The tool's return value.
        error: Error message when execution failed.
        error_code: Machine-readable error code when execution failed.
        message: Status line for the UI.
    """

    function_name: str
    success: bool
    result: Any = None
    error: str = ""
    error_code: str = ""
    message: str = ""

    @property
    def apply_required(self) -> bool:
        return bool(
            self.success
            and isinstance(self.result, Mapping)
            and self.result.get("apply_required")
            and isinstance(self.result.get("new_order"), list)
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape used by chat responses."""
        data: dict[str, Any] = {
            "functionName": self.function_name,
            "success": self.success,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error:
            data["error"] = self.error
        if self.message:
            data["message"] = self.message
        return data
