"""Standardized error types for endpoint tools.

This module provides a hierarchy of error classes with consistent
JSON serialization for tool responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Lookup errors
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    TOOL_NOT_FOUND = "tool_not_found"

    # Argument errors
    BAD_ARGUMENTS = "bad_arguments"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"

    # Data errors
    NO_HIGHLIGHTS = "no_highlights"
    NO_SUGGESTION = "no_suggestion"
    DATA_UNAVAILABLE = "data_unavailable"

    # Execution errors
    EXECUTION_FAILED = "execution_failed"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON tool responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Lookup Errors
# -----------------------------------------------------------------------------

@dataclass
class EndpointNotFoundError(ToolError):
    """Raised when an endpoint id has no registered configuration."""

    error_code: str = field(default=ErrorCode.ENDPOINT_NOT_FOUND)
    message: str = field(default="Endpoint not found in registry")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use one of the registered endpoint ids")

    endpoint_id: str = ""

    def __post_init__(self) -> None:
        if self.endpoint_id and self.message == "Endpoint not found in registry":
            self.message = f"Endpoint {self.endpoint_id} not found in registry"
        if self.endpoint_id:
            self.details.setdefault("endpoint_id", self.endpoint_id)
        super().__post_init__()


@dataclass
class ToolNotFoundError(ToolError):
    """Raised when a tool name does not match any tool of the endpoint."""

    error_code: str = field(default=ErrorCode.TOOL_NOT_FOUND)
    message: str = field(default="Tool not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call one of the tools listed for this endpoint")

    tool_name: str = ""
    endpoint_id: str = ""
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.tool_name and self.message == "Tool not found":
            self.message = f"Function {self.tool_name} not found for endpoint {self.endpoint_id}"
        if self.available:
            self.details.setdefault("available", list(self.available))
        super().__post_init__()


# -----------------------------------------------------------------------------
# Argument Errors
# -----------------------------------------------------------------------------

@dataclass
class BadArgumentsError(ToolError):
    """Raised when tool arguments are not a JSON object or fail schema validation."""

    error_code: str = field(default=ErrorCode.BAD_ARGUMENTS)
    message: str = field(default="Failed to parse function arguments")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Send arguments as a JSON object matching the tool schema")

    tool_name: str = ""


@dataclass
class MissingParameterError(ToolError):
    """Raised when a required parameter is absent."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Required parameter is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    parameter: str = ""

    def __post_init__(self) -> None:
        if self.parameter and self.message == "Required parameter is missing":
            self.message = f"{self.parameter} parameter is required"
        super().__post_init__()


# -----------------------------------------------------------------------------
# Data Errors
# -----------------------------------------------------------------------------

@dataclass
class NoSuggestionError(ToolError):
    """Raised when apply_ai_suggestion finds no cached suggestion."""

    error_code: str = field(default=ErrorCode.NO_SUGGESTION)
    message: str = field(default="No cached AI suggestion found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Ask the assistant to reorder the highlights first")


@dataclass
class DataUnavailableError(ToolError):
    """Raised when the highlight provider fails to return project data."""

    error_code: str = field(default=ErrorCode.DATA_UNAVAILABLE)
    message: str = field(default="Project data is unavailable")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Try again once the project has loaded")


# -----------------------------------------------------------------------------
# Execution Errors
# -----------------------------------------------------------------------------

@dataclass
class ToolExecutionError(ToolError):
    """Raised when an executor fails with an unexpected exception."""

    error_code: str = field(default=ErrorCode.EXECUTION_FAILED)
    message: str = field(default="Tool execution failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    tool_name: str = ""


__all__ = [
    "ErrorCode",
    "ToolError",
    "EndpointNotFoundError",
    "ToolNotFoundError",
    "BadArgumentsError",
    "MissingParameterError",
    "NoSuggestionError",
    "DataUnavailableError",
    "ToolExecutionError",
]
