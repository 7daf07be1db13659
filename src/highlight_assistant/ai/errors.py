"""Error taxonomy for the conversation and execution pipeline.

Every failure raised inside a chat turn is one of these types. The engine
converts them into ``success=False`` responses at the boundary, using
``user_message`` for the UI and logging the full detail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------


class ErrorKind:
    """Machine-readable categories surfaced on execution results."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    PARSE = "parse"
    VALIDATION = "validation"
    APPLY = "apply"
    INTERNAL = "internal"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------


@dataclass
class AssistantError(Exception):
    """Base exception for pipeline failures.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Developer-facing description (logged, returned as ``error``).
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    kind: ClassVar[str] = ErrorKind.INTERNAL
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    @property
    def user_message(self) -> str:
        """Short, non-technical text suitable for the chat surface."""
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for logs and API responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "kind": self.kind,
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
# Configuration
# -----------------------------------------------------------------------------


@dataclass
class ConfigurationError(AssistantError):
    """Missing or invalid credentials/settings. Fatal to the turn, never retried."""

    error_code: str = field(default="configuration_error")
    message: str = field(default="OpenRouter API key not configured")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Add an API key in the assistant settings")

    kind: ClassVar[str] = ErrorKind.CONFIGURATION


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------


@dataclass
class TransportError(AssistantError):
    """Network failure, timeout or non-2xx status from the LLM provider."""

    error_code: str = field(default="transport_error")
    message: str = field(default="AI API call failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Try again in a moment")
    status_code: int | None = None
    timed_out: bool = False

    kind: ClassVar[str] = ErrorKind.TRANSPORT
    retryable: ClassVar[bool] = True

    @property
    def user_message(self) -> str:
        if self.timed_out:
            return "The AI service took too long to respond. Please try again."
        return "I couldn't reach the AI service. Please try again."


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


@dataclass
class StructuredOutputParseError(AssistantError):
    """The model reply was not valid JSON or lacked required fields."""

    error_code: str = field(default="parse_error")
    message: str = field(default="Failed to parse structured output")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Ask again; the model reply was not valid JSON")
    raw_payload: str = ""

    kind: ClassVar[str] = ErrorKind.PARSE

    @property
    def user_message(self) -> str:
        return "The AI returned a response I couldn't understand, so nothing was changed."


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


@dataclass
class IntentValidationError(AssistantError):
    """The intent is missing, unconfirmed or of an unknown category."""

    error_code: str = field(default="validation_error")
    message: str = field(default="Invalid intent")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Confirm the request before executing it")

    kind: ClassVar[str] = ErrorKind.VALIDATION


@dataclass
class OutputValidationError(AssistantError):
    """The model reported failure or returned an unusable result."""

    error_code: str = field(default="validation_error")
    message: str = field(default="Output validation failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Retry the request; no changes were applied")

    kind: ClassVar[str] = ErrorKind.VALIDATION

    @property
    def user_message(self) -> str:
        return f"I couldn't complete that request: {self.message}"


@dataclass
class OrderValidationError(OutputValidationError):
    """The proposed ordering lost, duplicated or invented highlight ids."""

    error_code: str = field(default="validation_error")
    message: str = field(default="Output validation failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Retry the request; no changes were applied")
    missing: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)

    kind: ClassVar[str] = ErrorKind.VALIDATION

    @property
    def user_message(self) -> str:
        return "The AI's proposed order didn't include every highlight exactly once, so nothing was changed."

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.missing:
            result["missing"] = list(self.missing)
        if self.duplicates:
            result["duplicates"] = list(self.duplicates)
        if self.unknown:
            result["unknown"] = list(self.unknown)
        return result


# -----------------------------------------------------------------------------
# Apply
# -----------------------------------------------------------------------------


@dataclass
class ApplyError(AssistantError):
    """The caller's apply-callback rejected the change."""

    error_code: str = field(default="apply_error")
    message: str = field(default="Failed to apply changes")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Retry the request once the project is available")

    kind: ClassVar[str] = ErrorKind.APPLY

    @property
    def user_message(self) -> str:
        return "I couldn't save the new order to your project. Nothing was changed."


__all__ = [
    "ErrorKind",
    "AssistantError",
    "ConfigurationError",
    "TransportError",
    "StructuredOutputParseError",
    "IntentValidationError",
    "OutputValidationError",
    "OrderValidationError",
    "ApplyError",
]
