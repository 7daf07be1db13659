"""Parsing and validation of the execution agent's JSON reply."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from json import JSONDecodeError
from typing import Any, Mapping, Sequence

from jsonschema import Draft7Validator, ValidationError

from ..errors import OrderValidationError, OutputValidationError, StructuredOutputParseError
from ..orchestration.intents import IntentCategory
from ..tools.highlights import OrderItem, is_section_marker, section_count

LOGGER = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```[ \t]*(?:json)?[ \t]*\r?\n?(?P<body>.*?)```", re.IGNORECASE | re.DOTALL)
_LOG_PAYLOAD_LIMIT = 2_000

STRUCTURED_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "success": {"type": "boolean"},
        "newOrder": {
            "type": "array",
            "items": {"anyOf": [{"type": "string"}, {"type": "object"}]},
        },
        "reasoning": {"type": "string"},
        "sectionCount": {"type": "integer", "minimum": 0},
        "changes": {"type": "array", "items": {"type": "string"}},
        "error": {"type": "string"},
    },
    "required": ["success"],
}

_OUTPUT_VALIDATOR = Draft7Validator(STRUCTURED_OUTPUT_SCHEMA)


@dataclass(slots=True)
class StructuredExecutionOutput:
    """Decoded execution reply.

    ``section_count`` falls back to the number of section markers in
    ``new_order`` when the model leaves it out.
    """

    success: bool
    new_order: list[OrderItem] = field(default_factory=list)
    reasoning: str = ""
    section_count: int = 0
    changes: list[str] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StructuredExecutionOutput":
        new_order = payload.get("newOrder")
        if new_order is None:
            new_order = payload.get("new_order")
        order = list(new_order) if isinstance(new_order, list) else []
        count = payload.get("sectionCount")
        error = payload.get("error")
        return cls(
            success=payload.get("success") is True,
            new_order=order,
            reasoning=str(payload.get("reasoning") or ""),
            section_count=count if isinstance(count, int) else section_count(order),
            changes=[item for item in payload.get("changes") or () if isinstance(item, str)],
            error=error if isinstance(error, str) and error else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "newOrder": list(self.new_order),
            "reasoning": self.reasoning,
            "sectionCount": self.section_count,
            "changes": list(self.changes),
        }
        if self.error:
            data["error"] = self.error
        return data


def parse_structured_output(reply: str | None) -> StructuredExecutionOutput:
    """Decode the model reply into :class:`StructuredExecutionOutput`.

    The last fenced code block that decodes to a JSON object is preferred;
    otherwise the span from the first ``{`` to the last ``}`` is decoded.

    Raises:
        StructuredOutputParseError: no JSON object could be decoded, or it
            does not match :data:`STRUCTURED_OUTPUT_SCHEMA`.
    """

    text = (reply or "").strip()
    payload = _last_fenced_object(text)
    if payload is None:
        payload = _brace_span_object(text)

    error = next(iter(_OUTPUT_VALIDATOR.iter_errors(payload)), None)
    if error is not None:
        message = f"Structured output does not match schema: {_format_validation_error(error)}"
        _log_parse_failure(message, text)
        raise StructuredOutputParseError(message=message, raw_payload=text)
    return StructuredExecutionOutput.from_mapping(payload)


def validate_structured_output(
    output: StructuredExecutionOutput,
    *,
    category: IntentCategory,
    highlight_ids: Sequence[str],
    original_order: Sequence[OrderItem] | None = None,
) -> StructuredExecutionOutput:
    """Check ``output`` against the project's highlights before it is applied.

    For order-mutating categories the highlight ids in ``new_order`` must be
    exactly ``highlight_ids``, each once. For ``analyze`` the returned copy
    carries ``original_order`` instead of whatever the model sent back.

    Raises:
        OutputValidationError: the model reported failure.
        OrderValidationError: ids are missing, duplicated or unknown.
    """

    if not output.success:
        raise OutputValidationError(message=f"Execution failed: {output.error or 'no error message provided'}")

    if category is IntentCategory.ANALYZE:
        fallback = list(original_order) if original_order is not None else list(highlight_ids)
        return replace(output, new_order=fallback)

    if not output.new_order:
        raise OrderValidationError(message="New order is empty", missing=list(highlight_ids))

    check_order(output.new_order, highlight_ids)
    return output


def check_order(order: Sequence[Any], highlight_ids: Sequence[str]) -> None:
    """Require every id in ``highlight_ids`` exactly once in ``order``.

    Section markers are ignored. Raises :class:`OrderValidationError` listing
    missing, duplicated and unknown entries.
    """

    expected = set(highlight_ids)
    seen: list[str] = []
    unknown: list[str] = []
    for item in order:
        if isinstance(item, str):
            seen.append(item)
            if item not in expected:
                unknown.append(item)
        elif not is_section_marker(item):
            unknown.append(json.dumps(item, sort_keys=True, default=str))

    counts = Counter(seen)
    missing = [item for item in highlight_ids if item not in counts]
    duplicates = [item for item, count in counts.items() if count > 1]
    if missing or duplicates or unknown:
        problems = []
        if missing:
            problems.append(f"missing {', '.join(missing)}")
        if duplicates:
            problems.append(f"duplicated {', '.join(duplicates)}")
        if unknown:
            problems.append(f"unknown {', '.join(unknown)}")
        raise OrderValidationError(
            message=f"Proposed order is invalid: {'; '.join(problems)}",
            missing=missing,
            duplicates=duplicates,
            unknown=unknown,
        )


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _last_fenced_object(text: str) -> dict[str, Any] | None:
    found: dict[str, Any] | None = None
    for match in _CODE_FENCE_RE.finditer(text):
        try:
            parsed = json.loads(match.group("body").strip())
        except JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            found = parsed
    return found


def _brace_span_object(text: str) -> dict[str, Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        message = "No JSON object found in response"
        _log_parse_failure(message, text)
        raise StructuredOutputParseError(message=message, raw_payload=text)
    try:
        parsed = json.loads(text[start : end + 1])
    except JSONDecodeError as exc:
        message = f"Failed to parse JSON response: {exc}"
        _log_parse_failure(message, text)
        raise StructuredOutputParseError(message=message, raw_payload=text) from exc
    if not isinstance(parsed, dict):
        message = "Structured output must be a JSON object"
        _log_parse_failure(message, text)
        raise StructuredOutputParseError(message=message, raw_payload=text)
    return parsed


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


def _log_parse_failure(message: str, payload: str) -> None:
    LOGGER.warning("%s; payload=%s", message, payload[:_LOG_PAYLOAD_LIMIT])


__all__ = [
    "STRUCTURED_OUTPUT_SCHEMA",
    "StructuredExecutionOutput",
    "parse_structured_output",
    "validate_structured_output",
    "check_order",
]
