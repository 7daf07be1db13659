"""Tests for execution reply parsing and order validation."""

from __future__ import annotations

import pytest

from highlight_assistant.ai.agents.structured_output import (
    StructuredExecutionOutput,
    check_order,
    parse_structured_output,
    validate_structured_output,
)
from highlight_assistant.ai.errors import OrderValidationError, OutputValidationError, StructuredOutputParseError
from highlight_assistant.ai.orchestration.intents import IntentCategory

from tests.helpers import execution_reply, fenced

IDS = ["h1", "h2", "h3"]


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------
class TestParseStructuredOutput:
    def test_bare_json(self) -> None:
        output = parse_structured_output(execution_reply(["h3", "h1", "h2"]))

        assert output.success
        assert output.new_order == ["h3", "h1", "h2"]
        assert output.reasoning == "Stronger opening"
        assert output.changes == ["Moved hook first"]
        assert output.section_count == 0
        assert output.error is None

    def test_fenced_json_with_prose(self) -> None:
        reply = "Here is the new order:\n" + fenced({"success": True, "newOrder": ["h2"], "reasoning": "ok"}) + "\nEnjoy!"
        assert parse_structured_output(reply).new_order == ["h2"]

    def test_last_fenced_object_wins(self) -> None:
        reply = fenced({"success": True, "newOrder": ["h1"]}) + "\n" + fenced({"success": True, "newOrder": ["h2"]})
        assert parse_structured_output(reply).new_order == ["h2"]

    def test_brace_span_fallback(self) -> None:
        reply = 'Sure! {"success": true, "newOrder": ["h1", "h2", "h3"]} Let me know.'
        assert parse_structured_output(reply).new_order == IDS

    def test_section_count_defaults_to_markers(self) -> None:
        reply = execution_reply(["h1", {"type": "N", "title": "Intro"}, "h2", {"type": "N", "title": "End"}, "h3"])
        assert parse_structured_output(reply).section_count == 2

    def test_explicit_section_count(self) -> None:
        assert parse_structured_output(execution_reply(IDS, section_count=4)).section_count == 4

    @pytest.mark.parametrize("reply", ["", "no json here", "{broken", "[1, 2, 3]", None])
    def test_unparseable_replies(self, reply: str | None) -> None:
        with pytest.raises(StructuredOutputParseError):
            parse_structured_output(reply)

    def test_schema_mismatch(self) -> None:
        with pytest.raises(StructuredOutputParseError) as excinfo:
            parse_structured_output('{"success": "yes", "newOrder": []}')
        assert "success" in excinfo.value.message
        assert excinfo.value.raw_payload == '{"success": "yes", "newOrder": []}'

    def test_missing_success_flag(self) -> None:
        with pytest.raises(StructuredOutputParseError):
            parse_structured_output('{"newOrder": ["h1"]}')

    def test_to_dict_uses_camel_case(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h1"], reasoning="r", error="")
        assert output.to_dict() == {
            "success": True,
            "newOrder": ["h1"],
            "reasoning": "r",
            "sectionCount": 0,
            "changes": [],
        }


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------
class TestValidateStructuredOutput:
    def test_valid_permutation_with_sections(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h3", {"type": "N", "title": "Body"}, "h1", "h2"])
        assert validate_structured_output(output, category=IntentCategory.REORDER, highlight_ids=IDS) is output

    def test_model_reported_failure(self) -> None:
        output = StructuredExecutionOutput(success=False, error="not enough highlights")
        with pytest.raises(OutputValidationError) as excinfo:
            validate_structured_output(output, category=IntentCategory.REORDER, highlight_ids=IDS)
        assert excinfo.value.message == "Execution failed: not enough highlights"

    def test_missing_highlight(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h1", "h2"])
        with pytest.raises(OrderValidationError) as excinfo:
            validate_structured_output(output, category=IntentCategory.IMPROVE_HOOK, highlight_ids=IDS)
        assert excinfo.value.missing == ["h3"]
        assert excinfo.value.to_dict()["missing"] == ["h3"]

    def test_duplicate_and_unknown(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h1", "h1", "h2", "h3", "h9"])
        with pytest.raises(OrderValidationError) as excinfo:
            validate_structured_output(output, category=IntentCategory.REORDER, highlight_ids=IDS)
        assert excinfo.value.duplicates == ["h1"]
        assert excinfo.value.unknown == ["h9"]
        assert "duplicated h1" in excinfo.value.message

    def test_non_section_objects_are_unknown(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h1", "h2", "h3", {"type": "X"}])
        with pytest.raises(OrderValidationError) as excinfo:
            validate_structured_output(output, category=IntentCategory.REORDER, highlight_ids=IDS)
        assert excinfo.value.unknown == ['{"type": "X"}']

    def test_empty_order(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=[])
        with pytest.raises(OrderValidationError) as excinfo:
            validate_structured_output(output, category=IntentCategory.IMPROVE_CONCLUSION, highlight_ids=IDS)
        assert excinfo.value.message == "New order is empty"

    def test_analyze_keeps_original_order(self) -> None:
        output = StructuredExecutionOutput(success=True, new_order=["h9"], reasoning="Themes: pacing")
        checked = validate_structured_output(
            output,
            category=IntentCategory.ANALYZE,
            highlight_ids=IDS,
            original_order=["h2", "h1", "h3"],
        )
        assert checked.new_order == ["h2", "h1", "h3"]
        assert checked.reasoning == "Themes: pacing"
        assert output.new_order == ["h9"]

    def test_analyze_falls_back_to_highlight_ids(self) -> None:
        output = StructuredExecutionOutput(success=True)
        checked = validate_structured_output(output, category=IntentCategory.ANALYZE, highlight_ids=IDS)
        assert checked.new_order == IDS


class TestCheckOrder:
    def test_sections_are_ignored(self) -> None:
        check_order([{"type": "N", "title": "Hook"}, "h2", "h3", "h1"], IDS)

    def test_duplicates_and_missing_ids_are_reported(self) -> None:
        with pytest.raises(OrderValidationError) as excinfo:
            check_order(["h1", "h1"], IDS)
        assert excinfo.value.duplicates == ["h1"]
        assert excinfo.value.missing == ["h2", "h3"]
        assert excinfo.value.message == "Proposed order is invalid: missing h2, h3; duplicated h1"

    def test_empty_order_misses_everything(self) -> None:
        with pytest.raises(OrderValidationError) as excinfo:
            check_order([], IDS)
        assert excinfo.value.missing == IDS
