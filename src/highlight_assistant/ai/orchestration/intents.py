"""Confirmed user intents, one variant per action category."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping


class IntentCategory(str, Enum):
    """Actions the execution agent knows how to perform."""

    REORDER = "reorder"
    IMPROVE_HOOK = "improve_hook"
    IMPROVE_CONCLUSION = "improve_conclusion"
    ANALYZE = "analyze"

    @classmethod
    def parse(cls, value: Any) -> "IntentCategory | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(slots=True)
class Intent:
    """Shared fields of every intent variant.

    Attributes:
        use_current_order: Start from the project's current ordering instead of from scratch.
        optimization_goals: Free-text goals such as "engagement" or "flow".
        specific_requests: Concrete asks the user made during the conversation.
        user_context: Notes the model kept about the user's situation.
        confirmed: The user explicitly approved the plan.
    """

    use_current_order: bool = False
    optimization_goals: list[str] = field(default_factory=list)
    specific_requests: list[str] = field(default_factory=list)
    user_context: str = ""
    confirmed: bool = False

    category: ClassVar[IntentCategory]
    mutates_order: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.category.value,
            "userWantsCurrentOrder": self.use_current_order,
            "optimizationGoals": list(self.optimization_goals),
            "specificRequests": list(self.specific_requests),
            "userContext": self.user_context,
            "confirmed": self.confirmed,
        }


@dataclass(slots=True)
class ReorderIntent(Intent):
    category: ClassVar[IntentCategory] = IntentCategory.REORDER


@dataclass(slots=True)
class ImproveHookIntent(Intent):
    category: ClassVar[IntentCategory] = IntentCategory.IMPROVE_HOOK


@dataclass(slots=True)
class ImproveConclusionIntent(Intent):
    category: ClassVar[IntentCategory] = IntentCategory.IMPROVE_CONCLUSION


@dataclass(slots=True)
class AnalyzeIntent(Intent):
    category: ClassVar[IntentCategory] = IntentCategory.ANALYZE
    mutates_order: ClassVar[bool] = False


INTENT_TYPES: Mapping[IntentCategory, type[Intent]] = {
    IntentCategory.REORDER: ReorderIntent,
    IntentCategory.IMPROVE_HOOK: ImproveHookIntent,
    IntentCategory.IMPROVE_CONCLUSION: ImproveConclusionIntent,
    IntentCategory.ANALYZE: AnalyzeIntent,
}


def intent_from_payload(payload: Mapping[str, Any]) -> Intent | None:
    """Build an intent from a ``conversation_summary`` object.

    Returns ``None`` for an unknown category. Non-string list entries are dropped.
    """

    category = IntentCategory.parse(payload.get("intent"))
    if category is None:
        return None
    user_context = payload.get("userContext")
    return INTENT_TYPES[category](
        use_current_order=payload.get("userWantsCurrentOrder") is True,
        optimization_goals=_string_list(payload.get("optimizationGoals")),
        specific_requests=_string_list(payload.get("specificRequests")),
        user_context=user_context if isinstance(user_context, str) else "",
        confirmed=payload.get("confirmed") is True,
    )


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


__all__ = [
    "IntentCategory",
    "Intent",
    "ReorderIntent",
    "ImproveHookIntent",
    "ImproveConclusionIntent",
    "AnalyzeIntent",
    "INTENT_TYPES",
    "intent_from_payload",
]
