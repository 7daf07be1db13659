"""Endpoint registry, conversation flow and request types.

The chat engine lives in :mod:`highlight_assistant.ai.orchestration.engine`
and is imported from there directly.
"""

from .flow import ConversationFlow, ConversationFlowController, Phase, extract_intent
from .intents import (
    AnalyzeIntent,
    ImproveConclusionIntent,
    ImproveHookIntent,
    Intent,
    IntentCategory,
    ReorderIntent,
    intent_from_payload,
)
from .registry import EndpointConfig, EndpointRegistry, build_default_registry
from .types import ChatRequest, ChatResponse, ExecutionResult

__all__ = [
    "ConversationFlow",
    "ConversationFlowController",
    "Phase",
    "extract_intent",
    "Intent",
    "IntentCategory",
    "ReorderIntent",
    "ImproveHookIntent",
    "ImproveConclusionIntent",
    "AnalyzeIntent",
    "intent_from_payload",
    "EndpointConfig",
    "EndpointRegistry",
    "build_default_registry",
    "ChatRequest",
    "ChatResponse",
    "ExecutionResult",
]
