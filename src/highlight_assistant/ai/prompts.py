"""Prompt templates for the conversation and execution agents.

The conversation prompt asks the model to talk the plan through with the
user and only emit a ``conversation_summary`` JSON block once the user has
confirmed. The execution prompt is rendered per intent category and asks for
a single JSON object describing the new order.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .orchestration.intents import Intent, IntentCategory
from .tools.highlights import Highlight, OrderItem, format_order_item
from .tools.types import FunctionExecutionResult

# Generation settings
CONVERSATION_TEMPERATURE = 0.7
CONVERSATION_MAX_TOKENS = 2_000
CONVERSATION_RESERVE_TOKENS = 2_500
EXECUTION_TEMPERATURE = 0.3
EXECUTION_MAX_TOKENS = 4_000


# ----------------------------------------------------------------------
# Capabilities
# ----------------------------------------------------------------------
_CAPABILITY_LINES: Mapping[str, str] = {
    "reorder_highlights": "📝 **Reorder highlights** - I can rearrange your highlights for better narrative flow and engagement",
    "analyze_highlights": "🔍 **Analyze content** - I can analyze your highlights for themes, structure, and improvement opportunities",
    "get_current_order": "📋 **Review current order** - I can show you how your highlights are currently arranged",
    "apply_ai_suggestion": "💡 **Apply suggestions** - I can apply previously generated optimization suggestions",
    "reset_to_original": "🔄 **Reset order** - I can restore highlights to their original chronological order",
}

NO_CAPABILITIES_TEXT = "I can help you with your video editing needs. What would you like to work on?"
UNKNOWN_ENDPOINT_CAPABILITIES = "I can help you with video editing tasks."


def capability_line(name: str, description: str) -> str:
    return _CAPABILITY_LINES.get(name, f"⚡ **{name}** - {description}")


def capabilities_text(tools: Iterable[tuple[str, str]]) -> str:
    """Render ``(name, description)`` pairs as the capability list shown to the user."""

    lines = [capability_line(name, description) for name, description in tools]
    if not lines:
        return NO_CAPABILITIES_TEXT
    body = "\n".join(lines)
    return f"Here's what I can help you with:\n\n{body}\n\nWhat would you like to do?"


# ----------------------------------------------------------------------
# Conversation prompt
# ----------------------------------------------------------------------
_SUMMARY_CONTRACT = """ONLY AFTER USER CONFIRMS, respond with JSON:
```json
{
  "conversation_summary": {
    "intent": "reorder|improve_hook|improve_conclusion|analyze",
    "userWantsCurrentOrder": true/false,
    "optimizationGoals": ["engagement", "flow", "retention"],
    "specificRequests": ["any specific user requests"],
    "userContext": "important context from user message",
    "confirmed": true
  }
}
```

EXAMPLES:

User: "Please analyze my highlights and reorder them for maximum engagement and narrative flow"
You: "Would you like me to use your current highlight order as a starting point, or start completely fresh?"

User: "Start fresh"
You: "Got it! Should I prioritize engagement hooks or narrative flow more strongly, or balance them equally?"

User: "Balance them equally"
You: "Perfect! I'll create a fresh organization that balances engagement and narrative flow. I'll reorganize your highlights into logical sections with engaging titles like 'Hook', 'The Problem', 'The Solution', etc., optimizing for YouTube retention and story progression. This will reorder your highlights in the database. Should I proceed?"

User: "Yes, go ahead"
You: ```json
{
  "conversation_summary": {
    "intent": "reorder",
    "userWantsCurrentOrder": false,
    "optimizationGoals": ["engagement", "narrative flow"],
    "specificRequests": ["balance engagement and flow equally", "provide analytical reasoning"],
    "userContext": "User wants fresh reordering balancing engagement and narrative flow",
    "confirmed": true
  }
}
```

User: "Just analyze my content structure"
You: ```json
{
  "conversation_summary": {
    "intent": "analyze",
    "userWantsCurrentOrder": false,
    "optimizationGoals": ["content analysis"],
    "specificRequests": ["analyze structure only", "no modifications"],
    "userContext": "User specifically wants analysis only, indicated by 'just analyze'",
    "confirmed": true
  }
}
```

The JSON block must be the LAST thing in your reply. Never include a conversation_summary block before the user has confirmed.

REMEMBER: Be conversational and ask clarifying questions when needed. Only output JSON after the user has confirmed they want to proceed with DB changes!"""


def conversation_system_prompt(capabilities: str, project_context: str = "") -> str:
    """Return the conversation-first system prompt for action endpoints."""

    context_section = ""
    if project_context.strip():
        context_section = f"\nPROJECT CONTEXT:\n{project_context.rstrip()}\n"
    return f"""You are an expert YouTube creator and video editing assistant. You work with HIGHLIGHTS which are selected text excerpts from scripts, not video clips.

CONTEXT ABOUT HIGHLIGHTS:
- Highlights are text snippets from video scripts
- They represent the most engaging parts of content
- You can move any highlight to any position - complete freedom to reorganize
- Your goal is to arrange them into logical SECTIONS for maximum YouTube success

{capabilities}
{context_section}
SECTIONING STRATEGY (default approach):
- **Organize highlights into logical sections with descriptive titles**
- **Section flow**: Hook/Intro → Content Sections → Conclusion
- **Section titles**: Should be engaging and descriptive (e.g., "The Problem", "The Solution", "Why This Works")
- **Content grouping**: Group related highlights together within sections
- **Engagement flow**: Each section should build on the previous one to maintain attention

CORE YOUTUBE PRINCIPLES (always apply):
- Start with strong hook section to grab attention in first 3 seconds
- Organize content into logical, flowing sections
- Build narrative tension and engagement across sections
- End with powerful conclusion section for high note finish
- Optimize for audience retention through logical progression

BEHAVIOR GUIDELINES:
1. **Understand user intent**: Interpret what the user actually wants, not just keywords
2. **Think through the request**: Consider the full context and primary vs secondary goals
3. **Be decisive**: Once you understand the intent, proceed with confidence
4. **Use best judgment**: Apply YouTube best practices unless user specifies otherwise
5. **Default assumptions**: Create sections with titles, start fresh, optimize for engagement and logical flow

INTERACTION APPROACH:
1. **Ask ONE question at a time** - gather context incrementally for natural conversation
2. **For REORDER requests**: First ask about current order preference if not specified
3. **After gathering context**: Explain plan and ask for final confirmation
4. **For ANALYZE-only requests**: Proceed immediately (no DB changes)

FINAL CONFIRMATION FORMAT:
"I'll [specific plan based on gathered context]. This will modify your highlight order in the database. Should I proceed?"

{_SUMMARY_CONTRACT}"""


# ----------------------------------------------------------------------
# Execution prompt
# ----------------------------------------------------------------------
_EXECUTION_TEMPLATES: Mapping[IntentCategory, str] = {
    IntentCategory.REORDER: """You are a YouTube content optimization specialist. Your task is to REORDER highlights for maximum engagement.

REORDER INSTRUCTIONS:
- You can move ANY highlight to ANY position - complete freedom to reorganize
- Organize into logical sections with engaging titles using: {"type": "N", "title": "Section Title"}
- Section flow: Hook/Intro → Content Sections → Conclusion
- Group related highlights within sections
- Optimize for YouTube viewer retention and engagement
- Focus on creating strong narrative flow""",
    IntentCategory.IMPROVE_HOOK: """You are a YouTube content optimization specialist. Your task is to IMPROVE THE HOOK by reordering highlights.

HOOK IMPROVEMENT INSTRUCTIONS:
- Focus on the first 1-3 highlights to create maximum impact opening
- Use the most attention-grabbing content first
- Create curiosity, urgency, or emotional connection
- Ensure first 3 seconds grab viewer attention
- You can reorder any highlights to create the best hook""",
    IntentCategory.IMPROVE_CONCLUSION: """You are a YouTube content optimization specialist. Your task is to IMPROVE THE CONCLUSION by reordering highlights.

CONCLUSION IMPROVEMENT INSTRUCTIONS:
- Focus on the last 1-3 highlights for maximum impact ending
- Use the most powerful, memorable content for the finish
- Create strong call-to-action or emotional payoff
- Leave viewers satisfied but wanting more
- You can reorder any highlights to create the best conclusion""",
    IntentCategory.ANALYZE: """You are a YouTube content optimization specialist. Your task is to ANALYZE the content structure.

ANALYSIS INSTRUCTIONS:
- Analyze the current structure and content themes
- Identify strengths and weaknesses in current flow
- Suggest potential improvements without making changes
- Do NOT reorder highlights - this is analysis only
- Keep current order intact in your response""",
}

_ANALYZE_OUTPUT_FORMAT = """

REQUIRED JSON OUTPUT FORMAT:
{
  "success": true,
  "newOrder": [exact same order as current - DO NOT CHANGE],
  "reasoning": "Detailed analysis of current structure, themes, flow, and potential improvements",
  "sectionCount": 0,
  "changes": ["Analysis only - no changes made"]
}

Return ONLY the JSON object above - no additional text."""

_REORDER_OUTPUT_FORMAT = """

REQUIRED JSON OUTPUT FORMAT:
{
  "success": true,
  "newOrder": [
    {"type": "N", "title": "Hook: Engaging Title"},
    "highlight_id_1",
    "highlight_id_2",
    {"type": "N", "title": "Main Content"},
    "highlight_id_3",
    {"type": "N", "title": "Conclusion: Strong Finish"}
  ],
  "reasoning": "Detailed explanation of your reordering decisions and why this improves engagement",
  "sectionCount": 3,
  "changes": ["Created engaging hook", "Grouped related concepts", "Built narrative flow", "Added strong conclusion"]
}

CRITICAL: Include ALL highlight IDs from the available highlights list.
Return ONLY the JSON object above - no additional text."""

CURRENT_ORDER_UNAVAILABLE = "\nCURRENT ORDER: (unavailable due to error)\n"
START_FRESH = "\n\nCURRENT ORDER: User prefers to start fresh (not using current order)\n"


def execution_template(category: IntentCategory) -> str:
    return _EXECUTION_TEMPLATES[category]


def output_format_requirements(category: IntentCategory) -> str:
    if category is IntentCategory.ANALYZE:
        return _ANALYZE_OUTPUT_FORMAT
    return _REORDER_OUTPUT_FORMAT


def build_execution_prompt(
    intent: Intent,
    highlights: Sequence[Highlight],
    current_order: Sequence[OrderItem] | None = None,
    *,
    current_order_failed: bool = False,
) -> str:
    """Render the single-message execution prompt for ``intent``.

    Args:
        intent: Confirmed intent; its category selects template and output format.
        highlights: Every highlight of the project, in source order.
        current_order: Starting order, used only when ``intent.use_current_order``.
        current_order_failed: The current order was requested but could not be loaded.
    """

    parts = [execution_template(intent.category), "\n\nAVAILABLE HIGHLIGHTS:\n"]
    for highlight in highlights:
        parts.append(f'- {highlight.id}: "{highlight.text}"\n')
    parts.append(f"\nTotal highlights: {len(highlights)} (ALL must be included in new order)\n")

    if intent.use_current_order:
        if current_order_failed or current_order is None:
            parts.append(CURRENT_ORDER_UNAVAILABLE)
        else:
            parts.append("\n\nCURRENT ORDER (use as starting point):\n")
            for index, item in enumerate(current_order, start=1):
                parts.append(f"{index}. {format_order_item(item)}\n")
    else:
        parts.append(START_FRESH)

    if intent.optimization_goals:
        parts.append(f"\n\nUSER OPTIMIZATION GOALS: {', '.join(intent.optimization_goals)}\n")
    if intent.specific_requests:
        parts.append(f"\nSPECIFIC USER REQUESTS: {', '.join(intent.specific_requests)}\n")
    if intent.user_context:
        parts.append(f"\nUSER CONTEXT: {intent.user_context}\n")

    parts.append(output_format_requirements(intent.category))
    return "".join(parts)


# ----------------------------------------------------------------------
# Progress and result text
# ----------------------------------------------------------------------
_PROCESSING_MESSAGES: Mapping[IntentCategory, str] = {
    IntentCategory.REORDER: "Optimizing highlight arrangement...",
    IntentCategory.IMPROVE_HOOK: "Enhancing opening section...",
    IntentCategory.IMPROVE_CONCLUSION: "Strengthening conclusion...",
    IntentCategory.ANALYZE: "Analyzing content structure...",
}


def processing_message(category: IntentCategory | None) -> str:
    if category is None:
        return "Processing your request..."
    return _PROCESSING_MESSAGES.get(category, "Processing your request...")


def success_summary(
    category: IntentCategory,
    *,
    section_count: int,
    changes: Sequence[str],
    reasoning: str,
) -> str:
    """Return the chat message shown after a successful execution."""

    if category is IntentCategory.ANALYZE:
        return f"✅ **Analysis Complete!** Here are insights about your content structure:\n\n{reasoning}"
    if category is IntentCategory.REORDER:
        headline = f"Reorganized your highlights into {section_count} sections for better engagement and flow."
    elif category is IntentCategory.IMPROVE_HOOK:
        headline = "Improved your opening section for stronger hook and better viewer retention."
    else:
        headline = "Enhanced your conclusion for more powerful ending and better viewer satisfaction."
    return f"✅ **Success!** {headline}\n\n**Key Changes:** {', '.join(changes)}\n\n**Reasoning:** {reasoning}"


# ----------------------------------------------------------------------
# Tool-call summaries (plain endpoints)
# ----------------------------------------------------------------------
_ACTION_LINES: Mapping[str, str] = {
    "reorder_highlights": "**Reordered highlights** for better narrative flow",
    "analyze_highlights": "**Analyzed highlight content** for themes and structure",
    "get_current_order": "**Retrieved current highlight order** for reference",
    "apply_ai_suggestion": "**Applied AI suggestion** to improve highlight order",
    "reset_to_original": "**Reset highlights** to original order",
}

_NEXT_STEPS: Mapping[str, str] = {
    "highlight_ordering": "Review the new highlight order in your timeline. You can always undo changes or ask for further adjustments.",
    "highlight_suggestions": "Consider these suggestions when creating your highlight segments.",
    "content_analysis": "Use these insights to optimize your content strategy.",
    "export_optimization": "Apply these optimizations to your export settings.",
}


def action_summary(results: Sequence[FunctionExecutionResult], endpoint_id: str) -> str:
    """Describe the tool calls of a plain chat turn as a numbered list."""

    lines = ["✅ **Actions Completed:**\n"]
    for index, result in enumerate(results, start=1):
        line = _ACTION_LINES.get(result.function_name, f"**Performed action:** {result.function_name}")
        if not result.success:
            line = f"{line} (failed: {result.error or 'unknown error'})"
        lines.append(f"{index}. {line}")
        payload = result.result if isinstance(result.result, Mapping) else {}
        if result.success and result.function_name == "reorder_highlights":
            reason = payload.get("reason")
            if isinstance(reason, str) and reason:
                lines.append(f"   - *Reasoning:* {reason}")
            order = payload.get("new_order")
            if isinstance(order, list):
                lines.append(f"   - *New arrangement:* {len(order)} items reordered")
    next_steps = _NEXT_STEPS.get(endpoint_id)
    if next_steps:
        lines.append(f"\n💡 **Next Steps:** {next_steps}")
    return "\n".join(lines)


__all__ = [
    "CONVERSATION_TEMPERATURE",
    "CONVERSATION_MAX_TOKENS",
    "CONVERSATION_RESERVE_TOKENS",
    "EXECUTION_TEMPERATURE",
    "EXECUTION_MAX_TOKENS",
    "NO_CAPABILITIES_TEXT",
    "UNKNOWN_ENDPOINT_CAPABILITIES",
    "capability_line",
    "capabilities_text",
    "conversation_system_prompt",
    "execution_template",
    "output_format_requirements",
    "build_execution_prompt",
    "processing_message",
    "success_summary",
    "action_summary",
]
