"""Services package.

This package provides:
- Context window selection for AI chat (pick_context, trim_recent_turns)
- Prompt builders for the AI routes
"""

from chatguard.app.services.context import (
    ContextSelection,
    ContextSelectorSettings,
    ConversationTurn,
    LexicalOverlapScorer,
    RelevanceScorer,
    pick_context,
    tokenize,
    trim_recent_turns,
)
from chatguard.app.services.prompts import (
    build_chat_prompt,
    build_transcript_prompt,
    build_translation_prompt,
    get_language_name,
)

__all__ = [
    "ContextSelection",
    "ContextSelectorSettings",
    "ConversationTurn",
    "LexicalOverlapScorer",
    "RelevanceScorer",
    "pick_context",
    "tokenize",
    "trim_recent_turns",
    "build_chat_prompt",
    "build_transcript_prompt",
    "build_translation_prompt",
    "get_language_name",
]
