"""Prompt builders for the AI routes."""

from typing import Optional, Sequence

from chatguard.app.services.context import ConversationTurn

LANGUAGE_NAMES = {
    "ar": "Arabic",
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "hi": "Hindi",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "ru": "Russian",
    "sv": "Swedish",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "zh": "Chinese",
}


def get_language_name(code: str) -> str:
    """English name for a language tag, falling back to the tag itself."""
    base = code.split("-")[0].split("_")[0].lower()
    return LANGUAGE_NAMES.get(base, code)


def build_translation_prompt(text: str, source_lang: str, target_lang: str) -> str:
    source_name = get_language_name(source_lang)
    target_name = get_language_name(target_lang)
    return (
        f"Translate the following text from {source_name} to {target_name}.\n"
        "Return only the translated text without any explanations, prefixes, "
        "or additional text.\n\n"
        f"Original text ({source_name}): {text}\n\n"
        f"Translation ({target_name}):"
    )


def build_chat_prompt(
    current: ConversationTurn,
    context: Sequence[ConversationTurn],
    system_prompt: Optional[str] = None,
    response_language: Optional[str] = None,
) -> str:
    """Prompt answering ``current`` with the selected earlier user turns."""
    instructions = [
        "You are an AI assistant in a chat app.",
        "Respond only to the latest user message.",
        "Use any prior messages only if they are relevant to the latest question.",
        "Be helpful, clear, and concise unless the user asks for more detail.",
    ]
    if system_prompt:
        instructions.append(f"System prompt: {system_prompt}")
    if response_language:
        instructions.append(f"Respond in {get_language_name(response_language)}.")

    sections = [" ".join(instructions)]
    if context:
        history = "\n".join(f"User: {turn.content}" for turn in context)
        sections.append(f"Relevant previous user messages:\n{history}")
    sections.append(f"User: {current.content}")
    sections.append("Assistant:")
    return "\n\n".join(sections)


def build_transcript_prompt(turns: Sequence[ConversationTurn]) -> str:
    """Prompt continuing a client supplied transcript (temporary chats)."""
    instructions = " ".join([
        "You are an AI assistant in a chat app.",
        "Respond to the latest user message.",
        "Be helpful, clear, and concise unless the user asks for more detail.",
    ])
    sections = [instructions]
    if turns:
        lines = "\n".join(
            f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}"
            for turn in turns
        )
        sections.append(f"Conversation:\n{lines}")
    sections.append("Assistant:")
    return "\n\n".join(sections)
