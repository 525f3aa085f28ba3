# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Grounding prompt assembly for the downstream chat model, plus the
canned reply used when that model cannot be reached.
"""
import re
from typing import Optional

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."

LIMITED_MODE_NOTE = (
    "Note: I'm currently operating in limited mode. "
    "For more detailed answers, please try again later."
)

_GREETINGS = (
    (r"\b(hello|hi)\b", "Hello! I'm your AI assistant. How can I help you today?"),
    (r"\bhow are\b", "I'm doing well, thank you for asking! I'm here to help with any questions you have."),
    (r"\b(good)?bye\b", "Goodbye! Feel free to come back anytime you need assistance."),
    (r"\bhelp\b", "I'm here to help! You can ask me questions about your data, and I'll do my best to answer."),
    (r"\bthank", "You're welcome! Is there anything else I can help you with?"),
)

_DATA_REQUEST_WORDS = ("show", "data", "what", "tell", "give", "list")


def build_system_prompt(context: str, template: Optional[str] = None) -> str:
    if context:
        return (
            "You are a helpful AI assistant. Use the following context to answer "
            "the user's question:\n\n"
            f"{context}\n\n"
            "If the context doesn't contain relevant information, say so and provide "
            "a helpful response based on your general knowledge."
        )
    return template or DEFAULT_SYSTEM_PROMPT


def build_messages(message: str, context: str, template: Optional[str] = None) -> list[dict]:
    return [
        {"role": "system", "content": build_system_prompt(context, template)},
        {"role": "user", "content": message},
    ]


def limited_mode_reply(message: str, context: str = "") -> str:
    """Deterministic reply for when the chat model is unavailable."""
    lowered = message.lower()
    for pattern, reply in _GREETINGS:
        if re.search(pattern, lowered):
            return reply

    if context:
        if any(w in lowered for w in _DATA_REQUEST_WORDS):
            return f"Here's the data you requested:\n\n{context}\n\n{LIMITED_MODE_NOTE}"
        return f"Based on the available information:\n\n{context}\n\n{LIMITED_MODE_NOTE}"

    return (
        f"I understand you're asking about: '{message}'. Could you provide more "
        "details about what specific information you're looking for?"
    )
