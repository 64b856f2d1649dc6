"""Chat prompt template for the built-in model.

Uses the Gemma turn format, which most small instruction-tuned GGUF
models accept.  System messages become a labelled user turn because the
template has no dedicated system role.
"""

from __future__ import annotations

from typing import Sequence

from chatstream.types import Message, Role

TURN_START = "<start_of_turn>"
TURN_END = "<end_of_turn>"

_ROLE_TURN = {
    Role.SYSTEM: "user",
    Role.USER: "user",
    Role.ASSISTANT: "model",
}


def format_chat_prompt(messages: Sequence[Message]) -> str:
    """Render *messages* into one prompt ending with an open model turn."""
    parts: list[str] = []
    for msg in messages:
        content = msg.content
        if msg.role is Role.SYSTEM:
            content = f"System instruction: {content}"
        parts.append(f"{TURN_START}{_ROLE_TURN[msg.role]}\n{content}{TURN_END}\n")
    parts.append(f"{TURN_START}model\n")
    return "".join(parts)
