"""Flatten chat prompts into the single argument a vendor CLI accepts."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Union

from .message import Message, MessageRole, coerce_messages

Prompt = Union[str, Sequence[Union[Message, Mapping[str, Any]]]]


def flatten_prompt(prompt: Prompt) -> str:
    """Collapse ``prompt`` into one string.

    The first system message with plain string content is wrapped in
    ``<system_instructions>`` tags and placed before the body. The body is
    the last user message; when no user message carries text, every plain
    string message becomes a ``"role: content"`` line instead.
    """

    if isinstance(prompt, str):
        return prompt

    messages = coerce_messages(prompt)
    system = _first_system_text(messages)
    body = _last_user_text(messages)
    if not body:
        body = "\n".join(
            f"{message.role.value}: {message.content}"
            for message in messages
            if isinstance(message.content, str)
        )

    if system:
        return f"<system_instructions>\n{system}\n</system_instructions>\n\n{body}"
    return body


def _first_system_text(messages: Sequence[Message]) -> str:
    for message in messages:
        if message.role is MessageRole.SYSTEM and isinstance(message.content, str):
            return message.content
    return ""


def _last_user_text(messages: Sequence[Message]) -> str:
    for message in reversed(messages):
        if message.role is MessageRole.USER:
            return "\n".join(message.text_parts())
    return ""
