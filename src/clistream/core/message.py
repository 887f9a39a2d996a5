"""Chat message schema accepted as prompt input."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class MessageRole(str, Enum):
    """Role names a prompt message may carry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ContentPart:
    """One part of a multi-part message body.

    Only ``text`` parts reach the vendor CLIs; files, images and tool
    payloads are kept so callers can pass their messages through unchanged.
    """

    type: str
    text: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            msg = "content part type must be a non-empty string"
            raise ValueError(msg)
        if self.type == "text" and not isinstance(self.text, str):
            msg = "text parts must carry a string"
            raise TypeError(msg)

    @property
    def is_text(self) -> bool:
        return self.type == "text"


MessageContent = Union[str, tuple[ContentPart, ...]]


@dataclass(frozen=True, slots=True)
class Message:
    """A single message of a conversation prompt."""

    role: MessageRole
    content: MessageContent

    def __post_init__(self) -> None:
        if not isinstance(self.role, MessageRole):
            object.__setattr__(self, "role", MessageRole(self.role))

        if isinstance(self.content, str):
            return
        if not isinstance(self.content, Sequence) or isinstance(self.content, (bytes, bytearray)):
            msg = "message content must be a string or a sequence of parts"
            raise TypeError(msg)
        object.__setattr__(self, "content", tuple(_coerce_part(part) for part in self.content))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> Message:
        """Build a message from ``{"role": ..., "content": ...}``."""

        try:
            role = payload["role"]
        except KeyError:
            msg = "message mapping requires a 'role'"
            raise ValueError(msg) from None
        content = payload.get("content", "")
        if content is None:
            content = ""
        return cls(role=MessageRole(role), content=content)

    def text_parts(self) -> list[str]:
        if isinstance(self.content, str):
            return [self.content]
        return [part.text for part in self.content if part.is_text and part.text is not None]


def _coerce_part(part: Any) -> ContentPart:
    if isinstance(part, ContentPart):
        return part
    if isinstance(part, Mapping):
        part_type = part.get("type")
        text = part.get("text") if part_type == "text" else None
        return ContentPart(type=str(part_type or ""), text=text)
    msg = f"unsupported content part {type(part).__name__}"
    raise TypeError(msg)


def coerce_messages(messages: Sequence[Message | Mapping[str, Any]]) -> list[Message]:
    """Accept :class:`Message` instances or plain mappings."""

    coerced: list[Message] = []
    for message in messages:
        if isinstance(message, Message):
            coerced.append(message)
        elif isinstance(message, Mapping):
            coerced.append(Message.from_mapping(message))
        else:
            msg = f"unsupported message type {type(message).__name__}"
            raise TypeError(msg)
    return coerced
