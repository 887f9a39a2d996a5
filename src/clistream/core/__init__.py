"""Core data structures shared by the vendor adapters."""

from __future__ import annotations

from .errors import AdapterError
from .message import ContentPart, Message, MessageRole
from .prompt import flatten_prompt
from .session import CallContext, SessionStore

__all__ = [
    "AdapterError",
    "CallContext",
    "ContentPart",
    "Message",
    "MessageRole",
    "SessionStore",
    "flatten_prompt",
]
