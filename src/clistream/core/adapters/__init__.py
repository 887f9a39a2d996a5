"""Adapter interfaces and vendor CLI implementations."""

from __future__ import annotations

from .base import GenerateResult, ModelAdapter
from .gemini import GeminiCliProvider
from .letta import LettaProvider
from .opencode import OpenCodeProvider
from .provider import CliLanguageModel, CliProvider, CliStreamIterator
from .stream import (
    BaseStreamIterator,
    ErrorEvent,
    FinishEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    Usage,
    event_to_dict,
)

__all__ = [
    "BaseStreamIterator",
    "CliLanguageModel",
    "CliProvider",
    "CliStreamIterator",
    "ErrorEvent",
    "FinishEvent",
    "GeminiCliProvider",
    "GenerateResult",
    "LettaProvider",
    "ModelAdapter",
    "OpenCodeProvider",
    "StreamEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "TextStartEvent",
    "Usage",
    "event_to_dict",
]
