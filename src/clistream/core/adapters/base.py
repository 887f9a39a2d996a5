"""Adapter interface shared by the vendor CLI language models."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..prompt import Prompt
from ..session import CallContext
from .stream import BaseStreamIterator, Usage


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Outcome of a buffered call."""

    text: str
    finish_reason: str = "stop"
    usage: Usage = field(default_factory=Usage)


class ModelAdapter(ABC):
    """Abstract interface for vendor-specific language models."""

    @abstractmethod
    async def generate(
        self,
        prompt: Prompt,
        /,
        *,
        abort_signal: asyncio.Event | None = None,
        context: CallContext | None = None,
    ) -> GenerateResult:
        """Run one call to completion and return the assistant text."""

    @abstractmethod
    def stream(
        self,
        prompt: Prompt,
        /,
        *,
        abort_signal: asyncio.Event | None = None,
        context: CallContext | None = None,
    ) -> BaseStreamIterator:
        """Return an async iterator that yields canonical streaming events."""
