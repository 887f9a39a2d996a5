"""Canonical streaming event schema and base iterator primitives."""

from __future__ import annotations

import abc
import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, ClassVar, Deque, List, Literal, Protocol, Union

ErrorKind = Literal["protocol", "exit_code", "spawn", "aborted"]


@dataclass(frozen=True, slots=True)
class Usage:
    """Token totals reported by a vendor CLI."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self) -> None:
        for name in ("input_tokens", "output_tokens"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"usage.{name} must be an integer"
                raise TypeError(msg)
            if value < 0:
                msg = f"usage.{name} cannot be negative"
                raise ValueError(msg)

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def as_dict(self) -> dict[str, int]:
        return {"inputTokens": self.input_tokens, "outputTokens": self.output_tokens}


@dataclass(frozen=True, slots=True)
class TextStartEvent:
    """Opens the text block identified by ``id``."""

    type: ClassVar[str] = "text-start"

    id: str


@dataclass(frozen=True, slots=True)
class TextDeltaEvent:
    """Incremental text appended to the open block."""

    type: ClassVar[str] = "text-delta"

    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class TextEndEvent:
    """Closes the text block identified by ``id``."""

    type: ClassVar[str] = "text-end"

    id: str


@dataclass(frozen=True, slots=True)
class FinishEvent:
    """Terminal event carrying the finish reason and accumulated usage."""

    type: ClassVar[str] = "finish"

    reason: str
    usage: Usage = field(default_factory=Usage)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Terminal event reporting a failed call."""

    type: ClassVar[str] = "error"

    message: str
    kind: ErrorKind = "protocol"


StreamEvent = Union[TextStartEvent, TextDeltaEvent, TextEndEvent, FinishEvent, ErrorEvent]
TERMINAL_EVENTS = (FinishEvent, ErrorEvent)


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Render an event using the wire field names of the consumer protocol."""

    if isinstance(event, TextStartEvent):
        return {"type": event.type, "id": event.id}
    if isinstance(event, TextDeltaEvent):
        return {"type": event.type, "id": event.id, "delta": event.delta}
    if isinstance(event, TextEndEvent):
        return {"type": event.type, "id": event.id}
    if isinstance(event, FinishEvent):
        return {"type": event.type, "finishReason": event.reason, "usage": event.usage.as_dict()}
    if isinstance(event, ErrorEvent):
        return {"type": event.type, "error": event.message, "kind": event.kind}
    msg = f"unsupported stream event type: {type(event).__name__}"
    raise TypeError(msg)


class StreamNormalizer(Protocol):
    async def normalize_chunk(self, chunk: Any) -> List[StreamEvent]:
        """Map one inbound chunk into canonical stream events."""


class BaseStreamIterator(AsyncIterator[StreamEvent], metaclass=abc.ABCMeta):
    """Shared async iterator driving vendor-specific streaming adapters.

    Subclasses source raw inbound chunks by implementing
    :meth:`_get_next_chunk`. Each chunk is normalized into zero or more
    :class:`StreamEvent` instances via a :class:`StreamNormalizer`. The
    iterator buffers normalized events so consumers receive a linear stream
    of canonical events, and stops after the first :class:`FinishEvent` or
    :class:`ErrorEvent`.
    """

    def __init__(self, normalizer: StreamNormalizer) -> None:
        self._normalizer = normalizer
        self._buffer: Deque[StreamEvent] = deque()
        self._closed = False
        self._finalized = False
        self._close_lock = asyncio.Lock()

    def __aiter__(self) -> BaseStreamIterator:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed and not self._buffer:
            raise StopAsyncIteration

        if self._finalized and not self._buffer:
            await self.close()
            raise StopAsyncIteration

        buffered = self._pop_buffered_event()
        if buffered is not None:
            return await self._finalize_if_needed(buffered)

        while True:
            if self._closed:
                raise StopAsyncIteration

            if self._finalized:
                await self.close()
                raise StopAsyncIteration

            chunk = await self._consume_chunk()
            events = self._filter_events(await self._normalizer.normalize_chunk(chunk))
            if not events:
                continue

            self._buffer.extend(events)
            buffered = self._pop_buffered_event()
            if buffered is not None:
                return await self._finalize_if_needed(buffered)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release vendor resources and prevent additional iteration."""

        async with self._close_lock:
            if self._closed:
                return

            self._closed = True
            self._buffer.clear()
            await self._on_close()

    async def aclose(self) -> None:
        await self.close()

    async def _consume_chunk(self) -> Any:
        try:
            return await self._get_next_chunk()
        except StopAsyncIteration:
            await self.close()
            raise

    async def _finalize_if_needed(self, event: StreamEvent) -> StreamEvent:
        if isinstance(event, TERMINAL_EVENTS):
            self._finalized = True
            # nothing may follow a terminal event
            self._buffer.clear()
            await self.close()
        return event

    def _pop_buffered_event(self) -> StreamEvent | None:
        if not self._buffer:
            return None
        return self._buffer.popleft()

    def _filter_events(self, events: List[StreamEvent]) -> List[StreamEvent]:
        """Allow subclasses to drop events before they are buffered."""

        return events

    @abc.abstractmethod
    async def _get_next_chunk(self) -> Any:
        """Retrieve the next raw chunk from the vendor stream."""

    async def _on_close(self) -> None:
        """Allow subclasses to dispose vendor resources when closing."""


async def replay_stream(iterator: BaseStreamIterator) -> List[StreamEvent]:
    """Collect all events emitted by a stream iterator."""

    events: List[StreamEvent] = []
    try:
        async for event in iterator:
            events.append(event)
    finally:
        await iterator.close()
    return events


def collect_text(events: List[StreamEvent]) -> str:
    """Concatenate the text deltas of an event sequence."""

    return "".join(event.delta for event in events if isinstance(event, TextDeltaEvent))
