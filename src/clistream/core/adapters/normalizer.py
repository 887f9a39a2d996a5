"""Shared policy for turning vendor records into canonical stream events.

Every vendor CLI reports the same things in its own vocabulary: a session
identifier, assistant text (cumulative or incremental), tool activity,
token usage and a terminal status. :class:`CliStreamNormalizer` owns the
call-local state for those concerns; subclasses only decode their records
and call the helpers below.
"""

from __future__ import annotations

import abc
import itertools
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from ...config import CliSettings
from ..session import SessionBinding
from .lines import LineBuffer, UnrecognizedLine, decode_document, decode_line, log_unrecognized
from .narration import (
    THINKING_TEXT,
    format_tool_completed,
    format_tool_failed,
    format_tool_output,
    format_tool_start,
)
from .process import ProcessExit, ProcessMessage, SpawnFailure, StderrChunk, StdoutChunk
from .stream import (
    ErrorEvent,
    ErrorKind,
    FinishEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    Usage,
)

LOGGER = logging.getLogger(__name__)

_TEXT_IDS = itertools.count(1)


def next_text_id(vendor: str) -> str:
    return f"{vendor}-cli-{time.time_ns() // 1_000_000}-{next(_TEXT_IDS)}"


@dataclass(slots=True)
class ToolActivity:
    """A tool invocation that has been announced but not yet finished."""

    call_id: str
    name: str
    title: str


class CliStreamNormalizer(abc.ABC):
    """Call-local state machine shared by the vendor normalizers."""

    vendor: ClassVar[str] = "cli"
    thinking_text: ClassVar[str] = THINKING_TEXT

    def __init__(
        self,
        *,
        settings: CliSettings,
        session: SessionBinding,
        buffered: bool = False,
        text_id: str | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._buffered = buffered
        self._text_id = text_id or next_text_id(self.vendor)
        self._lines = LineBuffer()
        self._document: list[str] = []
        self._text_started = False
        self._text_ended = False
        self._text = ""
        self._segments: dict[str | None, str] = {}
        self._usage = Usage()
        self._usage_final = False
        self._tools: dict[str, ToolActivity] = {}
        self._narrated: set[str] = set()
        self._terminal: FinishEvent | ErrorEvent | None = None
        self._records = 0

    @property
    def text_id(self) -> str:
        return self._text_id

    @property
    def text(self) -> str:
        """Latest full assistant text, without tool narration."""

        return self._text

    @property
    def usage(self) -> Usage:
        return self._usage

    @property
    def terminal(self) -> FinishEvent | ErrorEvent | None:
        return self._terminal

    @property
    def session(self) -> SessionBinding:
        return self._session

    @property
    def pending_tools(self) -> tuple[str, ...]:
        return tuple(self._tools)

    async def normalize_chunk(self, chunk: ProcessMessage) -> list[StreamEvent]:
        if isinstance(chunk, StdoutChunk):
            return self.feed(chunk.data)
        if isinstance(chunk, StderrChunk):
            return self.feed_stderr(chunk.data.decode("utf-8", errors="replace"))
        if isinstance(chunk, ProcessExit):
            return self.close(chunk.returncode, aborted=chunk.aborted)
        if isinstance(chunk, SpawnFailure):
            if self._terminal is not None:
                return []
            return [self._fail(chunk.message, kind="spawn")]
        msg = f"unsupported process message: {type(chunk).__name__}"
        raise TypeError(msg)

    def feed(self, data: bytes | str) -> list[StreamEvent]:
        """Consume a raw stdout chunk."""

        events: list[StreamEvent] = []
        for line in self._lines.push(data):
            events.extend(self._consume_line(line))
        return events

    def feed_stderr(self, text: str) -> list[StreamEvent]:
        """Consume a stderr chunk; only logged by default."""

        stripped = text.strip()
        if stripped and not any(prefix in text for prefix in self._settings.banner_prefixes):
            LOGGER.warning("%s stderr: %s", self._settings.display_name, stripped)
        return []

    def close(self, returncode: int | None, *, aborted: bool = False) -> list[StreamEvent]:
        """Finalize the call once the process has exited."""

        events: list[StreamEvent] = []
        tail = self._lines.flush()
        if tail is not None:
            events.extend(self._consume_line(tail))

        if self._terminal is None and self._buffered and not self._records and self._document:
            events.extend(self._consume_document())

        if self._terminal is not None:
            return events

        if aborted:
            events.append(self._fail("Aborted", kind="aborted"))
        elif returncode == 0:
            events.extend(self._finish("stop"))
        else:
            message = f"{self._settings.display_name} exited with code {returncode}"
            events.append(self._fail(message, kind="exit_code"))
        return events

    def consume_record(self, payload: Mapping[str, Any]) -> list[StreamEvent]:
        """Decode and handle one JSON object."""

        if self._terminal is not None:
            return []

        event = self.decode(payload)
        if event is None:
            return []

        self._records += 1
        self._session.capture(self.session_id_of(event))
        return self.handle(event)

    @abc.abstractmethod
    def decode(self, payload: Mapping[str, Any]) -> Any | None:
        """Validate ``payload`` as one of the vendor's record types."""

    @abc.abstractmethod
    def handle(self, event: Any) -> list[StreamEvent]:
        """Translate one decoded vendor record."""

    def session_id_of(self, event: Any) -> str | None:
        """Return the session or agent identifier carried by ``event``."""

        return None

    def _consume_line(self, line: str) -> list[StreamEvent]:
        if self._terminal is not None:
            return []

        if self._buffered:
            self._document.append(line)

        decoded = decode_line(line, banner_prefixes=self._settings.banner_prefixes)
        if decoded is None:
            return []
        if isinstance(decoded, UnrecognizedLine):
            log_unrecognized(decoded, source=self._settings.display_name)
            return []
        return self.consume_record(decoded.payload)

    def _consume_document(self) -> list[StreamEvent]:
        # pretty-printed JSON spans several lines
        decoded = decode_document("\n".join(self._document), banner_prefixes=self._settings.banner_prefixes)
        if decoded is None:
            return []
        if isinstance(decoded, UnrecognizedLine):
            log_unrecognized(decoded, source=self._settings.display_name)
            return []
        return self.consume_record(decoded.payload)

    # text

    def _open_text(self) -> list[StreamEvent]:
        if self._text_started:
            return []
        self._text_started = True
        return [TextStartEvent(id=self._text_id)]

    def _delta(self, text: str) -> list[StreamEvent]:
        if not text or self._text_ended:
            return []
        return [*self._open_text(), TextDeltaEvent(id=self._text_id, delta=text)]

    def _thinking(self) -> list[StreamEvent]:
        if not self._settings.show_thinking:
            return []
        return self._delta(self.thinking_text)

    def _assistant_delta(self, text: str) -> list[StreamEvent]:
        """Forward incremental assistant text unchanged."""

        if not text:
            return []
        self._text += text
        return self._delta(text)

    def _assistant_cumulative(self, content: str, *, segment: str | None = None) -> list[StreamEvent]:
        """Emit only what ``content`` adds to the last text of ``segment``.

        A value that does not extend the previous one is emitted whole, since
        the vendor restarted the text. A stale value that is a strict prefix
        of what was already emitted is dropped.
        """

        previous = self._segments.get(segment, "")
        if content == previous:
            return []
        if content.startswith(previous):
            delta = content[len(previous):]
        elif previous.startswith(content):
            LOGGER.debug("Ignoring stale %s text update for segment %s", self.vendor, segment)
            return []
        else:
            delta = content

        self._segments[segment] = content
        self._text = content
        return self._delta(delta)

    # tools

    def _start_tool(
        self,
        call_id: str,
        name: str,
        *,
        title: str | None = None,
        arguments: Mapping[str, Any] | None = None,
    ) -> list[StreamEvent]:
        if call_id in self._tools or call_id in self._narrated:
            return []

        activity = ToolActivity(call_id=call_id, name=name, title=title or name)
        self._tools[call_id] = activity
        LOGGER.info("%s tool started: %s (%s)", self._settings.display_name, name, call_id)
        return self._delta(
            format_tool_start(activity.title, arguments, input_limit=self._settings.tool_input_limit)
        )

    def _complete_tool(
        self,
        call_id: str,
        *,
        output: str | None = None,
        title: str | None = None,
        bare: bool = False,
    ) -> list[StreamEvent]:
        activity = self._settle_tool(call_id)
        if activity is None and call_id in self._narrated:
            return []
        self._narrated.add(call_id)

        label = title or (activity.title if activity else call_id)
        LOGGER.info("%s tool completed: %s", self._settings.display_name, label)
        limit = self._settings.tool_output_limit
        if bare:
            return self._delta(format_tool_output(output or "", output_limit=limit))
        return self._delta(format_tool_completed(label, output, output_limit=limit))

    def _fail_tool(
        self,
        call_id: str,
        *,
        error: str | None,
        name: str | None = None,
    ) -> list[StreamEvent]:
        activity = self._settle_tool(call_id)
        if activity is None and call_id in self._narrated:
            return []
        self._narrated.add(call_id)

        label = name or (activity.name if activity else call_id)
        LOGGER.warning("%s tool error: %s - %s", self._settings.display_name, label, error)
        return self._delta(format_tool_failed(label, error))

    def _settle_tool(self, call_id: str) -> ToolActivity | None:
        return self._tools.pop(call_id, None)

    # usage

    def _add_usage(self, input_tokens: int | None, output_tokens: int | None) -> None:
        if self._usage_final:
            return
        self._usage = self._usage + Usage(
            input_tokens=max(0, input_tokens or 0),
            output_tokens=max(0, output_tokens or 0),
        )

    def _override_usage(self, input_tokens: int | None, output_tokens: int | None) -> None:
        """Replace the running totals with a terminal report."""

        self._usage = Usage(
            input_tokens=max(0, input_tokens if input_tokens is not None else self._usage.input_tokens),
            output_tokens=max(0, output_tokens if output_tokens is not None else self._usage.output_tokens),
        )
        self._usage_final = True

    # termination

    def _finish(self, reason: str = "stop") -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if self._text_started and not self._text_ended:
            self._text_ended = True
            events.append(TextEndEvent(id=self._text_id))
        finish = FinishEvent(reason=reason, usage=self._usage)
        self._terminal = finish
        events.append(finish)
        return events

    def _fail(self, message: str, *, kind: ErrorKind = "protocol") -> ErrorEvent:
        error = ErrorEvent(message=message, kind=kind)
        self._terminal = error
        LOGGER.warning("%s call failed (%s): %s", self._settings.display_name, kind, message)
        return error
