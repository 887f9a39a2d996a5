"""Reassemble newline-delimited JSON records from raw process output."""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from ...config import DEFAULT_BANNER_PREFIXES

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JsonRecord:
    """A line that decoded to a JSON object."""

    payload: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class UnrecognizedLine:
    """A non-blank line that could not be decoded into a record."""

    text: str
    reason: str


DecodedLine = Union[JsonRecord, UnrecognizedLine]


class LineBuffer:
    """Split arbitrary output chunks into complete lines.

    Chunk boundaries never line up with record boundaries, so the trailing
    piece of every chunk is kept as a residual until the next newline
    arrives. Bytes are decoded incrementally so multi-byte characters split
    across chunks survive intact.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._residual = ""

    @property
    def residual(self) -> str:
        return self._residual

    def push(self, chunk: bytes | str) -> list[str]:
        """Append ``chunk`` and return the lines it completed."""

        if isinstance(chunk, (bytes, bytearray)):
            text = self._decoder.decode(bytes(chunk))
        else:
            text = chunk

        if not text:
            return []

        pieces = (self._residual + text).split("\n")
        self._residual = pieces.pop()
        return pieces

    def flush(self) -> str | None:
        """Return the unterminated residual line, if any, and reset."""

        tail = self._decoder.decode(b"", final=True)
        remaining = self._residual + tail
        self._residual = ""
        if not remaining.strip():
            return None
        return remaining


def is_banner(line: str, prefixes: Iterable[str] = DEFAULT_BANNER_PREFIXES) -> bool:
    return any(line.startswith(prefix) for prefix in prefixes)


def decode_line(
    line: str,
    *,
    banner_prefixes: Iterable[str] = DEFAULT_BANNER_PREFIXES,
) -> DecodedLine | None:
    """Decode one output line.

    Blank lines and banner notices return ``None``; anything that is not a
    JSON object becomes an :class:`UnrecognizedLine`.
    """

    stripped = line.strip()
    if not stripped or is_banner(stripped, banner_prefixes):
        return None
    return _decode_object(stripped)


def decode_document(
    text: str,
    *,
    banner_prefixes: Iterable[str] = DEFAULT_BANNER_PREFIXES,
) -> DecodedLine | None:
    """Decode a whole output document, e.g. pretty-printed JSON.

    Banner lines are removed first; the remainder must be a single JSON
    object.
    """

    kept = [line for line in text.splitlines() if not is_banner(line.strip(), banner_prefixes)]
    body = "\n".join(kept).strip()
    if not body:
        return None
    return _decode_object(body)


def _decode_object(text: str) -> DecodedLine:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        return UnrecognizedLine(text=text, reason=f"invalid JSON: {exc.msg}")

    if not isinstance(payload, Mapping):
        return UnrecognizedLine(text=text, reason="JSON value is not an object")
    return JsonRecord(payload=payload)


def log_unrecognized(line: UnrecognizedLine, *, source: str) -> None:
    LOGGER.debug("Non-JSON from %s (%s): %s", source, line.reason, line.text[:100])
