from __future__ import annotations

import asyncio
import json

import pytest

from clistream.config import CliSettings
from clistream.core.adapters.narration import TRUNCATION_MARKER
from clistream.core.adapters.opencode import OpenCodeNormalizer
from clistream.core.adapters.process import ProcessExit, StderrChunk, StdoutChunk
from clistream.core.adapters.stream import ErrorEvent, FinishEvent, TextDeltaEvent, TextEndEvent, TextStartEvent
from clistream.core.session import SessionStore

from tests.fixtures.fake_cli import ndjson
from tests.harness import BaseEvent, canonical, feed, text_of


def _normalizer(store: SessionStore | None = None, key: str | None = "app-1-chat-1", **settings: object) -> OpenCodeNormalizer:
    store = store if store is not None else SessionStore("opencode")
    return OpenCodeNormalizer(
        settings=CliSettings.for_vendor("opencode", environ={}, **settings),
        session=store.bind(key),
    )


def _text(content: str, *, part_id: str = "p1", session: str = "ses_1") -> dict[str, object]:
    return {"type": "text", "sessionID": session, "part": {"id": part_id, "text": content}}


def _tool(status: str, *, call_id: str = "call_1", tool: str = "bash", **state: object) -> dict[str, object]:
    return {
        "type": "tool_use",
        "sessionID": "ses_1",
        "part": {"callID": call_id, "tool": tool, "state": {"status": status, **state}},
    }


def _finish(reason: str = "stop", *, tokens: tuple[int, int] = (0, 0)) -> dict[str, object]:
    return {
        "type": "step_finish",
        "sessionID": "ses_1",
        "part": {"reason": reason, "tokens": {"input": tokens[0], "output": tokens[1], "reasoning": 0}},
    }


HELLO = "".join(ndjson(_text("Hel"), _text("Hello"), _finish(tokens=(10, 2))))


def test_cumulative_text_is_emitted_as_deltas() -> None:
    normalizer = _normalizer()

    events = feed(normalizer, [HELLO])

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text("Hel"),
        BaseEvent.text("lo"),
        BaseEvent.end(),
        BaseEvent.finish(usage=(10, 2)),
    ]
    assert normalizer.text == "Hello"
    assert text_of(events) == "Hello"


@pytest.mark.parametrize("size", [1, 5, 17])
def test_events_do_not_depend_on_chunk_boundaries(size: int) -> None:
    data = HELLO.encode("utf-8")
    chunks = [data[index:index + size] for index in range(0, len(data), size)]

    events = feed(_normalizer(), chunks)

    assert canonical(events) == canonical(feed(_normalizer(), [HELLO]))


def test_text_block_is_bracketed_and_shares_one_id() -> None:
    events = feed(_normalizer(), [HELLO])

    assert isinstance(events[0], TextStartEvent)
    assert isinstance(events[-2], TextEndEvent)
    ids = {event.id for event in events if isinstance(event, (TextStartEvent, TextDeltaEvent, TextEndEvent))}
    assert len(ids) == 1
    assert next(iter(ids)).startswith("opencode-cli-")


def test_step_start_emits_thinking_indicator() -> None:
    events = feed(_normalizer(), ndjson({"type": "step_start", "sessionID": "ses_1", "part": {"messageID": "m1"}}), close=False)

    assert canonical(events) == [BaseEvent.start(), BaseEvent.text("\n*Thinking...*\n\n")]
    assert feed(_normalizer(show_thinking=False), ndjson({"type": "step_start"}), close=False) == []


def test_stale_and_restarted_text_updates() -> None:
    normalizer = _normalizer()

    events = feed(normalizer, ndjson(_text("Hello"), _text("Hel"), _text("Bye")), close=False)

    assert text_of(events) == "HelloBye"
    assert normalizer.text == "Bye"


def test_text_segments_are_tracked_separately() -> None:
    events = feed(
        _normalizer(),
        ndjson(_text("Hi", part_id="p1"), _text("Yo", part_id="p2"), _text("Yo there", part_id="p2")),
        close=False,
    )

    assert [event.delta for event in events if isinstance(event, TextDeltaEvent)] == ["Hi", "Yo", " there"]


def test_tool_activity_is_narrated_once() -> None:
    records = ndjson(
        _tool("pending", input={"command": "ls"}),
        _tool("running", input={"command": "ls"}),
        _tool("completed", title="List files", output="a\nb"),
        _tool("completed", title="List files", output="a\nb"),
        _finish(),
    )

    events = feed(_normalizer(), records)

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text('\n\n---\n**Tool: bash**\n```json\n{\n  "command": "ls"\n}\n```\n'),
        BaseEvent.text("**List files** completed\n```\na\nb\n```\n---\n\n"),
        BaseEvent.end(),
        BaseEvent.finish(),
    ]


def test_tool_failure_and_truncated_output() -> None:
    normalizer = _normalizer()
    records = ndjson(
        _tool("running", call_id="c1", tool="bash"),
        _tool("error", call_id="c1", tool="bash", error="permission denied"),
        _tool("completed", call_id="c2", tool="read", output="z" * 1500),
    )

    events = feed(normalizer, records, close=False)
    deltas = [event.delta for event in events if isinstance(event, TextDeltaEvent)]

    assert deltas[1] == "**bash** failed: permission denied\n---\n\n"
    assert deltas[2] == f"**read** completed\n```\n{'z' * 1000}{TRUNCATION_MARKER}\n```\n---\n\n"
    assert normalizer.pending_tools == ()
    # narration is not part of the assistant text
    assert normalizer.text == ""


def test_structured_tool_output_is_rendered_as_json() -> None:
    events = feed(_normalizer(), ndjson(_tool("completed", output={"ok": True})), close=False)

    assert text_of(events) == '**bash** completed\n```\n{"ok": true}\n```\n---\n\n'


def test_tool_calls_step_keeps_stream_open_and_usage_accumulates() -> None:
    records = ndjson(
        _finish("tool-calls", tokens=(5, 1)),
        _text("Done"),
        _finish("stop", tokens=(7, 3)),
        _text("ignored after finish"),
    )

    events = feed(_normalizer(), records)

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text("Done"),
        BaseEvent.end(),
        BaseEvent.finish(usage=(12, 4)),
    ]


def test_legacy_flat_step_finish_is_accepted() -> None:
    record = {"type": "step_finish", "reason": "stop", "tokens": {"input": 2, "output": 1}}

    events = feed(_normalizer(), ndjson(record), close=False)

    assert canonical(events) == [BaseEvent.finish(usage=(2, 1))]


def test_error_record_terminates_with_protocol_error() -> None:
    records = ndjson(
        _text("partial"),
        {"type": "error", "sessionID": "ses_1", "error": {"name": "APIError", "data": {"message": "rate limited"}}},
        _text("partial and more"),
    )

    events = feed(_normalizer(), records)

    assert canonical(events)[-1] == BaseEvent.error(message="rate limited", kind="protocol")
    assert sum(isinstance(event, (FinishEvent, ErrorEvent)) for event in events) == 1
    assert canonical(feed(_normalizer(), ndjson({"type": "error", "error": {"name": "Crash"}})))[-1] == (
        BaseEvent.error(message="Crash", kind="protocol")
    )


def test_non_json_lines_are_tolerated() -> None:
    lines = [ndjson(_text("Hel"))[0], "Warning: using fallback model\n", '{"type": "mystery"}\n', *ndjson(_text("Hello"), _finish())]

    events = feed(_normalizer(), lines)

    assert text_of(events) == "Hello"
    assert isinstance(events[-1], FinishEvent)


def test_session_capture_keeps_first_identifier() -> None:
    store = SessionStore("opencode")
    records = ndjson(_text("Hi", session="ses_parent"), _text("Hi!", session="ses_child"), _finish())

    feed(_normalizer(store), records)

    assert store.get("app-1-chat-1") == "ses_parent"

    feed(_normalizer(store), ndjson(_text("Again", session="ses_other"), _finish()))

    assert store.get("app-1-chat-1") == "ses_parent"


def test_without_session_key_nothing_is_stored() -> None:
    store = SessionStore("opencode")

    feed(_normalizer(store, key=None), [HELLO])

    assert len(store) == 0


def test_exit_without_terminal_record() -> None:
    assert canonical(feed(_normalizer(), [], returncode=1)) == [
        BaseEvent.error(message="OpenCode CLI exited with code 1", kind="exit_code")
    ]
    assert canonical(feed(_normalizer(), ndjson(_text("Hi")), returncode=0)) == [
        BaseEvent.start(),
        BaseEvent.text("Hi"),
        BaseEvent.end(),
        BaseEvent.finish(),
    ]


def test_residual_line_is_parsed_on_close() -> None:
    tail = json.dumps(_finish(tokens=(4, 4)))

    events = feed(_normalizer(), [*ndjson(_text("Hi")), tail])

    assert canonical(events)[-1] == BaseEvent.finish(usage=(4, 4))


def test_abort_reports_aborted_error_without_text_end() -> None:
    events = feed(_normalizer(), ndjson(_text("Hi")), returncode=-15, aborted=True)

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text("Hi"),
        BaseEvent.error(message="Aborted", kind="aborted"),
    ]


def test_normalize_chunk_dispatches_process_messages() -> None:
    normalizer = _normalizer()

    async def _run() -> list[object]:
        events: list[object] = []
        events.extend(await normalizer.normalize_chunk(StdoutChunk(HELLO.encode("utf-8")[:30])))
        events.extend(await normalizer.normalize_chunk(StderrChunk(b"some diagnostics\n")))
        events.extend(await normalizer.normalize_chunk(StdoutChunk(HELLO.encode("utf-8")[30:])))
        events.extend(await normalizer.normalize_chunk(ProcessExit(returncode=0)))
        return events

    events = asyncio.run(_run())

    assert text_of(events) == "Hello"  # type: ignore[arg-type]
    assert isinstance(events[-1], FinishEvent)
