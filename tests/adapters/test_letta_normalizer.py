from __future__ import annotations

import json

from clistream.config import CliSettings
from clistream.core.adapters.letta import AUTH_REQUIRED_TEXT, LettaNormalizer
from clistream.core.session import SessionStore

from tests.fixtures.fake_cli import ndjson
from tests.harness import BaseEvent, canonical, feed, text_of

KEY = "app-2-chat-9"


def _normalizer(store: SessionStore | None = None, *, buffered: bool = False) -> LettaNormalizer:
    return LettaNormalizer(
        settings=CliSettings.for_vendor("letta", environ={}),
        session=(store if store is not None else SessionStore("letta")).bind(KEY),
        buffered=buffered,
    )


def _message(message_type: str, **fields: object) -> dict[str, object]:
    return {"type": "message", "message_type": message_type, **fields}


def _result(**fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"type": "result", "subtype": "success", "is_error": False, "agent_id": "agent-1"}
    payload.update(fields)
    return payload


def test_delta_stream_with_tools_and_usage() -> None:
    store = SessionStore("letta")
    records = ndjson(
        {"type": "init", "agent_id": "agent-1", "model": "sonnet-4.5", "tools": ["Bash"]},
        _message("reasoning_message", reasoning="thinking about it"),
        _message("tool_call", id="tc-1", tool_call={"name": "Bash", "arguments": {"command": "ls"}}),
        _message("tool_call", id="tc-1", tool_call={"name": "Bash", "arguments": {"command": "ls"}}),
        _message("tool_return", tool_return="a.txt"),
        _message("assistant_message", content="Found "),
        _message("assistant_message", content="a.txt"),
        _message("stop_reason", stop_reason="end_turn"),
        _message("usage_statistics", prompt_tokens=40, completion_tokens=8),
        _result(result="Found a.txt"),
    )

    normalizer = _normalizer(store)
    events = feed(normalizer, records)

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text("*Thinking...*\n\n"),
        BaseEvent.text('\n\n---\n**Tool: Bash**\n```json\n{\n  "command": "ls"\n}\n```\n'),
        BaseEvent.text("```\na.txt\n```\n---\n\n"),
        BaseEvent.text("Found "),
        BaseEvent.text("a.txt"),
        BaseEvent.end(),
        BaseEvent.finish(usage=(40, 8)),
    ]
    assert normalizer.text == "Found a.txt"
    assert store.get(KEY) == "agent-1"


def test_large_arguments_are_hidden_but_json_strings_are_decoded() -> None:
    events = feed(
        _normalizer(),
        ndjson(
            _message("tool_call", id="a", tool_call={"name": "Write", "arguments": {"content": "x" * 600}}),
            _message("tool_call", id="b", tool_call={"name": "Read", "arguments": '{"path": "b.txt"}'}),
        ),
        close=False,
    )

    assert text_of(events) == (
        "\n\n---\n**Tool: Write**\n"
        '\n\n---\n**Tool: Read**\n```json\n{\n  "path": "b.txt"\n}\n```\n'
    )


def test_result_text_is_used_when_nothing_was_streamed() -> None:
    normalizer = _normalizer()

    events = feed(normalizer, ndjson(_result(result="Only in result", usage={"prompt_tokens": 5, "completion_tokens": 2})))

    assert canonical(events) == [
        BaseEvent.start(),
        BaseEvent.text("Only in result"),
        BaseEvent.end(),
        BaseEvent.finish(usage=(5, 2)),
    ]


def test_result_usage_overrides_incremental_reports() -> None:
    records = ndjson(
        _message("usage_statistics", prompt_tokens=10, completion_tokens=1),
        _message("usage_statistics", prompt_tokens=10, completion_tokens=1),
        _result(usage={"prompt_tokens": 25, "completion_tokens": 0}),
    )

    events = feed(_normalizer(), records)

    # a zero total keeps the running count
    assert canonical(events)[-1] == BaseEvent.finish(usage=(25, 2))


def test_error_result_fails() -> None:
    events = feed(_normalizer(), ndjson(_result(subtype="error", is_error=True, result="Agent crashed")))

    assert canonical(events) == [BaseEvent.error(message="Agent crashed", kind="protocol")]


def test_existing_agent_is_not_replaced_by_stream_ids() -> None:
    store = SessionStore("letta")
    store.remember(KEY, "agent-original")

    feed(_normalizer(store), ndjson({"type": "init", "agent_id": "agent-new"}, _result(agent_id="agent-new")))

    assert store.get(KEY) == "agent-original"


def test_buffered_document_overwrites_agent() -> None:
    store = SessionStore("letta")
    store.remember(KEY, "agent-original")
    normalizer = _normalizer(store, buffered=True)
    document = {"text": "Hi from Letta", "agentId": "agent-new", "usage": {"input_tokens": 11, "output_tokens": 3}}

    events = feed(normalizer, [json.dumps(document)])

    assert normalizer.text == "Hi from Letta"
    assert canonical(events)[-1] == BaseEvent.finish(usage=(11, 3))
    assert store.get(KEY) == "agent-new"


def test_authentication_failure_on_stderr_is_narrated_once() -> None:
    normalizer = _normalizer()

    first = normalizer.feed_stderr("Error: Missing LETTA_API_KEY\n")
    second = normalizer.feed_stderr("Please authenticate first\n")
    events = normalizer.close(1)

    assert canonical(first) == [BaseEvent.start(), BaseEvent.text(AUTH_REQUIRED_TEXT)]
    assert second == []
    assert canonical(events) == [BaseEvent.error(message="Letta CLI exited with code 1", kind="exit_code")]


def test_unrelated_stderr_is_only_logged() -> None:
    assert _normalizer().feed_stderr("warming up\n") == []
