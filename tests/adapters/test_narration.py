from __future__ import annotations

from clistream.core.adapters.narration import (
    TRUNCATION_MARKER,
    format_tool_completed,
    format_tool_failed,
    format_tool_output,
    format_tool_start,
    truncate_output,
)


def test_truncate_output_marks_the_cut() -> None:
    assert truncate_output(None) == ""
    assert truncate_output("short", 10) == "short"
    assert truncate_output("x" * 12, 10) == "x" * 10 + TRUNCATION_MARKER


def test_tool_start_includes_small_inputs_only() -> None:
    small = format_tool_start("bash", {"command": "ls"})
    assert small == '\n\n---\n**Tool: bash**\n```json\n{\n  "command": "ls"\n}\n```\n'

    large = format_tool_start("write", {"content": "y" * 300})
    assert large == "\n\n---\n**Tool: write**\n"

    assert format_tool_start("read", {}) == "\n\n---\n**Tool: read**\n"


def test_tool_start_gate_is_tunable() -> None:
    arguments = {"content": "y" * 300}

    assert "```json" in format_tool_start("write", arguments, input_limit=500)


def test_tool_completion_and_failure_messages() -> None:
    assert format_tool_completed("List files", "a\nb") == "**List files** completed\n```\na\nb\n```\n---\n\n"
    assert format_tool_completed("List files") == "**List files** completed\n---\n\n"
    assert format_tool_failed("bash", "denied") == "**bash** failed: denied\n---\n\n"
    assert format_tool_failed("bash", None) == "**bash** failed: Unknown error\n---\n\n"
    assert format_tool_output("ok") == "```\nok\n```\n---\n\n"


def test_tool_output_is_truncated_to_limit() -> None:
    message = format_tool_completed("cat", "z" * 1500)

    assert message == f"**cat** completed\n```\n{'z' * 1000}{TRUNCATION_MARKER}\n```\n---\n\n"
