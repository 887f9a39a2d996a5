"""Render tool activity as inline transcript text."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

TRUNCATION_MARKER = "\n... (truncated)"
THINKING_TEXT = "*Thinking...*\n\n"


def truncate_output(output: str | None, limit: int = 500) -> str:
    """Cut ``output`` to ``limit`` characters, marking the cut."""

    if not output:
        return ""
    if len(output) <= limit:
        return output
    return f"{output[:limit]}{TRUNCATION_MARKER}"


def format_tool_start(
    title: str,
    arguments: Mapping[str, Any] | None = None,
    *,
    input_limit: int = 200,
) -> str:
    """Announce a tool invocation.

    The arguments are included as a fenced JSON block only when their
    serialized form is shorter than ``input_limit``; they are never cut.
    """

    message = f"\n\n---\n**Tool: {title}**\n"
    if arguments:
        rendered = json.dumps(arguments, indent=2, default=str)
        if len(rendered) < input_limit:
            message += f"```json\n{rendered}\n```\n"
    return message


def format_tool_completed(
    title: str,
    output: str | None = None,
    *,
    output_limit: int = 1000,
) -> str:
    message = f"**{title}** completed\n"
    if output:
        message += f"```\n{truncate_output(output, output_limit)}\n```\n---\n\n"
    else:
        message += "---\n\n"
    return message


def format_tool_output(output: str, *, output_limit: int = 1000) -> str:
    """Render a bare tool result that carries no status or title."""

    return f"```\n{truncate_output(output, output_limit)}\n```\n---\n\n"


def format_tool_failed(name: str, error: str | None) -> str:
    return f"**{name}** failed: {error or 'Unknown error'}\n---\n\n"
