"""Letta Code adapter (``letta -p ... --output-format stream-json``).

Letta streams assistant text as plain deltas. Conversations continue by
agent: the agent id reported by the first call for a session key is passed
back with ``-a`` on later calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from ...io.catalog import LETTA_MODELS, LocalModelList, build_catalog
from .normalizer import CliStreamNormalizer
from .provider import CliProvider
from .schema import LooseText, VendorModel, validate_record
from .stream import StreamEvent

LOGGER = logging.getLogger(__name__)

AUTH_MARKERS = ("Missing LETTA_API_KEY", "authenticate")
AUTH_REQUIRED_TEXT = (
    "**Letta CLI Error:** Authentication required.\n\n"
    "Please run `letta` in your terminal to authenticate via Letta Cloud OAuth, "
    "or set the `LETTA_API_KEY` environment variable.\n"
)


class Init(VendorModel):
    type: Literal["init"]
    agent_id: Optional[str] = None
    model: Optional[str] = None
    tools: List[str] = Field(default_factory=list)


class ToolCall(VendorModel):
    name: str
    arguments: Any = None


class Message(VendorModel):
    type: Literal["message"]
    message_type: str
    id: Optional[str] = None
    content: LooseText = None
    reasoning: Optional[str] = None
    stop_reason: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_call_id: Optional[str] = None
    tool_return: LooseText = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


class ResultUsage(VendorModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class Result(VendorModel):
    type: Literal["result"]
    subtype: str = "success"
    is_error: bool = False
    result: Optional[str] = None
    agent_id: Optional[str] = None
    usage: Optional[ResultUsage] = None


LettaEvent = Annotated[Union[Init, Message, Result], Field(discriminator="type")]
_EVENTS: TypeAdapter[Any] = TypeAdapter(LettaEvent)


class ResponseUsage(VendorModel):
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class Response(VendorModel):
    """Single document printed by ``--output-format json``."""

    text: Optional[str] = None
    agent_id: Optional[str] = Field(None, alias="agentId")
    usage: Optional[ResponseUsage] = None


_RESPONSE: TypeAdapter[Any] = TypeAdapter(Response)


def _tool_arguments(arguments: Any) -> Mapping[str, Any] | None:
    if isinstance(arguments, Mapping):
        return arguments
    if isinstance(arguments, str) and arguments.strip():
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError:
            return {"arguments": arguments}
        if isinstance(decoded, Mapping):
            return decoded
    return None


class LettaNormalizer(CliStreamNormalizer):
    vendor = "letta"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._auth_reported = False

    def decode(self, payload: Mapping[str, Any]) -> Any | None:
        if "type" not in payload and ("text" in payload or "agentId" in payload):
            return validate_record(_RESPONSE, payload, source=self._settings.display_name)
        return validate_record(_EVENTS, payload, source=self._settings.display_name)

    def session_id_of(self, event: Any) -> str | None:
        if isinstance(event, (Init, Result)):
            return event.agent_id
        return None

    def feed_stderr(self, text: str) -> list[StreamEvent]:
        super().feed_stderr(text)
        if self._auth_reported or self.terminal is not None:
            return []
        if not any(marker in text for marker in AUTH_MARKERS):
            return []
        self._auth_reported = True
        return self._delta(AUTH_REQUIRED_TEXT)

    def handle(self, event: Any) -> list[StreamEvent]:
        if isinstance(event, Init):
            LOGGER.info("Letta agent initialized: %s, model: %s", event.agent_id, event.model)
            return self._thinking()
        if isinstance(event, Message):
            return self._handle_message(event)
        if isinstance(event, Result):
            return self._handle_result(event)
        if isinstance(event, Response):
            return self._handle_response(event)
        return []

    def _handle_message(self, event: Message) -> list[StreamEvent]:
        kind = event.message_type
        if kind == "assistant_message":
            return self._assistant_delta(event.content or "")
        if kind == "tool_call" and event.tool_call is not None:
            call = event.tool_call
            return self._start_tool(event.id or call.name, call.name, arguments=_tool_arguments(call.arguments))
        if kind == "tool_return" and event.tool_return is not None:
            return self._complete_tool(self._return_target(event), output=event.tool_return, bare=True)
        if kind == "usage_statistics":
            self._add_usage(event.prompt_tokens, event.completion_tokens)
            return []
        if kind == "stop_reason":
            LOGGER.debug("Letta stop reason: %s", event.stop_reason)
        elif kind == "reasoning_message":
            LOGGER.debug("Letta reasoning: %s", (event.reasoning or "")[:100])
        return []

    def _return_target(self, event: Message) -> str:
        pending = self.pending_tools
        if event.tool_call_id and event.tool_call_id in pending:
            return event.tool_call_id
        if pending:
            return pending[0]
        return event.tool_call_id or event.id or "tool-return"

    def _handle_result(self, event: Result) -> list[StreamEvent]:
        if event.usage is not None:
            self._override_usage(event.usage.prompt_tokens or None, event.usage.completion_tokens or None)
        if event.is_error or event.subtype == "error":
            return [self._fail(event.result or f"{self._settings.display_name} returned an error")]

        events: list[StreamEvent] = []
        if event.result and not self.text:
            events.extend(self._assistant_delta(event.result))
        return [*events, *self._finish("stop")]

    def _handle_response(self, event: Response) -> list[StreamEvent]:
        self._session.overwrite(event.agent_id)
        if event.usage is not None:
            self._override_usage(event.usage.input_tokens, event.usage.output_tokens)
        return [*self._assistant_delta(event.text or ""), *self._finish("stop")]


class LettaProvider(CliProvider):
    """Run prompts through ``letta -p``."""

    vendor = "letta"
    normalizer_class = LettaNormalizer

    def build_args(
        self,
        *,
        model: str | None,
        prompt: str,
        token: str | None,
        buffered: bool,
    ) -> List[str]:
        args = ["-p", prompt, "--output-format", "json" if buffered else "stream-json"]
        if model:
            args.extend(["-m", model])
        if token:
            args.extend(["-a", token])
        return args

    def list_models(self) -> LocalModelList:
        return build_catalog(self.vendor, LETTA_MODELS)
