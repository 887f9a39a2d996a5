"""Gemini CLI adapter (``gemini --output-format stream-json``).

Gemini CLI cannot resume a session by identifier, only "the latest session
in this directory". The session store therefore holds a marker for every
key whose last call completed successfully, and the next call for that key
passes ``--resume latest``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from ...io.catalog import GEMINI_CLI_MODELS, LocalModelList, build_catalog
from .normalizer import CliStreamNormalizer
from .provider import CliProvider
from .schema import LooseText, VendorModel, validate_record
from .stream import StreamEvent

LOGGER = logging.getLogger(__name__)

RESUME_LATEST = "latest"


class Init(VendorModel):
    type: Literal["init"]
    session_id: Optional[str] = None
    model: Optional[str] = None


class Message(VendorModel):
    type: Literal["message"]
    role: str = "assistant"
    content: str = ""
    delta: bool = False


class ToolUse(VendorModel):
    type: Literal["tool_use"]
    tool_name: str
    tool_id: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


class ToolResult(VendorModel):
    type: Literal["tool_result"]
    tool_id: Optional[str] = None
    status: str = "success"
    output: LooseText = None
    error: LooseText = None


class ResultStats(VendorModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    tool_calls: int = 0


class Result(VendorModel):
    type: Literal["result"]
    status: str = "success"
    stats: ResultStats = Field(default_factory=ResultStats)


GeminiEvent = Annotated[Union[Init, Message, ToolUse, ToolResult, Result], Field(discriminator="type")]
_EVENTS: TypeAdapter[Any] = TypeAdapter(GeminiEvent)


class ModelTokens(VendorModel):
    prompt: int = 0
    candidates: int = 0


class ModelStats(VendorModel):
    tokens: ModelTokens = Field(default_factory=ModelTokens)


class ResponseStats(VendorModel):
    models: Dict[str, ModelStats] = Field(default_factory=dict)


class Response(VendorModel):
    """Single document printed by ``--output-format json``."""

    response: Optional[str] = None
    stats: ResponseStats = Field(default_factory=ResponseStats)


class GeminiNormalizer(CliStreamNormalizer):
    vendor = "gemini"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._tool_counter = 0

    def decode(self, payload: Mapping[str, Any]) -> Any | None:
        if "type" not in payload and "response" in payload:
            return validate_record(_RESPONSE, payload, source=self._settings.display_name)
        return validate_record(_EVENTS, payload, source=self._settings.display_name)

    def handle(self, event: Any) -> list[StreamEvent]:
        if isinstance(event, Init):
            LOGGER.info("Gemini CLI session initialized: %s (model=%s)", event.session_id, event.model)
            return self._thinking()
        if isinstance(event, Message):
            if event.role != "assistant":
                return []
            if event.delta:
                return self._assistant_cumulative(event.content)
            return self._assistant_delta(event.content)
        if isinstance(event, ToolUse):
            return self._start_tool(self._tool_key(event.tool_id), event.tool_name, arguments=event.parameters)
        if isinstance(event, ToolResult):
            return self._handle_tool_result(event)
        if isinstance(event, Result):
            return self._handle_result(event)
        if isinstance(event, Response):
            return self._handle_response(event)
        return []

    def _tool_key(self, tool_id: str | None) -> str:
        if tool_id:
            return tool_id
        self._tool_counter += 1
        return f"tool-{self._tool_counter}"

    def _handle_tool_result(self, event: ToolResult) -> list[StreamEvent]:
        call_id = event.tool_id
        if not call_id:
            # without an id the result belongs to the oldest pending tool
            pending = self.pending_tools
            call_id = pending[0] if pending else self._tool_key(None)
        if event.status == "success":
            return self._complete_tool(call_id, output=event.output)
        return self._fail_tool(call_id, error=event.error)

    def _handle_result(self, event: Result) -> list[StreamEvent]:
        if event.status == "error":
            return [self._fail(f"{self._settings.display_name} returned an error", kind="protocol")]
        self._override_usage(event.stats.input_tokens, event.stats.output_tokens)
        self._mark_resumable()
        return self._finish("stop")

    def _handle_response(self, event: Response) -> list[StreamEvent]:
        prompt_tokens = sum(stats.tokens.prompt for stats in event.stats.models.values())
        candidate_tokens = sum(stats.tokens.candidates for stats in event.stats.models.values())
        self._override_usage(prompt_tokens, candidate_tokens)
        events = self._assistant_delta(event.response or "")
        self._mark_resumable()
        return [*events, *self._finish("stop")]

    def _mark_resumable(self) -> None:
        if self._session.capture(RESUME_LATEST):
            LOGGER.info("Marked Gemini CLI session as initialized: %s", self._session.key)


_RESPONSE: TypeAdapter[Any] = TypeAdapter(Response)


class GeminiCliProvider(CliProvider):
    """Run prompts through ``gemini -p``."""

    vendor = "gemini_cli"
    normalizer_class = GeminiNormalizer

    def build_args(
        self,
        *,
        model: str | None,
        prompt: str,
        token: str | None,
        buffered: bool,
    ) -> List[str]:
        args = ["--output-format", "json" if buffered else "stream-json", "--yolo"]
        if token:
            args.extend(["--resume", RESUME_LATEST])
        args.extend(["-p", prompt])
        if model:
            args.extend(["--model", model])
        return args

    def list_models(self) -> LocalModelList:
        return build_catalog(self.vendor, GEMINI_CLI_MODELS)
