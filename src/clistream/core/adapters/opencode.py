"""OpenCode CLI adapter (``opencode run --format json``).

OpenCode reports the assistant text cumulatively: every ``text`` record
carries the full text of its part so far. Tool calls arrive as ``tool_use``
records whose state moves from ``pending``/``running`` to ``completed`` or
``error``. A ``step_finish`` with reason ``tool-calls`` only ends one
agent step; the call ends at the ``step_finish`` with reason ``stop``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, model_validator

from ...io.catalog import LocalModelList, parse_opencode_models
from ..errors import AdapterError
from . import probe
from .narration import THINKING_TEXT
from .normalizer import CliStreamNormalizer
from .provider import CliProvider
from .schema import LooseText, VendorModel, validate_record
from .stream import StreamEvent

LOGGER = logging.getLogger(__name__)


class _OpenCodeRecord(VendorModel):
    session_id: Optional[str] = Field(None, alias="sessionID")


class StepStartPart(VendorModel):
    id: Optional[str] = None
    message_id: Optional[str] = Field(None, alias="messageID")


class StepStart(_OpenCodeRecord):
    type: Literal["step_start"]
    part: StepStartPart = Field(default_factory=StepStartPart)


class TextPart(VendorModel):
    id: Optional[str] = None
    text: str = ""


class Text(_OpenCodeRecord):
    type: Literal["text"]
    part: TextPart


class ToolState(VendorModel):
    status: Literal["pending", "running", "completed", "error"]
    input: Optional[Dict[str, Any]] = None
    output: LooseText = None
    error: LooseText = None
    title: Optional[str] = None


class ToolPart(VendorModel):
    call_id: str = Field(..., alias="callID")
    tool: str
    state: ToolState


class ToolUse(_OpenCodeRecord):
    type: Literal["tool_use"]
    part: ToolPart


class Tokens(VendorModel):
    input: int = 0
    output: int = 0
    reasoning: int = 0


class StepFinishPart(VendorModel):
    reason: str = "stop"
    tokens: Tokens = Field(default_factory=Tokens)


class StepFinish(_OpenCodeRecord):
    type: Literal["step_finish"]
    part: StepFinishPart = Field(default_factory=StepFinishPart)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_fields(cls, data: Any) -> Any:
        # older releases put reason/tokens on the record itself
        if isinstance(data, Mapping) and "part" not in data:
            flat = {key: data[key] for key in ("reason", "tokens") if key in data}
            if flat:
                return {**data, "part": flat}
        return data


class ErrorData(VendorModel):
    message: Optional[str] = None


class ErrorDetail(VendorModel):
    name: str = "UnknownError"
    data: Optional[ErrorData] = None


class Error(_OpenCodeRecord):
    type: Literal["error"]
    error: ErrorDetail = Field(default_factory=ErrorDetail)

    @property
    def message(self) -> str:
        if self.error.data is not None and self.error.data.message:
            return self.error.data.message
        return self.error.name


OpenCodeEvent = Annotated[Union[StepStart, Text, ToolUse, StepFinish, Error], Field(discriminator="type")]
_EVENTS: TypeAdapter[Any] = TypeAdapter(OpenCodeEvent)


class OpenCodeNormalizer(CliStreamNormalizer):
    vendor = "opencode"
    thinking_text = f"\n{THINKING_TEXT}"

    def decode(self, payload: Mapping[str, Any]) -> Any | None:
        return validate_record(_EVENTS, payload, source=self._settings.display_name)

    def session_id_of(self, event: Any) -> str | None:
        return event.session_id

    def handle(self, event: Any) -> list[StreamEvent]:
        if isinstance(event, StepStart):
            LOGGER.debug("OpenCode step started: %s", event.part.message_id)
            return self._thinking()
        if isinstance(event, Text):
            return self._assistant_cumulative(event.part.text, segment=event.part.id)
        if isinstance(event, ToolUse):
            return self._handle_tool(event.part)
        if isinstance(event, StepFinish):
            tokens = event.part.tokens
            self._add_usage(tokens.input, tokens.output)
            if event.part.reason == "stop":
                return self._finish("stop")
            return []
        if isinstance(event, Error):
            return [self._fail(event.message, kind="protocol")]
        return []

    def _handle_tool(self, part: ToolPart) -> list[StreamEvent]:
        state = part.state
        if state.status in ("pending", "running"):
            return self._start_tool(part.call_id, part.tool, title=state.title, arguments=state.input)
        if state.status == "completed":
            return self._complete_tool(part.call_id, output=state.output, title=state.title or part.tool)
        return self._fail_tool(part.call_id, error=state.error, name=part.tool)


class OpenCodeProvider(CliProvider):
    """Run prompts through ``opencode run``."""

    vendor = "opencode"
    normalizer_class = OpenCodeNormalizer

    def build_args(
        self,
        *,
        model: str | None,
        prompt: str,
        token: str | None,
        buffered: bool,
    ) -> List[str]:
        # OpenCode has a single JSON event format for both modes
        args = ["run", "--format", "json"]
        if model:
            args.extend(["-m", model])
        if token:
            args.extend(["-s", token])
        args.append(prompt)
        return args

    def list_models(self) -> LocalModelList:
        try:
            output = probe.run_command(
                self._settings.executable,
                ["models"],
                timeout=self._settings.version_timeout,
            )
        except AdapterError as exc:
            msg = f"Failed to fetch OpenCode models. Is {self._settings.display_name} configured?"
            raise AdapterError(msg) from exc

        models = parse_opencode_models(output, provider=self.vendor)
        LOGGER.info("Found %d models for %s", len(models.models), self._settings.display_name)
        return models
