"""Providers that expose a vendor CLI as a streaming language model."""

from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, List

from ...config import CliSettings
from ...io.catalog import LocalModelList
from ..errors import (
    AdapterError,
    CliAbortedError,
    CliExitError,
    CliProtocolError,
    CliUnavailableError,
)
from ..prompt import Prompt, flatten_prompt
from ..session import CallContext, SessionBinding, SessionStore
from . import probe
from .base import GenerateResult, ModelAdapter
from .normalizer import CliStreamNormalizer
from .process import CliProcess, LaunchSpec, ProcessMessage, SpawnFailure
from .stream import BaseStreamIterator, ErrorEvent, FinishEvent, StreamEvent, TextDeltaEvent

LOGGER = logging.getLogger(__name__)


class CliProvider(abc.ABC):
    """Factory of language models backed by one vendor CLI.

    The provider owns the session store and the default call context.
    ``set_working_directory`` and ``set_session_key`` only change those
    defaults; every call snapshots them when it starts.
    """

    vendor: ClassVar[str]
    normalizer_class: ClassVar[type[CliStreamNormalizer]]

    def __init__(
        self,
        *,
        settings: CliSettings | None = None,
        model: str | None = None,
        working_directory: str | Path | None = None,
        session_key: str | None = None,
        environ: Mapping[str, str] | None = None,
        check_available: bool = True,
    ) -> None:
        self._settings = settings or CliSettings.for_vendor(self.vendor, environ=environ)
        self._default_model = model
        self._sessions = SessionStore(self.vendor)
        self._context = CallContext(
            working_directory=Path(working_directory) if working_directory is not None else None,
            session_key=session_key,
        )

        if check_available and not self.is_available():
            msg = f"{self._settings.display_name} is not installed. {self._settings.install_hint}".strip()
            raise CliUnavailableError(msg)

    def __call__(self, model_id: str | None = None) -> CliLanguageModel:
        return CliLanguageModel(self, model_id or self._default_model)

    @property
    def settings(self) -> CliSettings:
        return self._settings

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def context(self) -> CallContext:
        """Defaults snapshotted by calls that do not pass a context."""

        return self._context

    def set_working_directory(self, path: str | Path | None) -> None:
        self._context = CallContext(
            working_directory=Path(path) if path is not None else None,
            session_key=self._context.session_key,
        )
        if path is not None:
            LOGGER.info("%s working directory set to: %s", self._settings.display_name, path)

    def set_session_key(self, key: str | None) -> None:
        self._context = CallContext(working_directory=self._context.working_directory, session_key=key)
        if key is not None:
            LOGGER.info(
                "%s session key set to: %s (resume=%s)",
                self._settings.display_name,
                key,
                key in self._sessions,
            )

    def clear_session(self, key: str) -> bool:
        return self._sessions.clear(key)

    def session_token(self, key: str) -> str | None:
        return self._sessions.get(key)

    def is_available(self) -> bool:
        return probe.is_available(self._settings.executable, timeout=self._settings.version_timeout)

    def get_version(self) -> str | None:
        return probe.get_version(self._settings.executable, timeout=self._settings.version_timeout)

    @abc.abstractmethod
    def list_models(self) -> LocalModelList:
        """Return the models this vendor can run."""

    @abc.abstractmethod
    def build_args(
        self,
        *,
        model: str | None,
        prompt: str,
        token: str | None,
        buffered: bool,
    ) -> List[str]:
        """Return the argument vector for one call, without the executable."""

    def create_normalizer(self, session: SessionBinding, *, buffered: bool) -> CliStreamNormalizer:
        return self.normalizer_class(settings=self._settings, session=session, buffered=buffered)

    def prepare_call(
        self,
        model_id: str | None,
        prompt: Prompt,
        *,
        context: CallContext | None,
        buffered: bool,
    ) -> tuple[LaunchSpec, CliStreamNormalizer]:
        """Snapshot the call context and build the launch spec and normalizer."""

        call = context or self._context
        session = self._sessions.bind(call.session_key)
        model = self._settings.resolve_model(model_id)
        text = flatten_prompt(prompt)
        args = self.build_args(model=model, prompt=text, token=session.token, buffered=buffered)
        spec = LaunchSpec.build(self._settings.executable, args, cwd=call.working_directory)

        if session.token is not None:
            LOGGER.info("Continuing %s session: %s", self._settings.display_name, session.token)
        LOGGER.info(
            "%s %s with model: %s, cwd: %s",
            self._settings.display_name,
            "generate" if buffered else "stream",
            model or "default",
            spec.resolved_cwd(),
        )
        return spec, self.create_normalizer(session, buffered=buffered)


async def _next_message(process: CliProcess, abort_signal: asyncio.Event | None) -> ProcessMessage | None:
    """Return the next process message, or ``None`` once ``abort_signal`` fires."""

    if abort_signal is None:
        return await process.next_message()
    if abort_signal.is_set():
        return None

    receive = asyncio.ensure_future(process.next_message())
    aborted = asyncio.ensure_future(abort_signal.wait())
    try:
        await asyncio.wait({receive, aborted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        aborted.cancel()
    if not receive.done():
        # the queued message stays in the channel
        receive.cancel()
        return None
    return receive.result()


class CliLanguageModel(ModelAdapter):
    """One model id of a :class:`CliProvider`."""

    def __init__(self, provider: CliProvider, model_id: str | None) -> None:
        self._provider = provider
        self._model_id = model_id

    @property
    def provider(self) -> str:
        return self._provider.vendor

    @property
    def model_id(self) -> str:
        return self._model_id or self._provider.settings.default_model or "default"

    async def generate(
        self,
        prompt: Prompt,
        /,
        *,
        abort_signal: asyncio.Event | None = None,
        context: CallContext | None = None,
    ) -> GenerateResult:
        settings = self._provider.settings
        spec, normalizer = self._provider.prepare_call(self._model_id, prompt, context=context, buffered=True)
        process = CliProcess(spec, abort_signal=abort_signal, kill_timeout=settings.kill_timeout)
        await process.start()

        completed = False
        try:
            while normalizer.terminal is None:
                message = await _next_message(process, abort_signal)
                if message is None:
                    process.abort()
                    raise CliAbortedError()
                await normalizer.normalize_chunk(message)
            completed = True
        finally:
            await process.aclose(grace=settings.close_grace if completed else 0.0)

        return self._result(normalizer, process)

    def stream(
        self,
        prompt: Prompt,
        /,
        *,
        abort_signal: asyncio.Event | None = None,
        context: CallContext | None = None,
    ) -> CliStreamIterator:
        spec, normalizer = self._provider.prepare_call(self._model_id, prompt, context=context, buffered=False)
        return CliStreamIterator(
            CliProcess(spec, abort_signal=abort_signal, kill_timeout=self._provider.settings.kill_timeout),
            normalizer,
            close_grace=self._provider.settings.close_grace,
        )

    def _result(self, normalizer: CliStreamNormalizer, process: CliProcess) -> GenerateResult:
        terminal = normalizer.terminal
        if isinstance(terminal, FinishEvent):
            return GenerateResult(text=normalizer.text, finish_reason=terminal.reason, usage=normalizer.usage)

        if not isinstance(terminal, ErrorEvent):
            msg = f"{self._provider.settings.display_name} produced no result"
            raise CliProtocolError(msg)

        if terminal.kind == "aborted":
            raise CliAbortedError()
        if terminal.kind == "exit_code":
            if normalizer.text:
                LOGGER.warning("%s; returning the text received before exit", terminal.message)
                return GenerateResult(text=normalizer.text, finish_reason="stop", usage=normalizer.usage)
            raise CliExitError(terminal.message, returncode=process.returncode)
        if terminal.kind == "protocol":
            raise CliProtocolError(terminal.message)
        raise AdapterError(terminal.message)


class CliStreamIterator(BaseStreamIterator):
    """Stream canonical events from one vendor process.

    The process is spawned lazily on the first ``__anext__`` call. Closing
    the iterator terminates the process if it is still running.
    """

    def __init__(
        self,
        process: CliProcess,
        normalizer: CliStreamNormalizer,
        *,
        close_grace: float = 0.0,
    ) -> None:
        super().__init__(normalizer)
        self._process = process
        self._close_grace = close_grace
        self._started = False

    @property
    def process(self) -> CliProcess:
        return self._process

    @property
    def normalizer(self) -> CliStreamNormalizer:
        return self._normalizer  # type: ignore[return-value]

    async def _get_next_chunk(self) -> Any:
        if not self._started:
            self._started = True
            try:
                await self._process.start()
            except AdapterError as exc:
                return SpawnFailure(message=str(exc))
        return await self._process.next_message()

    def _filter_events(self, events: List[StreamEvent]) -> List[StreamEvent]:
        if not self._process.aborted:
            return events
        return [event for event in events if not isinstance(event, TextDeltaEvent)]

    async def _on_close(self) -> None:
        await self._process.aclose(grace=self._close_grace if self._finalized else 0.0)
