"""Drive command-line AI agents through one streaming protocol.

Each supported vendor CLI (OpenCode, Gemini CLI, Letta Code) prints its own
newline-delimited JSON events. The providers in this package spawn the CLI,
reassemble and decode its output, and normalize it into ``text-start``,
``text-delta``, ``text-end``, ``finish`` and ``error`` events.
"""

from __future__ import annotations

from .config import CliSettings
from .core.adapters import (
    CliLanguageModel,
    CliProvider,
    CliStreamIterator,
    ErrorEvent,
    FinishEvent,
    GenerateResult,
    GeminiCliProvider,
    LettaProvider,
    OpenCodeProvider,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    Usage,
)
from .core.errors import (
    AdapterError,
    CliAbortedError,
    CliExitError,
    CliProtocolError,
    CliSpawnError,
    CliUnavailableError,
)
from .core.prompt import flatten_prompt
from .core.session import CallContext
from .io.catalog import LocalModel, LocalModelList
from .registry import available_providers, create_provider, list_local_models

__all__ = [
    "AdapterError",
    "CallContext",
    "CliAbortedError",
    "CliExitError",
    "CliLanguageModel",
    "CliProtocolError",
    "CliProvider",
    "CliSettings",
    "CliSpawnError",
    "CliStreamIterator",
    "CliUnavailableError",
    "ErrorEvent",
    "FinishEvent",
    "GeminiCliProvider",
    "GenerateResult",
    "LettaProvider",
    "LocalModel",
    "LocalModelList",
    "OpenCodeProvider",
    "StreamEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "TextStartEvent",
    "Usage",
    "available_providers",
    "create_provider",
    "flatten_prompt",
    "list_local_models",
]

__version__ = "0.1.0"
