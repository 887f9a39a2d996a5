"""Look up vendor providers by name."""

from __future__ import annotations

from typing import Any

from .core.adapters.gemini import GeminiCliProvider
from .core.adapters.letta import LettaProvider
from .core.adapters.opencode import OpenCodeProvider
from .core.adapters.provider import CliProvider
from .io.catalog import LocalModelList

PROVIDERS: dict[str, type[CliProvider]] = {
    OpenCodeProvider.vendor: OpenCodeProvider,
    GeminiCliProvider.vendor: GeminiCliProvider,
    LettaProvider.vendor: LettaProvider,
}

ALIASES = {
    "gemini": GeminiCliProvider.vendor,
    "gemini-cli": GeminiCliProvider.vendor,
    "letta-code": LettaProvider.vendor,
}


def resolve_name(name: str) -> str:
    """Return the canonical provider name for ``name`` or one of its aliases."""

    key = name.strip().lower()
    key = ALIASES.get(key, key)
    if key not in PROVIDERS:
        supported = ", ".join(sorted(PROVIDERS))
        msg = f"unknown provider {name!r}. Supported: {supported}"
        raise ValueError(msg)
    return key


def available_providers() -> tuple[str, ...]:
    return tuple(PROVIDERS)


def create_provider(name: str, **options: Any) -> CliProvider:
    """Instantiate the provider registered as ``name``.

    ``options`` are forwarded to the provider constructor, e.g. ``model``,
    ``working_directory``, ``settings`` or ``check_available``.
    """

    return PROVIDERS[resolve_name(name)](**options)


def list_local_models(name: str, **options: Any) -> LocalModelList:
    """Answer the local model list query for ``name``.

    Raises :class:`CliUnavailableError` when the vendor CLI is not installed.
    """

    return create_provider(name, **options).list_models()
