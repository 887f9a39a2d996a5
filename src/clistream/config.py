"""Settings shared by the vendor adapters and the command line tool."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

DEFAULT_BANNER_PREFIXES = ("[STARTUP]", "Loaded cached")

_VENDOR_DEFAULTS: dict[str, dict[str, Any]] = {
    "opencode": {
        "display_name": "OpenCode CLI",
        "executable": "opencode",
        "env_var": "OPENCODE_PATH",
        "install_hint": "Install it from: https://opencode.ai",
        "tool_input_limit": 200,
    },
    "gemini_cli": {
        "display_name": "Gemini CLI",
        "executable": "gemini",
        "env_var": "GEMINI_CLI_PATH",
        "install_hint": "Install it from: https://github.com/google-gemini/gemini-cli",
        "default_model": "auto",
    },
    "letta": {
        "display_name": "Letta CLI",
        "executable": "letta",
        "env_var": "LETTA_PATH",
        "install_hint": "Install it from: https://github.com/letta-ai/letta-code",
        "default_model": "auto",
        "tool_input_limit": 500,
    },
}


@dataclass(slots=True)
class CliSettings:
    """Tunables for one vendor CLI.

    Attributes
    ----------
    vendor:
        Registry name of the vendor (``opencode``, ``gemini_cli``, ``letta``).
    executable:
        Command used to launch the CLI. Looked up on ``PATH`` when it is not
        an absolute path.
    display_name:
        Human readable name used in log lines and error messages.
    env_var:
        Environment variable that overrides :attr:`executable`.
    install_hint:
        Appended to the "not installed" error.
    default_model:
        Model used when a call does not name one. ``None`` and ``"auto"``
        both leave the choice to the CLI.
    tool_input_limit:
        Tool arguments are shown only when their JSON form is shorter.
    tool_output_limit:
        Tool results are truncated to this many characters.
    show_thinking:
        Emit a "*Thinking...*" line when the vendor reports a new step.
    banner_prefixes:
        Output lines starting with these are dropped without logging.
    version_timeout:
        Seconds allowed for ``--version`` probes and model listing.
    close_grace:
        Seconds a process may take to exit on its own after the terminal
        event before it is terminated.
    kill_timeout:
        Seconds a terminated or aborted process may take to exit before it
        is killed.
    """

    vendor: str
    executable: str
    display_name: str = ""
    env_var: str | None = None
    install_hint: str = ""
    default_model: str | None = None
    tool_input_limit: int = 200
    tool_output_limit: int = 1000
    show_thinking: bool = True
    banner_prefixes: tuple[str, ...] = field(default=DEFAULT_BANNER_PREFIXES)
    version_timeout: float = 10.0
    close_grace: float = 2.0
    kill_timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.executable or not self.executable.strip():
            msg = "executable must not be empty"
            raise ValueError(msg)
        if self.tool_input_limit <= 0 or self.tool_output_limit <= 0:
            msg = "tool narration limits must be positive"
            raise ValueError(msg)
        if not self.display_name:
            self.display_name = self.vendor

    @classmethod
    def for_vendor(
        cls,
        vendor: str,
        *,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "CliSettings":
        """Build the default settings of ``vendor``.

        Parameters
        ----------
        vendor:
            One of the registered vendor names.
        environ:
            Environment used to resolve the executable override. Defaults to
            :data:`os.environ`.
        overrides:
            Field values replacing the vendor defaults.
        """

        try:
            defaults = dict(_VENDOR_DEFAULTS[vendor])
        except KeyError:
            supported = ", ".join(sorted(_VENDOR_DEFAULTS))
            msg = f"unknown vendor {vendor!r}. Supported: {supported}"
            raise ValueError(msg) from None

        env = os.environ if environ is None else environ
        env_var = defaults.get("env_var")
        if env_var and env.get(env_var):
            defaults["executable"] = env[env_var]

        defaults.update(overrides)
        return cls(vendor=vendor, **defaults)

    def with_overrides(self, **changes: Any) -> "CliSettings":
        return replace(self, **changes)

    def resolve_model(self, model_id: str | None) -> str | None:
        """Return the model to pass to the CLI, or ``None`` for its default."""

        model = model_id or self.default_model
        if not model or model == "auto":
            return None
        return model


def known_vendors() -> tuple[str, ...]:
    return tuple(_VENDOR_DEFAULTS)
