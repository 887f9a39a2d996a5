"""Synchronous probes run against a vendor executable."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence

from ..errors import AdapterError

LOGGER = logging.getLogger(__name__)


def run_command(executable: str, args: Sequence[str], *, timeout: float = 10.0) -> str:
    """Run ``executable`` with ``args`` and return its stdout.

    Raises :class:`AdapterError` when the command cannot be started, times
    out or exits unsuccessfully.
    """

    argv = [executable, *args]
    try:
        completed = subprocess.run(
            argv,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        msg = f"failed to run {' '.join(argv)}: {exc}"
        raise AdapterError(msg) from exc

    if completed.returncode != 0:
        detail = completed.stderr.strip() or f"exit code {completed.returncode}"
        msg = f"{' '.join(argv)} failed: {detail}"
        raise AdapterError(msg)
    return completed.stdout


def get_version(executable: str, *, timeout: float = 10.0) -> str | None:
    """Return the trimmed ``--version`` output, or ``None`` when unavailable."""

    try:
        output = run_command(executable, ["--version"], timeout=timeout)
    except AdapterError as exc:
        LOGGER.debug("Version probe failed: %s", exc)
        return None
    return output.strip()


def is_available(executable: str, *, timeout: float = 10.0) -> bool:
    return get_version(executable, timeout=timeout) is not None
