"""Exception types raised by clistream adapters."""

from __future__ import annotations


class AdapterError(RuntimeError):
    """Raised when an adapter cannot fulfil a request."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CliUnavailableError(AdapterError):
    """The vendor executable is missing or does not answer ``--version``."""


class CliSpawnError(AdapterError):
    """The vendor process could not be started."""


class CliProtocolError(AdapterError):
    """The vendor stream reported an explicit error status."""


class CliExitError(AdapterError):
    """The vendor process exited unsuccessfully without a protocol error."""

    def __init__(self, message: str, *, returncode: int | None) -> None:
        super().__init__(message)
        self.returncode = returncode


class CliAbortedError(AdapterError):
    """The caller cancelled the call before it completed."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)
