"""Session continuity between calls to the same vendor CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CallContext:
    """Per-call execution context.

    Attributes
    ----------
    working_directory:
        Directory the vendor process runs in. ``None`` means the current
        directory of this process.
    session_key:
        Opaque caller-chosen identifier of a conversation, for example
        ``"app-3-chat-12"``. ``None`` disables session continuation.
    """

    working_directory: Path | None = None
    session_key: str | None = None

    def with_overrides(
        self,
        *,
        working_directory: str | Path | None = None,
        session_key: str | None = None,
    ) -> CallContext:
        updated = self
        if working_directory is not None:
            updated = replace(updated, working_directory=Path(working_directory))
        if session_key is not None:
            updated = replace(updated, session_key=session_key)
        return updated


class SessionStore:
    """Map session keys to vendor continuation tokens.

    Entries never expire. A vendor that can only resume "the latest session
    in this directory" stores a marker token instead of an identifier.
    """

    def __init__(self, vendor: str) -> None:
        self._vendor = vendor
        self._tokens: dict[str, str] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, key: str | None) -> str | None:
        if key is None:
            return None
        return self._tokens.get(key)

    def remember(self, key: str, token: str) -> bool:
        """Store ``token`` unless ``key`` already has one."""

        if key in self._tokens:
            return False
        self._tokens[key] = token
        LOGGER.info("Stored %s session %s for key %s", self._vendor, token, key)
        return True

    def replace(self, key: str, token: str) -> None:
        previous = self._tokens.get(key)
        self._tokens[key] = token
        if previous != token:
            LOGGER.info("Replaced %s session for key %s: %s -> %s", self._vendor, key, previous, token)

    def clear(self, key: str) -> bool:
        removed = self._tokens.pop(key, None) is not None
        LOGGER.info("Cleared %s session for key %s", self._vendor, key)
        return removed

    def bind(self, key: str | None) -> SessionBinding:
        return SessionBinding(self, key)


class SessionBinding:
    """Session operations scoped to one call and one session key."""

    def __init__(self, store: SessionStore, key: str | None) -> None:
        self._store = store
        self._key = key
        self._token = store.get(key)
        self._captured = False

    @property
    def key(self) -> str | None:
        return self._key

    @property
    def token(self) -> str | None:
        """Continuation token known when the call started."""

        return self._token

    def capture(self, token: str | None) -> bool:
        """Remember the first identifier seen during this call.

        Identifiers reported later in the same call, such as those of
        sub-agent sessions, are ignored.
        """

        if self._key is None or not token or self._captured:
            return False
        self._captured = True
        return self._store.remember(self._key, token)

    def overwrite(self, token: str | None) -> None:
        if self._key is None or not token:
            return
        self._captured = True
        self._store.replace(self._key, token)
