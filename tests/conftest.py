from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.fixtures.fake_cli import FakeCli, write_fake_cli  # noqa: E402


@pytest.fixture
def fake_cli(tmp_path: Path) -> Callable[..., FakeCli]:
    """Factory writing fake vendor executables into a per-test directory."""

    def factory(**options: Any) -> FakeCli:
        return write_fake_cli(tmp_path / "bin", **options)

    return factory


@pytest.fixture(autouse=True)
def _isolate_vendor_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real executable overrides from leaking into tests."""

    for name in ("OPENCODE_PATH", "GEMINI_CLI_PATH", "LETTA_PATH"):
        monkeypatch.delenv(name, raising=False)
