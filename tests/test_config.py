from __future__ import annotations

import pytest

from clistream.config import DEFAULT_BANNER_PREFIXES, CliSettings, known_vendors


def test_vendor_defaults() -> None:
    opencode = CliSettings.for_vendor("opencode", environ={})
    gemini = CliSettings.for_vendor("gemini_cli", environ={})
    letta = CliSettings.for_vendor("letta", environ={})

    assert opencode.executable == "opencode"
    assert opencode.tool_input_limit == 200
    assert opencode.tool_output_limit == 1000
    assert gemini.executable == "gemini"
    assert gemini.default_model == "auto"
    assert letta.executable == "letta"
    assert letta.tool_input_limit == 500
    assert letta.banner_prefixes == DEFAULT_BANNER_PREFIXES
    assert set(known_vendors()) == {"opencode", "gemini_cli", "letta"}


@pytest.mark.parametrize(
    ("vendor", "variable"),
    [("opencode", "OPENCODE_PATH"), ("gemini_cli", "GEMINI_CLI_PATH"), ("letta", "LETTA_PATH")],
)
def test_environment_overrides_executable(vendor: str, variable: str) -> None:
    settings = CliSettings.for_vendor(vendor, environ={variable: "/opt/bin/tool"})

    assert settings.executable == "/opt/bin/tool"


def test_process_environment_is_used_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LETTA_PATH", "/usr/local/bin/letta-dev")

    assert CliSettings.for_vendor("letta").executable == "/usr/local/bin/letta-dev"


def test_explicit_overrides_win_and_are_validated() -> None:
    settings = CliSettings.for_vendor("opencode", environ={"OPENCODE_PATH": "/x"}, executable="/y", show_thinking=False)

    assert settings.executable == "/y"
    assert not settings.show_thinking
    assert settings.with_overrides(tool_output_limit=50).tool_output_limit == 50

    with pytest.raises(ValueError):
        CliSettings.for_vendor("opencode", environ={}, tool_output_limit=0)
    with pytest.raises(ValueError):
        CliSettings(vendor="custom", executable="  ")
    with pytest.raises(ValueError, match="unknown vendor"):
        CliSettings.for_vendor("claude", environ={})


def test_resolve_model_treats_auto_as_vendor_default() -> None:
    gemini = CliSettings.for_vendor("gemini_cli", environ={})
    opencode = CliSettings.for_vendor("opencode", environ={})

    assert gemini.resolve_model(None) is None
    assert gemini.resolve_model("auto") is None
    assert gemini.resolve_model("gemini-2.5-pro") == "gemini-2.5-pro"
    assert opencode.resolve_model("") is None
    assert opencode.resolve_model("anthropic/claude-sonnet-4") == "anthropic/claude-sonnet-4"
    assert CliSettings(vendor="custom", executable="x").display_name == "custom"
