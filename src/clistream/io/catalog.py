"""Schemas for the local model list each vendor answers."""

from __future__ import annotations

from collections.abc import Iterable
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LocalModel(BaseModel):
    """One model a vendor CLI can run."""

    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    model_name: str = Field(..., min_length=1, description="Identifier passed to the CLI's model flag.")
    display_name: str = Field(..., min_length=1, description="Human readable label.")
    provider: str = Field(..., min_length=1, description="Registry name of the vendor.")


class LocalModelList(BaseModel):
    """Response of a local model list query."""

    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    models: List[LocalModel] = Field(default_factory=list, description="Models in catalog order.")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)

    def names(self) -> list[str]:
        return [model.model_name for model in self.models]


def build_catalog(provider: str, entries: Iterable[tuple[str, str]]) -> LocalModelList:
    return LocalModelList(
        models=[LocalModel(model_name=name, display_name=label, provider=provider) for name, label in entries]
    )


def title_case_model(model: str) -> str:
    """``claude-sonnet-4.5`` -> ``Claude Sonnet 4 5``."""

    words = model.replace("-", " ").replace(".", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def parse_opencode_models(output: str, *, provider: str = "opencode") -> LocalModelList:
    """Parse the ``provider/model`` lines printed by ``opencode models``.

    OpenCode's own ``opencode/`` entries are skipped, as are lines without
    a provider prefix.
    """

    models: list[LocalModel] = []
    for line in output.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("opencode/"):
            continue
        upstream, _, model = entry.partition("/")
        if not upstream or not model:
            continue
        models.append(
            LocalModel(
                model_name=entry,
                display_name=f"{title_case_model(model)} ({upstream})",
                provider=provider,
            )
        )
    return LocalModelList(models=models)


GEMINI_CLI_MODELS = (
    ("gemini-3-pro-preview", "Gemini 3 Pro Preview"),
    ("gemini-2.5-pro", "Gemini 2.5 Pro"),
    ("gemini-2.5-flash", "Gemini 2.5 Flash"),
    ("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite"),
)

LETTA_MODELS = (
    ("auto", "Auto (Default)"),
    ("opus", "Claude Opus 4.5"),
    ("opus-4.1", "Claude Opus 4.1"),
    ("sonnet-4.5", "Claude Sonnet 4.5"),
    ("sonnet-4.5-no-reasoning", "Claude Sonnet 4.5 (No Reasoning)"),
    ("haiku", "Claude Haiku 4.5"),
    ("gpt-5-codex", "GPT-5 Codex"),
    ("gpt-5.2-medium", "GPT-5.2 (Medium)"),
    ("gpt-5.2-high", "GPT-5.2 (High)"),
    ("gpt-5.1-medium", "GPT-5.1 (Medium)"),
    ("gpt-5.1-high", "GPT-5.1 (High)"),
    ("gpt-5.1-codex-medium", "GPT-5.1 Codex (Medium)"),
    ("gpt-5.1-codex-high", "GPT-5.1 Codex (High)"),
    ("gpt-5-medium", "GPT-5 (Medium)"),
    ("gpt-5-high", "GPT-5 (High)"),
    ("gpt-4.1", "GPT-4.1"),
    ("o4-mini", "O4 Mini"),
    ("gemini-3", "Gemini 3 Pro"),
    ("gemini-pro", "Gemini 2.5 Pro"),
    ("gemini-flash", "Gemini 2.5 Flash"),
    ("deepseek-chat-v3.1", "DeepSeek Chat v3.1"),
    ("kimi-k2", "Kimi K2"),
)
