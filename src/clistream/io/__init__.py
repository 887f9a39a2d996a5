"""Schemas exchanged with callers outside the adapters."""

from .catalog import LocalModel, LocalModelList, parse_opencode_models, title_case_model

__all__ = [
    "LocalModel",
    "LocalModelList",
    "parse_opencode_models",
    "title_case_model",
]
