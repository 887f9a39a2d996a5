"""Test harness utilities for adapter validation."""

from .adapter_harness import BaseEvent, canonical, collect, collect_async, feed, text_of

__all__ = [
    "BaseEvent",
    "canonical",
    "collect",
    "collect_async",
    "feed",
    "text_of",
]
