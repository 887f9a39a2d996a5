"""Pydantic base for vendor wire schemas."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, TypeAdapter, ValidationError

LOGGER = logging.getLogger(__name__)


class VendorModel(BaseModel):
    """Lenient, immutable view of one vendor JSON object.

    Vendors add fields between releases, so unknown keys are ignored rather
    than rejected.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


def _stringify(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, default=str)


# Tool payloads are usually strings but some releases send structured JSON.
LooseText = Annotated[Optional[str], BeforeValidator(_stringify)]


def validate_record(adapter: TypeAdapter[Any], payload: Mapping[str, Any], *, source: str) -> Any | None:
    """Validate ``payload`` against a tagged union, or return ``None``."""

    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        LOGGER.debug(
            "Unrecognized %s record type=%r: %s",
            source,
            payload.get("type"),
            exc.errors(include_url=False)[:1],
        )
        return None
