"""Base model for device payloads.

Every device event model inherits from :class:`UmbrellaBaseModel` which
provides:

* ``frozen=True`` so parsed events can be shared across handler tasks.
* A ``model_validator(mode="before")`` that strips firmware placeholder
  values (``""``, ``"--"``, NaN) so the field default is used.
* A ``raw`` dict that captures the original decoded payload.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Placeholder strings the umbrella firmware sends for "no reading".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})


class UmbrellaBaseModel(BaseModel):
    """Base for parsed device payloads."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original decoded payload."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip placeholder values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = UmbrellaBaseModel._clean_dict(values)
        # Keep an explicitly supplied raw (keyword construction) untouched.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
