"""Base models for provider and store records.

Traccar speaks camelCase JSON; the Supabase tables use snake_case columns.
Two bases cover both:

* :class:`TraccarModel` maps camelCase keys to snake_case fields via
  ``alias_generator=to_camel``, drops ``null`` values so field defaults
  apply, and stashes the original record in ``raw``.
* :class:`StoreModel` validates snake_case rows as-is and coerces id
  columns (ints or UUIDs) to strings.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from crewmap.ingestion.normalize import normalize_device_id


class TraccarModel(BaseModel):
    """Base for Traccar REST/websocket records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original provider record."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop ``None`` values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        # Keep an explicitly passed raw= when constructing with kwargs.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned


class StoreModel(BaseModel):
    """Base for directory & trail store rows."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    _ID_FIELDS: ClassVar[tuple[str, ...]] = ()
    """Columns coerced to ``str`` before validation."""

    @model_validator(mode="before")
    @classmethod
    def _coerce_ids(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        id_fields: tuple[str, ...] = getattr(cls, "_ID_FIELDS", ())
        if not id_fields:
            return values
        coerced = dict(values)
        for key in id_fields:
            if key in coerced and coerced[key] is not None:
                coerced[key] = normalize_device_id(coerced[key])
        return coerced
