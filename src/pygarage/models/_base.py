"""Base model and timestamp helpers shared by every pygarage model.

Every model inherits from :class:`GarageBaseModel` which provides:

* ``alias_generator=to_camel`` so models serialize with the camelCase
  keys used by the audit log and remote stores (``auditId``,
  ``lastMaintenance``...), while Python code uses snake_case.
* ``populate_by_name=True`` so both spellings are accepted on input.
* ``frozen=True``: results and audit entries are immutable once built.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a store or log timestamp to an aware UTC datetime.

    Accepts datetimes, epoch numbers (seconds **or** milliseconds) and ISO
    strings, including SQLite's ``"YYYY-MM-DD HH:MM:SS"``. Naive values are
    taken to be UTC. ``None`` and ``""`` map to ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    raise ValueError(f"unsupported timestamp value: {value!r}")


GarageTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Optional timestamp coerced to an aware UTC datetime."""

UtcTimestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Required timestamp coerced to an aware UTC datetime."""


class GarageBaseModel(BaseModel):
    """Base for pygarage models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
