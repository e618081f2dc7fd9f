"""Shared model configuration: snake_case in Python, camelCase on the wire."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def iso_timestamp(value: datetime | float | None = None) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix, as browsers emit it."""
    if value is None:
        value = datetime.now(timezone.utc)
    elif not isinstance(value, datetime):
        value = datetime.fromtimestamp(value, tz=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
