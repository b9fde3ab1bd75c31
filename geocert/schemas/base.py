"""Shared base for models exchanged with non-Python consumers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Model with snake_case attributes and camelCase wire names.

    Both spellings are accepted on input; ``to_wire`` emits camelCase
    and omits unset optionals.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FrozenWireModel(WireModel):
    """Immutable variant, for payloads that get signed."""
    model_config = ConfigDict(frozen=True)
