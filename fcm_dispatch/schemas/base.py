"""Shared base for wire schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class WireModel(BaseModel):
    """Immutable schema whose unset optional fields never reach the wire."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        """Encode to the JSON object the endpoint expects, omitting absent fields."""
        return self.model_dump(mode="json", exclude_none=True)
