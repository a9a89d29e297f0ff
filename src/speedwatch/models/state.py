"""Derived monitor state."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field


class MonitorState(BaseModel):
    """Speed shown to the user and whether it exceeds the selected limit.

    ``is_speeding`` is computed from the two stored fields and cannot be
    set on its own. Equality with the limit is not speeding.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    current_speed_kmh: float = Field(default=0.0, ge=0.0)
    speed_limit_kmh: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_speeding(self) -> bool:
        return self.current_speed_kmh > self.speed_limit_kmh

    @property
    def display_speed(self) -> str:
        """Current speed rounded to whole km/h."""
        return f"{self.current_speed_kmh:.0f}"
