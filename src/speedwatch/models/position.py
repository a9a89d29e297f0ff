"""Position sample and subscription settings models."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from speedwatch._constants import MPS_TO_KMH
from speedwatch.ingestion.normalize import safe_float
from speedwatch.models._base import SpeedWatchModel, Timestamp, is_negative


class AccuracyTier(StrEnum):
    """Requested positioning accuracy, coarsest first."""

    LOWEST = "lowest"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    BEST = "best"
    BEST_FOR_NAVIGATION = "best_for_navigation"


class LocationSettings(BaseModel):
    """Settings passed to :meth:`LocationSource.subscribe`.

    Parameters
    ----------
    accuracy : AccuracyTier
        Requested accuracy tier.
    distance_filter_m : float
        Minimum displacement in metres between two delivered fixes.
        ``0`` delivers every update regardless of displacement.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    accuracy: AccuracyTier = AccuracyTier.BEST_FOR_NAVIGATION
    distance_filter_m: float = Field(default=0.0, ge=0.0)


class PositionSample(SpeedWatchModel):
    """One position fix delivered by a location source.

    ``speed_mps`` is the instantaneous speed in metres per second as
    reported by the receiver. It can be negative (platforms report
    ``-1`` when no speed is available) or noisy near standstill; the
    evaluator's noise floor deals with both. Coordinates and accuracy
    figures are optional because not every relay sends them. A payload
    without a usable speed is not a fix and fails validation.
    """

    _SENTINEL_RULES: ClassVar[dict[str, Callable[..., bool]]] = {
        "accuracy": is_negative,
        "speed_accuracy": is_negative,
        "altitude_accuracy": is_negative,
    }

    speed_mps: float = Field(validation_alias=AliasChoices("speed_mps", "speed", "spd"))
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lon", "lng"))
    altitude: float | None = Field(default=None, validation_alias=AliasChoices("altitude", "alt"))
    accuracy: float | None = Field(default=None, validation_alias=AliasChoices("accuracy", "acc"))
    altitude_accuracy: float | None = Field(
        default=None,
        validation_alias=AliasChoices("altitude_accuracy", "altitudeAccuracy", "vac"),
    )
    speed_accuracy: float | None = Field(
        default=None,
        validation_alias=AliasChoices("speed_accuracy", "speedAccuracy"),
    )
    heading: float | None = Field(default=None, validation_alias=AliasChoices("heading", "cog", "bearing", "course"))
    timestamp: Timestamp = Field(default=None, validation_alias=AliasChoices("timestamp", "tst", "time"))

    @model_validator(mode="before")
    @classmethod
    def _speed_from_velocity(cls, values: Any) -> Any:
        # OwnTracks reports ``vel`` in km/h and no m/s speed.
        if not isinstance(values, dict):
            return values
        if any(safe_float(values.get(key)) is not None for key in ("speed_mps", "speed", "spd")):
            return values
        velocity = safe_float(values.get("vel"))
        if velocity is None:
            return values
        converted = dict(values)
        converted["speed_mps"] = velocity / MPS_TO_KMH
        converted.setdefault("raw", dict(values))
        return converted

    @field_validator("speed_mps", mode="before")
    @classmethod
    def _coerce_speed(cls, value: Any) -> float:
        parsed = safe_float(value)
        if parsed is None:
            raise ValueError(f"speed is not a number: {value!r}")
        return parsed

    @field_validator(
        "latitude",
        "longitude",
        "altitude",
        "accuracy",
        "altitude_accuracy",
        "speed_accuracy",
        "heading",
        mode="before",
    )
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def has_coordinates(self) -> bool:
        """Whether both latitude and longitude are known."""
        return self.latitude is not None and self.longitude is not None
