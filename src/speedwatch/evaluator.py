"""Speed evaluation: unit conversion, noise floor, and limit comparison."""

from __future__ import annotations

import math

from speedwatch._constants import DEFAULT_SPEED_LIMIT_KMH, NOISE_FLOOR_KMH, mps_to_kmh
from speedwatch.models.state import MonitorState


def filter_speed_kmh(speed_mps: float, noise_floor_kmh: float = NOISE_FLOOR_KMH) -> float:
    """Convert *speed_mps* to km/h and clamp sub-threshold readings to zero.

    Negative readings, jitter below *noise_floor_kmh* and non-finite values
    all become ``0.0``. This is a hard threshold; no history is involved.
    """
    speed_kmh = mps_to_kmh(speed_mps)
    if not math.isfinite(speed_kmh) or speed_kmh < noise_floor_kmh:
        return 0.0
    return speed_kmh


class SpeedEvaluator:
    """Turns raw speed samples into :class:`MonitorState` values.

    Holds only the last filtered speed and the selected limit; both are
    overwritten on every call. Not thread-safe; callers deliver samples
    and limit changes from a single event loop.
    """

    def __init__(
        self,
        speed_limit_kmh: float = DEFAULT_SPEED_LIMIT_KMH,
        *,
        noise_floor_kmh: float = NOISE_FLOOR_KMH,
    ) -> None:
        self._speed_limit_kmh = float(speed_limit_kmh)
        self._noise_floor_kmh = noise_floor_kmh
        self._current_speed_kmh = 0.0

    @property
    def speed_limit_kmh(self) -> float:
        return self._speed_limit_kmh

    @property
    def current_speed_kmh(self) -> float:
        return self._current_speed_kmh

    @property
    def state(self) -> MonitorState:
        """State derived from the last sample and the current limit."""
        return MonitorState(
            current_speed_kmh=self._current_speed_kmh,
            speed_limit_kmh=self._speed_limit_kmh,
        )

    def on_sample(self, speed_mps: float) -> MonitorState:
        """Evaluate one speed sample in metres per second."""
        self._current_speed_kmh = filter_speed_kmh(speed_mps, self._noise_floor_kmh)
        return self.state

    def set_speed_limit(self, speed_limit_kmh: float) -> MonitorState:
        """Change the limit and re-evaluate the last known speed."""
        self._speed_limit_kmh = float(speed_limit_kmh)
        return self.state
