"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Speed units  (m/s → km/h)
# ------------------------------------------------------------------

MPS_TO_KMH = 3.6

# Speeds below this are treated as GPS jitter at standstill.
NOISE_FLOOR_KMH = 1.0

# ------------------------------------------------------------------
# Speed-limit selection  (km/h)
# ------------------------------------------------------------------

SPEED_LIMIT_OPTIONS: tuple[float, ...] = (30.0, 50.0, 80.0, 100.0, 120.0)
DEFAULT_SPEED_LIMIT_KMH = 50.0

# Mean Earth radius used for the distance filter.
EARTH_RADIUS_M = 6_371_008.8


def mps_to_kmh(speed_mps: float) -> float:
    """Convert a speed in metres per second to kilometres per hour."""
    return speed_mps * MPS_TO_KMH


def validate_speed_limit(limit: float, options: tuple[float, ...] = SPEED_LIMIT_OPTIONS) -> float:
    """Return *limit* as a float if it is one of the selectable *options*.

    Raises :class:`ValueError` for any other value.
    """
    value = float(limit)
    if value not in options:
        choices = ", ".join(f"{option:g}" for option in options)
        raise ValueError(f"speed limit must be one of {choices} km/h, got {value:g}")
    return value
