"""Relay payload parsing and delivery filtering."""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from pydantic import ValidationError

from speedwatch._constants import EARTH_RADIUS_M
from speedwatch._redact import redact_for_log
from speedwatch.models.position import PositionSample

_logger = logging.getLogger(__name__)

# OwnTracks publishes several message types on the same topic.
_NON_LOCATION_TYPES = frozenset({"transition", "waypoint", "waypoints", "card", "lwt", "status", "cmd"})


def parse_position_payload(payload: bytes | str | dict[str, Any]) -> PositionSample | None:
    """Parse one relayed position fix.

    Returns ``None`` (and logs at DEBUG) for anything that is not a
    position object: invalid JSON, non-object JSON, OwnTracks
    non-location messages, or values pydantic rejects.
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            _logger.debug("Position payload is not JSON: %s", redact_for_log(payload, max_string=64))
            return None
    if not isinstance(payload, dict):
        _logger.debug("Position payload is not an object: %s", type(payload).__name__)
        return None

    message_type = payload.get("_type")
    if isinstance(message_type, str) and message_type in _NON_LOCATION_TYPES:
        _logger.debug("Ignoring non-location message type=%s", message_type)
        return None

    try:
        return PositionSample.model_validate(payload)
    except ValidationError:
        _logger.debug("Position payload rejected: %s", redact_for_log(payload), exc_info=True)
        return None


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


class DistanceFilter:
    """Drop fixes closer than ``min_distance_m`` to the last delivered fix.

    A threshold of ``0`` passes everything. Fixes without coordinates are
    always delivered since their displacement cannot be measured.
    """

    def __init__(self, min_distance_m: float) -> None:
        self._min_distance_m = min_distance_m
        self._last: PositionSample | None = None

    def accept(self, sample: PositionSample) -> bool:
        if self._min_distance_m <= 0 or not sample.has_coordinates:
            return True
        last = self._last
        if last is not None and last.has_coordinates:
            assert last.latitude is not None and last.longitude is not None  # noqa: S101
            assert sample.latitude is not None and sample.longitude is not None  # noqa: S101
            moved = haversine_m(last.latitude, last.longitude, sample.latitude, sample.longitude)
            if moved < self._min_distance_m:
                return False
        self._last = sample
        return True
