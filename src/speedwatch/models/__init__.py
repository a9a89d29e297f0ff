"""Data models for position samples, permissions, and monitor state."""

from speedwatch.models._base import SpeedWatchModel, Timestamp, parse_timestamp
from speedwatch.models.permission import LocationPermission, PermissionStatus
from speedwatch.models.position import AccuracyTier, LocationSettings, PositionSample
from speedwatch.models.state import MonitorState

__all__ = [
    "AccuracyTier",
    "LocationPermission",
    "LocationSettings",
    "MonitorState",
    "PermissionStatus",
    "PositionSample",
    "SpeedWatchModel",
    "Timestamp",
    "parse_timestamp",
]
