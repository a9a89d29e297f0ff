"""speedwatch - Async live GPS speed monitor with a selectable speed-limit alert."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("speedwatch")
except PackageNotFoundError:
    __version__ = "0+local"
from speedwatch.config import MonitorConfig, MqttRelayConfig, WebSocketRelayConfig
from speedwatch.evaluator import SpeedEvaluator, filter_speed_kmh
from speedwatch.exceptions import (
    LocationSourceError,
    MonitorStateError,
    SpeedWatchConfigError,
    SpeedWatchError,
)
from speedwatch.models import (
    AccuracyTier,
    LocationPermission,
    LocationSettings,
    MonitorState,
    PermissionStatus,
    PositionSample,
)
from speedwatch.monitor import SpeedMonitor, run_monitor
from speedwatch.permission import PermissionGate
from speedwatch.presentation import ConsoleSurface, PresentationSurface, status_message
from speedwatch.sources import LocationSource, PositionSubscription

__all__ = [
    "__version__",
    "AccuracyTier",
    "ConsoleSurface",
    "LocationPermission",
    "LocationSettings",
    "LocationSource",
    "LocationSourceError",
    "MonitorConfig",
    "MonitorState",
    "MonitorStateError",
    "MqttRelayConfig",
    "PermissionGate",
    "PermissionStatus",
    "PositionSample",
    "PositionSubscription",
    "PresentationSurface",
    "SpeedEvaluator",
    "SpeedMonitor",
    "SpeedWatchConfigError",
    "SpeedWatchError",
    "WebSocketRelayConfig",
    "filter_speed_kmh",
    "run_monitor",
    "status_message",
]
