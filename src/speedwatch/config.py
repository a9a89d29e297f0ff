"""Configuration for speedwatch monitors and location relays."""

from __future__ import annotations

import dataclasses
import math
import os
from typing import Any

from speedwatch._constants import DEFAULT_SPEED_LIMIT_KMH, NOISE_FLOOR_KMH, SPEED_LIMIT_OPTIONS
from speedwatch.exceptions import SpeedWatchConfigError
from speedwatch.models.position import AccuracyTier, LocationSettings


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env_key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise SpeedWatchConfigError(f"{env_key} must be a number, got {value!r}") from exc


def _env_int(env_key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise SpeedWatchConfigError(f"{env_key} must be an integer, got {value!r}") from exc


def _parse_options(env_key: str, value: str) -> tuple[float, ...]:
    parts = [part.strip() for part in value.split(",") if part.strip()]
    return tuple(_env_float(env_key, part) for part in parts)


@dataclasses.dataclass(frozen=True)
class MonitorConfig:
    """Monitor configuration.

    Parameters
    ----------
    default_speed_limit_kmh : float
        Limit selected when the monitor starts. Must be one of
        ``speed_limit_options``.
    speed_limit_options : tuple of float
        Limits the user can pick from, in km/h.
    noise_floor_kmh : float
        Converted speeds strictly below this are reported as ``0``.
    accuracy : AccuracyTier
        Accuracy tier requested from the location source.
    distance_filter_m : float
        Minimum displacement between delivered fixes. ``0`` delivers
        every update.
    """

    default_speed_limit_kmh: float = DEFAULT_SPEED_LIMIT_KMH
    speed_limit_options: tuple[float, ...] = SPEED_LIMIT_OPTIONS
    noise_floor_kmh: float = NOISE_FLOOR_KMH
    accuracy: AccuracyTier = AccuracyTier.BEST_FOR_NAVIGATION
    distance_filter_m: float = 0.0

    def __post_init__(self) -> None:
        if not self.speed_limit_options:
            raise SpeedWatchConfigError("speed_limit_options must not be empty")
        if any(not math.isfinite(option) or option < 0 for option in self.speed_limit_options):
            raise SpeedWatchConfigError(f"speed limit options must be non-negative: {self.speed_limit_options}")
        if self.default_speed_limit_kmh not in self.speed_limit_options:
            raise SpeedWatchConfigError(
                f"default speed limit {self.default_speed_limit_kmh:g} is not one of {self.speed_limit_options}"
            )
        if not math.isfinite(self.noise_floor_kmh) or self.noise_floor_kmh < 0:
            raise SpeedWatchConfigError(f"noise_floor_kmh must be non-negative, got {self.noise_floor_kmh}")
        if self.distance_filter_m < 0:
            raise SpeedWatchConfigError(f"distance_filter_m must be non-negative, got {self.distance_filter_m}")

    @property
    def location_settings(self) -> LocationSettings:
        """Subscription settings derived from this configuration."""
        return LocationSettings(accuracy=self.accuracy, distance_filter_m=self.distance_filter_m)

    @classmethod
    def from_env(cls, **overrides: Any) -> MonitorConfig:
        """Create configuration from ``SPEEDWATCH_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        options_env = env.get("SPEEDWATCH_SPEED_LIMIT_OPTIONS")
        if options_env is not None:
            config_kwargs["speed_limit_options"] = _parse_options("SPEEDWATCH_SPEED_LIMIT_OPTIONS", options_env)

        _ENV_FLOAT_MAP = {
            "SPEEDWATCH_DEFAULT_SPEED_LIMIT": "default_speed_limit_kmh",
            "SPEEDWATCH_NOISE_FLOOR_KMH": "noise_floor_kmh",
            "SPEEDWATCH_DISTANCE_FILTER_M": "distance_filter_m",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_float(env_key, val)

        accuracy_env = env.get("SPEEDWATCH_ACCURACY")
        if accuracy_env is not None:
            try:
                config_kwargs["accuracy"] = AccuracyTier(accuracy_env.strip().lower())
            except ValueError as exc:
                raise SpeedWatchConfigError(f"Unknown SPEEDWATCH_ACCURACY {accuracy_env!r}") from exc

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class MqttRelayConfig:
    """MQTT broker carrying relayed position fixes.

    Parameters
    ----------
    host : str
        Broker host name. An empty host means the relay is disabled.
    port : int
        Broker port.
    topic : str
        Topic the position fixes are published on. Wildcards are allowed.
    username : str or None
        Broker user name.
    password : str or None
        Broker password.
    tls : bool
        Connect with TLS using the system trust store.
    keepalive : int
        MQTT keepalive in seconds.
    client_id : str
        MQTT client identifier. Empty lets the broker assign one.
    connect_timeout : float
        Seconds to wait for the broker's CONNACK.
    """

    host: str = ""
    port: int = 1883
    topic: str = "owntracks/+/+"
    username: str | None = None
    password: str | None = None
    tls: bool = False
    keepalive: int = 60
    client_id: str = ""
    connect_timeout: float = 10.0

    @classmethod
    def from_env(cls, **overrides: Any) -> MqttRelayConfig:
        """Create configuration from ``SPEEDWATCH_MQTT_*`` environment variables."""
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SPEEDWATCH_MQTT_HOST": "host",
            "SPEEDWATCH_MQTT_TOPIC": "topic",
            "SPEEDWATCH_MQTT_USERNAME": "username",
            "SPEEDWATCH_MQTT_PASSWORD": "password",
            "SPEEDWATCH_MQTT_CLIENT_ID": "client_id",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port_env = env.get("SPEEDWATCH_MQTT_PORT")
        if port_env is not None and "port" not in overrides:
            config_kwargs["port"] = _env_int("SPEEDWATCH_MQTT_PORT", port_env)

        keepalive_env = env.get("SPEEDWATCH_MQTT_KEEPALIVE")
        if keepalive_env is not None and "keepalive" not in overrides:
            config_kwargs["keepalive"] = _env_int("SPEEDWATCH_MQTT_KEEPALIVE", keepalive_env)

        timeout_env = env.get("SPEEDWATCH_MQTT_CONNECT_TIMEOUT")
        if timeout_env is not None and "connect_timeout" not in overrides:
            config_kwargs["connect_timeout"] = _env_float("SPEEDWATCH_MQTT_CONNECT_TIMEOUT", timeout_env)

        if "tls" not in overrides:
            config_kwargs["tls"] = _env_bool(env.get("SPEEDWATCH_MQTT_TLS"), False)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class WebSocketRelayConfig:
    """WebSocket endpoint pushing relayed position fixes.

    Parameters
    ----------
    url : str
        ``ws://`` or ``wss://`` URL. Empty means the relay is disabled.
    token : str or None
        Bearer token sent in the ``Authorization`` header.
    heartbeat : float
        Seconds between WebSocket pings.
    connect_timeout : float
        Seconds allowed for the opening handshake.
    """

    url: str = ""
    token: str | None = None
    heartbeat: float = 30.0
    connect_timeout: float = 10.0

    @classmethod
    def from_env(cls, **overrides: Any) -> WebSocketRelayConfig:
        """Create configuration from ``SPEEDWATCH_WS_*`` environment variables."""
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        url_env = env.get("SPEEDWATCH_WS_URL")
        if url_env is not None:
            config_kwargs["url"] = url_env
        token_env = env.get("SPEEDWATCH_WS_TOKEN")
        if token_env is not None:
            config_kwargs["token"] = token_env

        heartbeat_env = env.get("SPEEDWATCH_WS_HEARTBEAT")
        if heartbeat_env is not None and "heartbeat" not in overrides:
            config_kwargs["heartbeat"] = _env_float("SPEEDWATCH_WS_HEARTBEAT", heartbeat_env)

        timeout_env = env.get("SPEEDWATCH_WS_CONNECT_TIMEOUT")
        if timeout_env is not None and "connect_timeout" not in overrides:
            config_kwargs["connect_timeout"] = _env_float("SPEEDWATCH_WS_CONNECT_TIMEOUT", timeout_env)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
