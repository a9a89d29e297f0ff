"""Custom exception hierarchy for speedwatch."""

from __future__ import annotations


class SpeedWatchError(Exception):
    """Base exception for all speedwatch errors."""


class SpeedWatchConfigError(SpeedWatchError):
    """Invalid or missing configuration."""


class LocationSourceError(SpeedWatchError):
    """Location source failure (network, handshake, unreadable log)."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
    ) -> None:
        self.endpoint = endpoint
        super().__init__(message)


class MonitorStateError(SpeedWatchError):
    """Monitor used outside its lifecycle (started twice, used after stop)."""
