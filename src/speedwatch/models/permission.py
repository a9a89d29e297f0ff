"""Location permission enums."""

from __future__ import annotations

from enum import StrEnum


class LocationPermission(StrEnum):
    """Permission state as reported by a location source."""

    UNDETERMINED = "undetermined"
    DENIED = "denied"
    DENIED_FOREVER = "denied_forever"
    GRANTED = "granted"


class PermissionStatus(StrEnum):
    """Outcome of the startup permission check.

    ``UNKNOWN`` until the gate has run; afterwards frozen for the
    monitor's lifetime. Every value other than ``GRANTED`` is terminal
    and prevents the position subscription from starting.
    """

    UNKNOWN = "unknown"
    SERVICE_DISABLED = "service_disabled"
    DENIED = "denied"
    DENIED_FOREVER = "denied_forever"
    GRANTED = "granted"

    @property
    def is_terminal_failure(self) -> bool:
        return self not in (PermissionStatus.UNKNOWN, PermissionStatus.GRANTED)
