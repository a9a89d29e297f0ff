"""Location source interfaces and implementations.

A location source answers the service/permission queries used by the
:class:`~speedwatch.permission.PermissionGate` and pushes
:class:`~speedwatch.models.PositionSample` values to a callback once
subscribed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from speedwatch.models.permission import LocationPermission
from speedwatch.models.position import LocationSettings, PositionSample

SampleCallback = Callable[[PositionSample], None]


class PositionSubscription(Protocol):
    """Handle to a live position stream.

    ``cancel`` releases the underlying listener and is safe to call more
    than once. ``wait_closed`` returns once the stream has ended, either
    because it was cancelled or because the source ran out of fixes.
    """

    @property
    def is_active(self) -> bool: ...

    async def cancel(self) -> None: ...

    async def wait_closed(self) -> None: ...


class LocationSource(Protocol):
    """Structural interface for anything that can deliver position fixes.

    Having a protocol here makes it easy to pass test doubles while keeping
    the bundled relay implementations concrete.
    """

    async def is_service_enabled(self) -> bool: ...

    async def get_permission_status(self) -> LocationPermission: ...

    async def request_permission(self) -> LocationPermission: ...

    async def subscribe(self, settings: LocationSettings, on_sample: SampleCallback) -> PositionSubscription: ...


__all__ = [
    "LocationSource",
    "PositionSubscription",
    "SampleCallback",
]
