"""Startup permission gate for location sources."""

from __future__ import annotations

import logging

from speedwatch.models.permission import LocationPermission, PermissionStatus
from speedwatch.sources import LocationSource

_logger = logging.getLogger(__name__)


class PermissionGate:
    """Reduce a source's service and permission state to a :class:`PermissionStatus`.

    Policy, short-circuiting on the first failure:

    1. Location service disabled: ``SERVICE_DISABLED``, nothing is requested.
    2. Permission undetermined (or previously refused): request it once.
       Still undetermined or refused afterwards: ``DENIED``.
    3. Permanently refused: ``DENIED_FOREVER``.
    4. Otherwise ``GRANTED``.

    There are no retries. Every non-granted result is final for the session.
    """

    def __init__(self, source: LocationSource) -> None:
        self._source = source

    async def check_and_request(self) -> PermissionStatus:
        if not await self._source.is_service_enabled():
            _logger.info("Location service is disabled")
            return PermissionStatus.SERVICE_DISABLED

        permission = await self._source.get_permission_status()
        _logger.debug("Location permission on check: %s", permission)

        if permission in (LocationPermission.UNDETERMINED, LocationPermission.DENIED):
            permission = await self._source.request_permission()
            _logger.debug("Location permission after request: %s", permission)
            if permission in (LocationPermission.UNDETERMINED, LocationPermission.DENIED):
                _logger.info("Location permission denied")
                return PermissionStatus.DENIED

        if permission == LocationPermission.DENIED_FOREVER:
            _logger.info("Location permission permanently denied")
            return PermissionStatus.DENIED_FOREVER

        return PermissionStatus.GRANTED
