"""WebSocket relay location source.

The relay pushes one JSON position fix per text (or binary) frame. The
opening handshake doubles as the permission request: ``401``/``403``
responses mean the token was refused for good, any other ``4xx`` is a
plain denial.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

import aiohttp

from speedwatch.config import WebSocketRelayConfig
from speedwatch.exceptions import LocationSourceError
from speedwatch.ingestion.position import parse_position_payload
from speedwatch.models.permission import LocationPermission
from speedwatch.models.position import LocationSettings
from speedwatch.sources import SampleCallback
from speedwatch.sources._subscription import CallbackSubscription

_logger = logging.getLogger(__name__)

_FOREVER_STATUSES = frozenset({401, 403})


def permission_from_handshake_status(status: int) -> LocationPermission | None:
    """Map a refused handshake status; ``None`` means a server-side failure."""
    if status in _FOREVER_STATUSES:
        return LocationPermission.DENIED_FOREVER
    if 400 <= status < 500:
        return LocationPermission.DENIED
    return None


class _WebSocketSubscription(CallbackSubscription):
    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        settings: LocationSettings,
        on_sample: SampleCallback,
    ) -> None:
        super().__init__(settings, on_sample)
        self._ws = ws
        self._reader = asyncio.create_task(self._read(), name="speedwatch-ws-reader")

    async def _read(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    sample = parse_position_payload(msg.data)
                    if sample is not None:
                        self.deliver(sample)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.warning("WebSocket relay error: %s", self._ws.exception())
                    break
        finally:
            _logger.debug("WebSocket relay stream ended close_code=%s", self._ws.close_code)
            self.mark_closed()

    async def _release(self) -> None:
        self._reader.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        finally:
            await self._ws.close()


class WebSocketLocationSource:
    """Location source fed by a WebSocket relay.

    Usage::

        async with WebSocketLocationSource(WebSocketRelayConfig(url="wss://relay/ws")) as source:
            async with SpeedMonitor(source, surface) as monitor:
                await monitor.start()
                await monitor.wait_closed()
    """

    def __init__(
        self,
        config: WebSocketRelayConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._permission = LocationPermission.UNDETERMINED
        self._subscription: _WebSocketSubscription | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> WebSocketLocationSource:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel any subscription, close the socket and any owned HTTP session."""
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            await subscription.cancel()
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # LocationSource
    # ------------------------------------------------------------------

    async def is_service_enabled(self) -> bool:
        return bool(self._config.url.strip())

    async def get_permission_status(self) -> LocationPermission:
        return self._permission

    async def request_permission(self) -> LocationPermission:
        """Open the WebSocket and translate the handshake result into a permission."""
        if self._ws is not None and not self._ws.closed:
            return self._permission

        session = self._require_session()
        headers = {"Authorization": f"Bearer {self._config.token}"} if self._config.token else {}
        _logger.debug("WebSocket connect requested url=%s", self._config.url)
        try:
            self._ws = await asyncio.wait_for(
                session.ws_connect(self._config.url, headers=headers, heartbeat=self._config.heartbeat),
                timeout=self._config.connect_timeout,
            )
        except aiohttp.WSServerHandshakeError as exc:
            permission = permission_from_handshake_status(exc.status)
            if permission is None:
                raise LocationSourceError(
                    f"WebSocket relay handshake failed: HTTP {exc.status}",
                    endpoint=self._config.url,
                ) from exc
            _logger.warning("WebSocket relay refused connection: HTTP %s", exc.status)
            self._permission = permission
            return permission
        except (TimeoutError, aiohttp.ClientError) as exc:
            raise LocationSourceError(
                f"WebSocket relay unreachable: {exc!r}",
                endpoint=self._config.url,
            ) from exc

        self._permission = LocationPermission.GRANTED
        return self._permission

    async def subscribe(self, settings: LocationSettings, on_sample: SampleCallback) -> _WebSocketSubscription:
        ws = self._ws
        if ws is None or ws.closed or self._permission != LocationPermission.GRANTED:
            raise LocationSourceError(
                "WebSocket source is not connected; request permission first",
                endpoint=self._config.url,
            )
        if self._subscription is not None and self._subscription.is_active:
            raise LocationSourceError("WebSocket source already has an active subscription", endpoint=self._config.url)
        subscription = _WebSocketSubscription(ws, settings, on_sample)
        self._subscription = subscription
        _logger.debug("WebSocket relay subscribed accuracy=%s", settings.accuracy)
        return subscription

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise LocationSourceError(
                "Source not initialized. Use 'async with WebSocketLocationSource(...) as source:'",
                endpoint=self._config.url,
            )
        return self._http_session
