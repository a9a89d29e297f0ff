"""MQTT relay location source.

Position fixes are published by a phone or tracker (OwnTracks and similar
apps) to a broker topic. The paho-mqtt network loop runs in its own thread;
parsed fixes are handed to the asyncio loop with ``call_soon_threadsafe``.

The broker handshake doubles as the permission request: credentials the
broker rejects map to :attr:`LocationPermission.DENIED_FOREVER`, any other
refusal to :attr:`LocationPermission.DENIED`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from speedwatch.config import MqttRelayConfig
from speedwatch.exceptions import LocationSourceError
from speedwatch.ingestion.position import parse_position_payload
from speedwatch.models.permission import LocationPermission
from speedwatch.models.position import LocationSettings
from speedwatch.sources import SampleCallback
from speedwatch.sources._subscription import CallbackSubscription

_logger = logging.getLogger(__name__)

# CONNACK reason codes (MQTT v5 numbering; paho maps v3.1.1 codes onto them).
_RC_BAD_CREDENTIALS = 134
_RC_NOT_AUTHORIZED = 135
_RC_BANNED = 138
_CREDENTIAL_REJECTIONS = frozenset({_RC_BAD_CREDENTIALS, _RC_NOT_AUTHORIZED, _RC_BANNED})


def permission_from_connack(reason_code: Any) -> LocationPermission:
    """Map a CONNACK reason code to a :class:`LocationPermission`."""
    value = getattr(reason_code, "value", reason_code)
    if value == 0:
        return LocationPermission.GRANTED
    if value in _CREDENTIAL_REJECTIONS:
        return LocationPermission.DENIED_FOREVER
    return LocationPermission.DENIED


class _MqttSubscription(CallbackSubscription):
    def __init__(
        self,
        source: MqttLocationSource,
        settings: LocationSettings,
        on_sample: SampleCallback,
    ) -> None:
        super().__init__(settings, on_sample)
        self._source = source

    async def _release(self) -> None:
        self._source._detach(self)  # noqa: SLF001


class MqttLocationSource:
    """Location source fed by an MQTT topic.

    Usage::

        async with MqttLocationSource(MqttRelayConfig(host="broker", topic="owntracks/me/phone")) as source:
            async with SpeedMonitor(source, surface) as monitor:
                await monitor.start()
                await monitor.wait_closed()
    """

    def __init__(
        self,
        config: MqttRelayConfig,
        *,
        client_factory: Callable[[], mqtt.Client] | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or self._default_client
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._permission = LocationPermission.UNDETERMINED
        self._connack: asyncio.Future[Any] | None = None
        self._subscription: _MqttSubscription | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MqttLocationSource:
        self._loop = asyncio.get_running_loop()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel any subscription and disconnect from the broker."""
        subscription = self._subscription
        if subscription is not None:
            await subscription.cancel()
        self._stop_client()

    # ------------------------------------------------------------------
    # LocationSource
    # ------------------------------------------------------------------

    async def is_service_enabled(self) -> bool:
        return bool(self._config.host.strip())

    async def get_permission_status(self) -> LocationPermission:
        return self._permission

    async def request_permission(self) -> LocationPermission:
        """Connect to the broker and translate the CONNACK into a permission."""
        if self._client is not None and self._permission == LocationPermission.GRANTED:
            return self._permission

        loop = self._loop = asyncio.get_running_loop()
        self._connack = loop.create_future()
        client = self._client_factory()
        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect
        self._client = client

        _logger.debug(
            "MQTT connect requested host=%s port=%s topic=%s",
            self._config.host,
            self._config.port,
            self._config.topic,
        )
        try:
            client.connect_async(self._config.host, self._config.port, keepalive=self._config.keepalive)
            client.loop_start()
            reason_code = await asyncio.wait_for(self._connack, timeout=self._config.connect_timeout)
        except (TimeoutError, OSError, ValueError) as exc:
            self._stop_client()
            raise LocationSourceError(
                f"MQTT broker {self._config.host}:{self._config.port} did not accept a connection: {exc!r}",
                endpoint=f"{self._config.host}:{self._config.port}",
            ) from exc
        finally:
            self._connack = None

        self._permission = permission_from_connack(reason_code)
        if self._permission != LocationPermission.GRANTED:
            _logger.warning("MQTT connect refused: %s", reason_code)
            self._stop_client()
        return self._permission

    async def subscribe(self, settings: LocationSettings, on_sample: SampleCallback) -> _MqttSubscription:
        client = self._client
        if client is None or self._permission != LocationPermission.GRANTED:
            raise LocationSourceError(
                "MQTT source is not connected; request permission first",
                endpoint=f"{self._config.host}:{self._config.port}",
            )
        if self._subscription is not None and self._subscription.is_active:
            raise LocationSourceError("MQTT source already has an active subscription", endpoint=self._config.topic)

        subscription = _MqttSubscription(self, settings, on_sample)
        self._subscription = subscription
        result, _mid = client.subscribe(self._config.topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._subscription = None
            raise LocationSourceError(f"MQTT subscribe failed rc={result}", endpoint=self._config.topic)
        _logger.debug("MQTT subscribed topic=%s accuracy=%s", self._config.topic, settings.accuracy)
        return subscription

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _default_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._config.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(_logger)
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if self._config.tls:
            client.tls_set()
        return client

    def _detach(self, subscription: _MqttSubscription) -> None:
        if self._subscription is subscription:
            self._subscription = None
        self._stop_client()

    def _stop_client(self) -> None:
        client = self._client
        self._client = None
        if self._permission == LocationPermission.GRANTED:
            self._permission = LocationPermission.UNDETERMINED
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")

    def _resolve_connack(self, reason_code: Any) -> None:
        future = self._connack
        if future is not None and not future.done():
            future.set_result(reason_code)

    # Called from the paho network thread.

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        loop = self._loop
        if loop is None:
            return
        if self._connack is not None:
            loop.call_soon_threadsafe(self._resolve_connack, reason_code)
            return
        subscription = self._subscription
        if subscription is not None and subscription.is_active and not reason_code.is_failure:
            _logger.debug("MQTT reconnected, resubscribing topic=%s", self._config.topic)
            client.subscribe(self._config.topic, qos=0)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        loop = self._loop
        subscription = self._subscription
        if loop is None or subscription is None:
            return
        sample = parse_position_payload(msg.payload)
        if sample is None:
            return
        loop.call_soon_threadsafe(subscription.deliver, sample)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._subscription is not None:
            _logger.debug("MQTT disconnected: %s", reason_code)
