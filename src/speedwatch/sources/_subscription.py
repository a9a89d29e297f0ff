"""Shared subscription bookkeeping for the bundled sources."""

from __future__ import annotations

import asyncio
import logging

from speedwatch.ingestion.position import DistanceFilter
from speedwatch.models.position import LocationSettings, PositionSample
from speedwatch.sources import SampleCallback

_logger = logging.getLogger(__name__)


class CallbackSubscription:
    """Base for subscriptions that push samples to a callback on the event loop.

    Subclasses implement :meth:`_release` to free their transport. Delivery
    after cancellation is ignored so late fixes already queued on the loop
    never reach the callback.
    """

    def __init__(self, settings: LocationSettings, on_sample: SampleCallback) -> None:
        self._on_sample = on_sample
        self._filter = DistanceFilter(settings.distance_filter_m)
        self._closed = asyncio.Event()
        self._cancelling = False

    @property
    def is_active(self) -> bool:
        return not self._closed.is_set() and not self._cancelling

    def deliver(self, sample: PositionSample) -> None:
        """Push *sample* to the callback unless cancelled or filtered out."""
        if not self.is_active:
            return
        if not self._filter.accept(sample):
            return
        try:
            self._on_sample(sample)
        except Exception:
            _logger.debug("Position callback failed", exc_info=True)

    def mark_closed(self) -> None:
        """Record that the stream ended on its own."""
        self._closed.set()

    async def cancel(self) -> None:
        if self._closed.is_set() or self._cancelling:
            return
        self._cancelling = True
        try:
            await self._release()
        finally:
            self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _release(self) -> None:
        raise NotImplementedError
