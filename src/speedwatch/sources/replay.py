"""Replay a recorded position log as a live stream.

The log is JSON lines, one position fix per line, in any shape
:class:`~speedwatch.models.PositionSample` accepts. Fixes are delivered
with the spacing recorded in their timestamps divided by ``speed``; fixes
without timestamps are spaced ``interval`` seconds apart.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from speedwatch.exceptions import LocationSourceError
from speedwatch.ingestion.position import parse_position_payload
from speedwatch.models.permission import LocationPermission
from speedwatch.models.position import LocationSettings, PositionSample
from speedwatch.sources import SampleCallback
from speedwatch.sources._subscription import CallbackSubscription

_logger = logging.getLogger(__name__)


def load_position_log(path: Path) -> list[PositionSample]:
    """Read every parseable fix from a JSON-lines position log."""
    samples: list[PositionSample] = []
    try:
        with path.open(encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                text = line.strip()
                if not text or text.startswith("#"):
                    continue
                sample = parse_position_payload(text)
                if sample is None:
                    _logger.debug("Skipping unparseable line %d in %s", line_no, path)
                    continue
                samples.append(sample)
    except OSError as exc:
        raise LocationSourceError(f"Cannot read position log: {exc}", endpoint=str(path)) from exc
    return samples


class _ReplaySubscription(CallbackSubscription):
    def __init__(
        self,
        samples: list[PositionSample],
        settings: LocationSettings,
        on_sample: SampleCallback,
        *,
        speed: float,
        interval: float,
    ) -> None:
        super().__init__(settings, on_sample)
        self._samples = samples
        self._speed = speed
        self._interval = interval
        self._task = asyncio.create_task(self._play(), name="speedwatch-replay")

    def _delay_before(self, previous: PositionSample | None, current: PositionSample) -> float:
        if previous is None or self._speed <= 0:
            return 0.0
        if previous.timestamp is not None and current.timestamp is not None:
            gap = (current.timestamp - previous.timestamp).total_seconds()
        else:
            gap = self._interval
        return max(0.0, gap) / self._speed

    async def _play(self) -> None:
        previous: PositionSample | None = None
        try:
            for sample in self._samples:
                delay = self._delay_before(previous, sample)
                if delay > 0:
                    await asyncio.sleep(delay)
                self.deliver(sample)
                previous = sample
            _logger.debug("Replay finished after %d fixes", len(self._samples))
        finally:
            self.mark_closed()

    async def _release(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class ReplayLocationSource:
    """Location source that plays back a JSON-lines position log.

    Parameters
    ----------
    path : Path
        Log file. The location service counts as disabled when it does
        not exist.
    speed : float
        Playback speed multiplier. ``0`` delivers all fixes at once.
    interval : float
        Seconds between fixes that carry no timestamp.
    """

    def __init__(self, path: Path | str, *, speed: float = 1.0, interval: float = 1.0) -> None:
        self._path = Path(path)
        self._speed = speed
        self._interval = interval

    async def is_service_enabled(self) -> bool:
        return self._path.is_file()

    async def get_permission_status(self) -> LocationPermission:
        return LocationPermission.GRANTED

    async def request_permission(self) -> LocationPermission:
        return LocationPermission.GRANTED

    async def subscribe(self, settings: LocationSettings, on_sample: SampleCallback) -> _ReplaySubscription:
        samples = await asyncio.to_thread(load_position_log, self._path)
        _logger.debug("Replaying %d fixes from %s", len(samples), self._path)
        return _ReplaySubscription(
            samples,
            settings,
            on_sample,
            speed=self._speed,
            interval=self._interval,
        )
