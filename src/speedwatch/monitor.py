"""Screen-level speed monitor.

Runs the permission gate once, subscribes to the location source when
permitted, feeds every fix through a :class:`SpeedEvaluator` and renders
after each state change.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from speedwatch._constants import validate_speed_limit
from speedwatch.config import MonitorConfig
from speedwatch.evaluator import SpeedEvaluator
from speedwatch.exceptions import MonitorStateError
from speedwatch.models.permission import PermissionStatus
from speedwatch.models.position import PositionSample
from speedwatch.models.state import MonitorState
from speedwatch.permission import PermissionGate
from speedwatch.presentation import PresentationSurface, status_message
from speedwatch.sources import LocationSource, PositionSubscription

_logger = logging.getLogger(__name__)


class SpeedMonitor:
    """Live speed readout with an over-limit flag.

    Each instance owns its evaluator, permission status and subscription;
    nothing is shared between instances.

    Usage::

        async with SpeedMonitor(source, ConsoleSurface()) as monitor:
            await monitor.start()
            monitor.set_speed_limit(80)
            await monitor.wait_closed()

    Leaving the ``async with`` block always releases the position
    subscription, whether the body returned or raised.
    """

    def __init__(
        self,
        source: LocationSource,
        surface: PresentationSurface | None = None,
        *,
        config: MonitorConfig | None = None,
    ) -> None:
        self._source = source
        self._surface = surface
        self._config = config or MonitorConfig()
        self._evaluator = SpeedEvaluator(
            self._config.default_speed_limit_kmh,
            noise_floor_kmh=self._config.noise_floor_kmh,
        )
        self._status = PermissionStatus.UNKNOWN
        self._subscription: PositionSubscription | None = None
        self._started = False
        self._stopped = False
        self._samples_received = 0

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SpeedMonitor:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._evaluator.state

    @property
    def status(self) -> PermissionStatus:
        return self._status

    @property
    def status_message(self) -> str:
        """Status text; switches to ``"Monitoring..."`` once fixes arrive."""
        return status_message(self._status, receiving=self._samples_received > 0)

    @property
    def speed_limit_kmh(self) -> float:
        return self._evaluator.speed_limit_kmh

    @property
    def limit_options(self) -> tuple[float, ...]:
        return self._config.speed_limit_options

    @property
    def samples_received(self) -> int:
        return self._samples_received

    @property
    def is_monitoring(self) -> bool:
        """Whether a position subscription is currently live."""
        return self._subscription is not None and self._subscription.is_active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> PermissionStatus:
        """Check permissions and, when granted, subscribe to position fixes.

        Returns the frozen :class:`PermissionStatus`. Any status other than
        ``GRANTED`` is final: no subscription is made and nothing is retried.
        """
        if self._started:
            raise MonitorStateError("SpeedMonitor.start() may only be called once")
        if self._stopped:
            raise MonitorStateError("SpeedMonitor has been stopped")
        self._started = True
        self._render()

        self._status = await PermissionGate(self._source).check_and_request()
        _logger.debug("Permission gate result: %s", self._status)
        self._render()
        if self._status != PermissionStatus.GRANTED:
            return self._status

        subscription = await self._source.subscribe(self._config.location_settings, self.on_sample)
        if self._stopped:
            # stop() ran while subscribe() was suspended.
            await subscription.cancel()
            return self._status
        self._subscription = subscription
        _logger.info("Speed monitoring started (limit %g km/h)", self.speed_limit_kmh)
        return self._status

    async def stop(self) -> None:
        """Release the position subscription. Safe to call repeatedly."""
        self._stopped = True
        subscription = self._subscription
        self._subscription = None
        if subscription is None:
            return
        await subscription.cancel()
        _logger.info("Speed monitoring stopped after %d fixes", self._samples_received)

    async def wait_closed(self) -> None:
        """Wait until the position stream ends; returns at once without one."""
        subscription = self._subscription
        if subscription is None:
            return
        await subscription.wait_closed()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_sample(self, sample: PositionSample) -> MonitorState:
        """Evaluate one position fix and render the result."""
        state = self._evaluator.on_sample(sample.speed_mps)
        self._samples_received += 1
        self._render()
        return state

    def set_speed_limit(self, speed_limit_kmh: float) -> MonitorState:
        """Select a new limit from :attr:`limit_options` and render.

        Raises :class:`ValueError` for a limit that is not one of the options.
        """
        limit = validate_speed_limit(speed_limit_kmh, self._config.speed_limit_options)
        state = self._evaluator.set_speed_limit(limit)
        _logger.debug("Speed limit set to %g km/h speeding=%s", limit, state.is_speeding)
        self._render()
        return state

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _render(self) -> None:
        surface = self._surface
        if surface is None:
            return
        try:
            surface.render(
                self._evaluator.state,
                self._status,
                self._config.speed_limit_options,
                self._evaluator.speed_limit_kmh,
                message=self.status_message,
            )
        except Exception:
            _logger.warning("Presentation surface failed to render", exc_info=True)


async def run_monitor(
    source: LocationSource,
    surface: PresentationSurface | None = None,
    *,
    config: MonitorConfig | None = None,
) -> SpeedMonitor:
    """Run a monitor until its position stream ends or the task is cancelled.

    Returns the stopped monitor so callers can inspect its final state.
    """
    async with SpeedMonitor(source, surface, config=config) as monitor:
        status = await monitor.start()
        if status == PermissionStatus.GRANTED:
            try:
                await monitor.wait_closed()
            except asyncio.CancelledError:
                _logger.debug("Monitor run cancelled")
                raise
    return monitor
