from __future__ import annotations

import asyncio
import io
from collections.abc import Sequence

import pytest

from speedwatch.config import MonitorConfig
from speedwatch.exceptions import LocationSourceError, MonitorStateError
from speedwatch.models.permission import LocationPermission, PermissionStatus
from speedwatch.models.position import AccuracyTier, LocationSettings, PositionSample
from speedwatch.models.state import MonitorState
from speedwatch.monitor import SpeedMonitor, run_monitor
from speedwatch.presentation import ConsoleSurface
from speedwatch.sources import SampleCallback


class _DummySubscription:
    def __init__(self) -> None:
        self.cancel_calls = 0
        self._closed = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return not self._closed.is_set()

    async def cancel(self) -> None:
        self.cancel_calls += 1
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def end(self) -> None:
        self._closed.set()


class _DummySource:
    def __init__(
        self,
        *,
        enabled: bool = True,
        permission: LocationPermission = LocationPermission.GRANTED,
        subscribe_error: Exception | None = None,
    ) -> None:
        self.enabled = enabled
        self.permission = permission
        self.subscribe_error = subscribe_error
        self.subscriptions: list[_DummySubscription] = []
        self.settings: LocationSettings | None = None
        self.on_sample: SampleCallback | None = None

    async def is_service_enabled(self) -> bool:
        return self.enabled

    async def get_permission_status(self) -> LocationPermission:
        return self.permission

    async def request_permission(self) -> LocationPermission:
        return self.permission

    async def subscribe(self, settings: LocationSettings, on_sample: SampleCallback) -> _DummySubscription:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.settings = settings
        self.on_sample = on_sample
        subscription = _DummySubscription()
        self.subscriptions.append(subscription)
        return subscription

    def push(self, speed_mps: float) -> None:
        assert self.on_sample is not None
        self.on_sample(PositionSample(speed_mps=speed_mps))


class _RecordingSurface:
    def __init__(self) -> None:
        self.frames: list[tuple[MonitorState, PermissionStatus, tuple[float, ...], float]] = []
        self.messages: list[str | None] = []

    def render(
        self,
        state: MonitorState,
        status: PermissionStatus,
        limit_options: Sequence[float],
        selected_limit: float,
        *,
        message: str | None = None,
    ) -> None:
        self.frames.append((state, status, tuple(limit_options), selected_limit))
        self.messages.append(message)


class _BrokenSurface:
    def render(self, *args: object, **kwargs: object) -> None:
        raise RuntimeError("display gone")


@pytest.mark.asyncio
async def test_start_renders_unknown_then_granted_and_subscribes() -> None:
    source = _DummySource()
    surface = _RecordingSurface()

    async with SpeedMonitor(source, surface) as monitor:
        status = await monitor.start()

        assert status == PermissionStatus.GRANTED
        assert monitor.is_monitoring
        assert [frame[1] for frame in surface.frames] == [PermissionStatus.UNKNOWN, PermissionStatus.GRANTED]
        assert surface.frames[0][2] == (30.0, 50.0, 80.0, 100.0, 120.0)
        assert surface.frames[0][3] == 50.0
        assert monitor.status_message == "Waiting for GPS..."

    assert source.settings == LocationSettings(accuracy=AccuracyTier.BEST_FOR_NAVIGATION, distance_filter_m=0.0)
    assert source.subscriptions[0].cancel_calls == 1
    assert not monitor.is_monitoring


@pytest.mark.asyncio
async def test_samples_flow_through_evaluator_and_render() -> None:
    source = _DummySource()
    surface = _RecordingSurface()

    async with SpeedMonitor(source, surface) as monitor:
        await monitor.start()
        source.push(13.9)

        assert monitor.state.is_speeding is True
        assert monitor.state.display_speed == "50"
        assert monitor.status_message == "Monitoring..."
        assert surface.frames[-1][0].is_speeding is True

        source.push(0.2)
        assert monitor.state.current_speed_kmh == 0.0
        assert monitor.state.is_speeding is False
        assert monitor.samples_received == 2


@pytest.mark.asyncio
async def test_console_shows_waiting_until_first_fix() -> None:
    source = _DummySource()
    stream = io.StringIO()

    async with SpeedMonitor(source, ConsoleSurface(stream, color=False)) as monitor:
        await monitor.start()
        monitor.set_speed_limit(80)
        source.push(10.0)

    lines = stream.getvalue().splitlines()
    assert [line.endswith("Waiting for GPS...") for line in lines] == [True, True, True, False]
    assert lines[-1].endswith("Monitoring...")


@pytest.mark.asyncio
async def test_surface_receives_monitor_status_message() -> None:
    source = _DummySource()
    surface = _RecordingSurface()

    async with SpeedMonitor(source, surface) as monitor:
        await monitor.start()
        source.push(5.0)

    assert surface.messages == ["Waiting for GPS...", "Waiting for GPS...", "Monitoring..."]


@pytest.mark.asyncio
async def test_set_speed_limit_rerenders_without_new_sample() -> None:
    source = _DummySource()
    surface = _RecordingSurface()

    async with SpeedMonitor(source, surface) as monitor:
        await monitor.start()
        source.push(25.0)  # 90 km/h
        assert monitor.state.is_speeding is True
        frames_before = len(surface.frames)

        state = monitor.set_speed_limit(100)

        assert state.is_speeding is False
        assert monitor.speed_limit_kmh == 100.0
        assert len(surface.frames) == frames_before + 1
        assert surface.frames[-1][3] == 100.0


@pytest.mark.asyncio
async def test_unlisted_speed_limit_is_rejected() -> None:
    monitor = SpeedMonitor(_DummySource())

    with pytest.raises(ValueError, match="speed limit must be one of"):
        monitor.set_speed_limit(65)
    assert monitor.speed_limit_kmh == 50.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("enabled", "permission", "expected"),
    [
        (False, LocationPermission.GRANTED, PermissionStatus.SERVICE_DISABLED),
        (True, LocationPermission.DENIED, PermissionStatus.DENIED),
        (True, LocationPermission.DENIED_FOREVER, PermissionStatus.DENIED_FOREVER),
    ],
)
async def test_non_granted_status_never_subscribes(
    enabled: bool,
    permission: LocationPermission,
    expected: PermissionStatus,
) -> None:
    source = _DummySource(enabled=enabled, permission=permission)
    surface = _RecordingSurface()

    async with SpeedMonitor(source, surface) as monitor:
        assert await monitor.start() == expected
        assert not monitor.is_monitoring
        await monitor.wait_closed()

    assert source.subscriptions == []
    assert surface.frames[-1][1] == expected


@pytest.mark.asyncio
async def test_subscription_released_when_body_raises() -> None:
    source = _DummySource()

    with pytest.raises(RuntimeError, match="boom"):
        async with SpeedMonitor(source) as monitor:
            await monitor.start()
            raise RuntimeError("boom")

    assert source.subscriptions[0].cancel_calls == 1


@pytest.mark.asyncio
async def test_subscribe_failure_propagates_without_live_subscription() -> None:
    source = _DummySource(subscribe_error=LocationSourceError("relay gone", endpoint="test"))

    with pytest.raises(LocationSourceError):
        async with SpeedMonitor(source) as monitor:
            await monitor.start()

    assert not monitor.is_monitoring


@pytest.mark.asyncio
async def test_start_twice_raises() -> None:
    async with SpeedMonitor(_DummySource()) as monitor:
        await monitor.start()
        with pytest.raises(MonitorStateError):
            await monitor.start()


@pytest.mark.asyncio
async def test_start_after_stop_raises() -> None:
    monitor = SpeedMonitor(_DummySource())
    await monitor.stop()

    with pytest.raises(MonitorStateError):
        await monitor.start()


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    source = _DummySource()
    monitor = SpeedMonitor(source)
    await monitor.start()

    await monitor.stop()
    await monitor.stop()

    assert source.subscriptions[0].cancel_calls == 1


@pytest.mark.asyncio
async def test_surface_failure_does_not_break_sample_delivery() -> None:
    source = _DummySource()

    async with SpeedMonitor(source, _BrokenSurface()) as monitor:
        await monitor.start()
        source.push(30.0)

        assert monitor.state.current_speed_kmh == pytest.approx(108.0)


@pytest.mark.asyncio
async def test_instances_do_not_share_state() -> None:
    first_source = _DummySource()
    second_source = _DummySource()

    async with SpeedMonitor(first_source) as first, SpeedMonitor(second_source) as second:
        await first.start()
        await second.start()
        first_source.push(40.0)
        first.set_speed_limit(120)

        assert second.state.current_speed_kmh == 0.0
        assert second.speed_limit_kmh == 50.0


@pytest.mark.asyncio
async def test_config_controls_defaults_and_settings() -> None:
    source = _DummySource()
    config = MonitorConfig(
        default_speed_limit_kmh=80.0,
        accuracy=AccuracyTier.HIGH,
        distance_filter_m=5.0,
    )

    async with SpeedMonitor(source, config=config) as monitor:
        await monitor.start()
        assert monitor.speed_limit_kmh == 80.0

    assert source.settings == LocationSettings(accuracy=AccuracyTier.HIGH, distance_filter_m=5.0)


@pytest.mark.asyncio
async def test_run_monitor_returns_when_stream_ends() -> None:
    source = _DummySource()
    task = asyncio.create_task(run_monitor(source))
    while not source.subscriptions:
        await asyncio.sleep(0)

    source.push(10.0)
    source.subscriptions[0].end()
    monitor = await asyncio.wait_for(task, timeout=1.0)

    assert monitor.state.current_speed_kmh == pytest.approx(36.0)
    assert not monitor.is_monitoring
