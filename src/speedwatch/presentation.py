"""Presentation surface interface and a console implementation."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import Protocol, TextIO

from speedwatch.models.permission import PermissionStatus
from speedwatch.models.state import MonitorState

_logger = logging.getLogger(__name__)

_STATUS_MESSAGES: dict[PermissionStatus, str] = {
    PermissionStatus.UNKNOWN: "Waiting for GPS...",
    PermissionStatus.SERVICE_DISABLED: "Location service is disabled.",
    PermissionStatus.DENIED: "Location permission denied.",
    PermissionStatus.DENIED_FOREVER: "Location permission permanently denied.",
    PermissionStatus.GRANTED: "Waiting for GPS...",
}

MONITORING_MESSAGE = "Monitoring..."


def status_message(status: PermissionStatus, *, receiving: bool = False) -> str:
    """Text shown above the speed readout.

    Once fixes are arriving the message switches to ``"Monitoring..."``.
    """
    if status == PermissionStatus.GRANTED and receiving:
        return MONITORING_MESSAGE
    return _STATUS_MESSAGES[status]


class PresentationSurface(Protocol):
    """Anything that can draw a monitor frame.

    Called after every state change. User limit selections flow back
    through :meth:`SpeedMonitor.set_speed_limit`, never through this call.
    *message* is the status text the monitor shows; surfaces fall back to
    :func:`status_message` when it is omitted.
    """

    def render(
        self,
        state: MonitorState,
        status: PermissionStatus,
        limit_options: Sequence[float],
        selected_limit: float,
        *,
        message: str | None = None,
    ) -> None: ...


class ConsoleSurface:
    """Writes one line per frame to a text stream.

    Frames over the limit are prefixed with ``!!`` and, when the stream is
    a terminal, shown in red.
    """

    _RED = "\033[1;31m"
    _RESET = "\033[0m"

    def __init__(self, stream: TextIO | None = None, *, color: bool | None = None) -> None:
        self._stream = stream or sys.stdout
        self._color = self._stream.isatty() if color is None else color
        self.frames = 0

    def render(
        self,
        state: MonitorState,
        status: PermissionStatus,
        limit_options: Sequence[float],
        selected_limit: float,
        *,
        message: str | None = None,
    ) -> None:
        self.frames += 1
        if message is None:
            message = status_message(status)
        options = " ".join(
            f"[{option:g}]" if option == selected_limit else f"{option:g}" for option in limit_options
        )
        marker = "!!" if state.is_speeding else "  "
        line = (
            f"{marker} {state.display_speed:>4} km/h  limit {selected_limit:g}  "
            f"({options})  {message}"
        )
        if state.is_speeding and self._color:
            line = f"{self._RED}{line}{self._RESET}"
        self._stream.write(line + "\n")
        self._stream.flush()
        _logger.debug("Rendered frame speed=%.2f speeding=%s", state.current_speed_kmh, state.is_speeding)
