"""Brewing assistant: the published state and command surface."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

from .config import BrewConfig
from .connection import ConnectionState
from .lfsmartscale import LFSmartScale
from .scheduler import Scheduler
from .series import Sample
from .session import BrewSessionMachine, SessionState

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class BrewSnapshot:
    """Read-only view of everything a UI shows."""

    connection_state: ConnectionState
    weight_grams: float
    flow_rate_grams_per_second: float
    dose_grams: float
    elapsed_seconds: float
    session_state: SessionState
    auto_start: bool
    weight_series: tuple[Sample, ...]
    flow_series: tuple[Sample, ...]

    @property
    def brew_ratio(self) -> float | None:
        """Return output weight per gram of dose, or None without a dose."""
        if self.dose_grams <= 0:
            return None
        return self.weight_grams / self.dose_grams

    @property
    def ratio_text(self) -> str:
        ratio = self.brew_ratio
        return "1:-" if ratio is None else f"1:{ratio:.1f}"


class BrewAssistant:
    """Connects the scale, telemetry and brewing session.

    Listeners are called without arguments after every change and read
    ``snapshot()``; snapshots are built on demand so a listener always sees
    the latest state.
    """

    def __init__(
        self,
        config: BrewConfig | None = None,
        scheduler: Scheduler | None = None,
        **scale_options: Any,
    ) -> None:
        self._config = config or BrewConfig()
        self._listeners: list[Callable[[], None]] = []
        self._last_connection_state = ConnectionState.DISCONNECTED

        self.scale = LFSmartScale(
            config=self._config,
            notify_callback=self._on_scale_update,
            **scale_options,
        )
        self.session = BrewSessionMachine(
            commands=self.scale,
            telemetry=lambda: self.scale.telemetry,
            scheduler=scheduler or Scheduler(),
            config=self._config,
            on_change=self._publish,
        )

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove_listener

    def snapshot(self) -> BrewSnapshot:
        telemetry = self.scale.telemetry
        session = self.session.session
        return BrewSnapshot(
            connection_state=self.scale.state,
            weight_grams=telemetry.weight_grams,
            flow_rate_grams_per_second=telemetry.flow_rate_grams_per_second,
            dose_grams=session.dose_grams,
            elapsed_seconds=session.elapsed_seconds,
            session_state=session.state,
            auto_start=session.auto_start,
            weight_series=self.session.series.weight.samples,
            flow_series=self.session.series.flow.samples,
        )

    async def async_start(self) -> None:
        """Start the scale transport (scans automatically)."""
        await self.scale.start()

    async def async_stop(self) -> None:
        await self.scale.stop()

    def find(self) -> None:
        self.scale.find()

    def dose(self) -> bool:
        return self.session.dose()

    def start(self) -> bool:
        return self.session.start()

    def pause(self) -> bool:
        return self.session.pause()

    def resume(self) -> bool:
        return self.session.resume()

    def reset(self) -> bool:
        return self.session.reset()

    def toggle_auto_start(self) -> bool:
        return self.session.toggle_auto_start()

    def _on_scale_update(self) -> None:
        state = self.scale.state
        if state is not self._last_connection_state:
            if (
                self._last_connection_state is ConnectionState.CONNECTED
                and self.session.state is not SessionState.STOPPED
            ):
                _LOGGER.warning(
                    "Scale disconnected while session is %s", self.session.state
                )
            self._last_connection_state = state
        elif state is ConnectionState.CONNECTED:
            self.session.on_telemetry(self.scale.telemetry)
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener()
