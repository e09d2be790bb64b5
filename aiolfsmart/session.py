"""Brewing session state machine."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
import logging
from typing import Protocol

from .config import BrewConfig
from .scheduler import ScheduledTask, Scheduler
from .series import BrewSeries
from .telemetry import FilteredTelemetry

_LOGGER = logging.getLogger(__name__)


class SessionState(StrEnum):
    """State of the brewing workflow."""

    STOPPED = "stopped"
    WAITING_FOR_TARE = "waiting_for_tare"
    RUNNING = "running"
    PAUSED = "paused"


class SessionCommand(StrEnum):
    """Commands accepted by the session."""

    DOSE = "dose"
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    RESET = "reset"
    TOGGLE_AUTO_START = "toggle_auto_start"


ENABLED_COMMANDS: dict[SessionCommand, frozenset[SessionState]] = {
    SessionCommand.DOSE: frozenset({SessionState.STOPPED}),
    SessionCommand.START: frozenset({SessionState.STOPPED}),
    SessionCommand.PAUSE: frozenset({SessionState.RUNNING}),
    SessionCommand.RESUME: frozenset({SessionState.PAUSED}),
    SessionCommand.RESET: frozenset(SessionState),
    SessionCommand.TOGGLE_AUTO_START: frozenset({SessionState.STOPPED}),
}


@dataclass(kw_only=True)
class BrewSession:
    """Data class for the current brewing session."""

    state: SessionState = SessionState.STOPPED
    dose_grams: float = 0.0
    auto_start: bool = False
    started_at: float | None = None
    elapsed_seconds: float = 0.0


class ScaleCommands(Protocol):
    """Commands the session sends to the scale."""

    def tare(self) -> bool: ...

    def switch_to_grams(self) -> bool: ...


class BrewSessionMachine:
    """Drives dosing, taring and the brew timer.

    In auto-start mode a recorded dose arms the session. Once the scale has
    been zeroed and weight climbs past ``min_dose_grams`` again, the session
    starts by itself. Starting with weight still on the scale parks the
    session in WAITING_FOR_TARE until the tare takes effect.
    """

    def __init__(
        self,
        commands: ScaleCommands,
        telemetry: Callable[[], FilteredTelemetry],
        scheduler: Scheduler,
        config: BrewConfig | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._commands = commands
        self._telemetry = telemetry
        self._scheduler = scheduler
        self._config = config or BrewConfig()
        self._on_change = on_change

        self._session = BrewSession()
        self.series = BrewSeries(self._config)

        self._accumulated_seconds = 0.0
        self._running_since: float | None = None
        self._zero_seen_since_dose = False

        self._tare_poll_task: ScheduledTask | None = None
        self._weight_tick_task: ScheduledTask | None = None
        self._flow_tick_task: ScheduledTask | None = None

    @property
    def session(self) -> BrewSession:
        """Return a copy of the session with live elapsed time."""
        return replace(self._session, elapsed_seconds=self.elapsed_seconds)

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def elapsed_seconds(self) -> float:
        if self._running_since is None:
            return self._accumulated_seconds
        return self._accumulated_seconds + (
            self._scheduler.time() - self._running_since
        )

    def is_enabled(self, command: SessionCommand) -> bool:
        """Return True if the command is allowed in the current state."""
        return self._session.state in ENABLED_COMMANDS[command]

    def _reject(self, command: SessionCommand) -> bool:
        _LOGGER.debug(
            "Ignoring %s while session is %s", command, self._session.state
        )
        return False

    def dose(self) -> bool:
        """Record the current weight as the dose and tare the scale."""
        if not self.is_enabled(SessionCommand.DOSE):
            return self._reject(SessionCommand.DOSE)

        self._session.dose_grams = self._live_weight()
        self._zero_seen_since_dose = False
        _LOGGER.info("Dose recorded: %.1f g", self._session.dose_grams)
        self._send(self._commands.tare, "tare")
        self._changed()
        return True

    def start(self) -> bool:
        """Start a session, waiting for the tare if weight is still present."""
        if not self.is_enabled(SessionCommand.START):
            return self._reject(SessionCommand.START)

        self._cancel_tasks()
        self.series.clear()
        self._accumulated_seconds = 0.0
        self._running_since = None
        self._session.started_at = None
        self._session.elapsed_seconds = 0.0

        self._send(self._commands.switch_to_grams, "switch to grams")
        self._send(self._commands.tare, "tare")

        if self._above_threshold(self._live_weight()):
            _LOGGER.debug("Weight still on scale, waiting for tare")
            self._session.state = SessionState.WAITING_FOR_TARE
            self._tare_poll_task = self._scheduler.call_every(
                self._config.tare_poll_interval, self._check_tare
            )
            self._changed()
        else:
            self._begin_running()
        return True

    def pause(self) -> bool:
        """Pause the timer, keeping series and dose."""
        if not self.is_enabled(SessionCommand.PAUSE):
            return self._reject(SessionCommand.PAUSE)

        self._cancel_tasks()
        self._accumulated_seconds = self.elapsed_seconds
        self._running_since = None
        self._session.elapsed_seconds = self._accumulated_seconds
        self._session.state = SessionState.PAUSED
        _LOGGER.info("Session paused at %.1f s", self._accumulated_seconds)
        self._changed()
        return True

    def resume(self) -> bool:
        """Continue a paused session from where it stopped."""
        if not self.is_enabled(SessionCommand.RESUME):
            return self._reject(SessionCommand.RESUME)

        self._begin_running()
        return True

    def reset(self) -> bool:
        """Finish the session: clear series and dose, tare, stop the timer."""
        self._cancel_tasks()
        self.series.clear()
        self._accumulated_seconds = 0.0
        self._running_since = None
        self._zero_seen_since_dose = False
        self._session = BrewSession(auto_start=self._session.auto_start)
        self._send(self._commands.tare, "tare")
        _LOGGER.info("Session reset")
        self._changed()
        return True

    def toggle_auto_start(self) -> bool:
        """Switch between manual and auto-start mode."""
        if not self.is_enabled(SessionCommand.TOGGLE_AUTO_START):
            return self._reject(SessionCommand.TOGGLE_AUTO_START)

        self._session.auto_start = not self._session.auto_start
        _LOGGER.debug("Auto-start is now %s", self._session.auto_start)
        self._changed()
        return True

    def on_telemetry(self, telemetry: FilteredTelemetry) -> None:
        """Watch live weight for the auto-start trigger."""
        session = self._session
        if (
            session.state is not SessionState.STOPPED
            or not session.auto_start
            or not self._above_threshold(session.dose_grams)
        ):
            return

        if not self._above_threshold(telemetry.weight_grams):
            self._zero_seen_since_dose = True
        elif self._zero_seen_since_dose:
            _LOGGER.info(
                "Auto-start triggered at %.1f g", telemetry.weight_grams
            )
            self.start()

    def _begin_running(self) -> None:
        now = self._scheduler.time()
        self._cancel_tasks()
        if self._session.started_at is None:
            self._session.started_at = now
        self._running_since = now
        self._session.state = SessionState.RUNNING
        self.series.sample_weight(self.elapsed_seconds, self._live_weight())
        self._weight_tick_task = self._scheduler.call_every(
            self._config.weight_sample_interval, self._weight_tick
        )
        self._flow_tick_task = self._scheduler.call_every(
            self._config.flow_sample_interval, self._flow_tick
        )
        _LOGGER.info("Session running")
        self._changed()

    def _check_tare(self) -> None:
        if self._session.state is not SessionState.WAITING_FOR_TARE:
            self._cancel_tasks()
            return
        if not self._above_threshold(self._live_weight()):
            self._begin_running()

    def _weight_tick(self) -> None:
        elapsed = self.elapsed_seconds
        self._session.elapsed_seconds = elapsed
        self.series.sample_weight(elapsed, self._live_weight())
        self._changed()

    def _flow_tick(self) -> None:
        self.series.sample_flow(
            self.elapsed_seconds, self._telemetry().flow_rate_grams_per_second
        )
        self._changed()

    def _cancel_tasks(self) -> None:
        for task in (
            self._tare_poll_task,
            self._weight_tick_task,
            self._flow_tick_task,
        ):
            if task is not None:
                task.cancel()
        self._tare_poll_task = None
        self._weight_tick_task = None
        self._flow_tick_task = None

    def _above_threshold(self, grams: float) -> bool:
        return grams > self._config.min_dose_grams

    def _live_weight(self) -> float:
        return self._telemetry().weight_grams

    def _send(self, command: Callable[[], bool], name: str) -> None:
        if not command():
            _LOGGER.warning("Scale did not accept %s command", name)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
