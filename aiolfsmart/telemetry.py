"""Filtered weight and flow rate from raw scale readings."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from .config import BrewConfig
from .decode import ScaleReading

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class FilteredTelemetry:
    """Weight and flow rate derived from the last processed reading."""

    weight_grams: float = 0.0
    flow_rate_grams_per_second: float = 0.0
    measured_at_millis: int = 0


class TelemetryEngine:
    """Turns a stream of ScaleReadings into stable weight and flow rate.

    Some scales report a short dip while their load cell settles ("Rao
    spin"). A drop larger than the noise threshold that arrives within
    ``spin_window_millis`` of the previous reading is held at the previous
    weight for up to ``spin_patience`` consecutive samples, after which the
    lower value is accepted so the reading can never go permanently stale.
    A drop after a longer gap is a real change and is accepted at once.
    """

    def __init__(self, config: BrewConfig | None = None) -> None:
        config = config or BrewConfig()
        self._noise_threshold = config.noise_threshold_grams
        self._spin_patience = config.spin_patience
        self._spin_window_millis = config.spin_window_millis

        self._last_weight: float | None = None
        self._last_timestamp_millis: int | None = None
        self._held_samples = 0
        self._telemetry = FilteredTelemetry()

    def reset(self) -> None:
        """Forget the reading history, e.g. after the scale disconnects.

        The last telemetry stays published; the next reading is treated as
        the first one.
        """
        self._last_weight = None
        self._last_timestamp_millis = None
        self._held_samples = 0

    @property
    def telemetry(self) -> FilteredTelemetry:
        """Return the latest filtered telemetry."""
        return self._telemetry

    @property
    def weight(self) -> float:
        return self._telemetry.weight_grams

    @property
    def flow_rate(self) -> float:
        return self._telemetry.flow_rate_grams_per_second

    def process(self, reading: ScaleReading) -> FilteredTelemetry:
        """Accept (or hold) a reading and recompute flow rate."""
        weight = reading.weight_grams
        timestamp = reading.timestamp_millis

        if self._last_weight is None or self._last_timestamp_millis is None:
            self._last_weight = weight
            self._last_timestamp_millis = timestamp
            self._telemetry = FilteredTelemetry(
                weight_grams=weight,
                flow_rate_grams_per_second=0.0,
                measured_at_millis=timestamp,
            )
            return self._telemetry

        previous_weight = self._last_weight
        gap_millis = timestamp - self._last_timestamp_millis
        if (
            previous_weight - weight > self._noise_threshold
            and 0 <= gap_millis <= self._spin_window_millis
            and self._held_samples < self._spin_patience
        ):
            self._held_samples += 1
            _LOGGER.debug(
                "Holding %.1f g over dip to %.1f g (%d/%d)",
                previous_weight,
                weight,
                self._held_samples,
                self._spin_patience,
            )
            weight = previous_weight
        else:
            self._held_samples = 0

        flow_rate = self._flow_rate(previous_weight, weight, gap_millis)

        self._last_weight = weight
        self._last_timestamp_millis = timestamp
        self._telemetry = FilteredTelemetry(
            weight_grams=weight,
            flow_rate_grams_per_second=flow_rate,
            measured_at_millis=timestamp,
        )
        return self._telemetry

    @staticmethod
    def _flow_rate(previous: float, current: float, delta_millis: int) -> float:
        # Grams per second from a millisecond delta; a drop is noise, not a reverse pour
        if delta_millis <= 0:
            return 0.0
        rate = 1000 * (current - previous) / delta_millis
        return max(rate, 0.0)
