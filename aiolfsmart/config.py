"""Tunable settings for the brewing core."""

from dataclasses import dataclass

from .const import (
    DEFAULT_FLOW_SAMPLE_INTERVAL,
    DEFAULT_MAX_COALESCED_SAMPLES,
    DEFAULT_MIN_DOSE_GRAMS,
    DEFAULT_NOISE_THRESHOLD_GRAMS,
    DEFAULT_SPIN_PATIENCE,
    DEFAULT_SPIN_WINDOW_MILLIS,
    DEFAULT_TARE_POLL_INTERVAL,
    DEFAULT_WEIGHT_SAMPLE_INTERVAL,
)


@dataclass(frozen=True, kw_only=True)
class BrewConfig:
    """Thresholds and intervals shared by telemetry, series and session.

    min_dose_grams separates "nothing on the scale" from a real dose and is
    also the coalescing threshold for weight samples.
    noise_threshold_grams and spin_patience drive the spin guard: a drop
    larger than the threshold that arrives within spin_window_millis of the
    previous reading is held for at most spin_patience samples.
    """

    min_dose_grams: float = DEFAULT_MIN_DOSE_GRAMS
    noise_threshold_grams: float = DEFAULT_NOISE_THRESHOLD_GRAMS
    spin_patience: int = DEFAULT_SPIN_PATIENCE
    spin_window_millis: int = DEFAULT_SPIN_WINDOW_MILLIS
    weight_sample_interval: float = DEFAULT_WEIGHT_SAMPLE_INTERVAL
    flow_sample_interval: float = DEFAULT_FLOW_SAMPLE_INTERVAL
    tare_poll_interval: float = DEFAULT_TARE_POLL_INTERVAL
    max_coalesced_samples: int = DEFAULT_MAX_COALESCED_SAMPLES

    def __post_init__(self) -> None:
        if self.min_dose_grams < 0 or self.noise_threshold_grams < 0:
            raise ValueError("Thresholds must not be negative")
        if (
            self.spin_patience < 0
            or self.spin_window_millis < 0
            or self.max_coalesced_samples < 0
        ):
            raise ValueError("Sample counts and windows must not be negative")
        for interval in (
            self.weight_sample_interval,
            self.flow_sample_interval,
            self.tare_poll_interval,
        ):
            if interval <= 0:
                raise ValueError("Intervals must be positive")
