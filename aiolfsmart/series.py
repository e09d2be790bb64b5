"""Timestamped weight and flow series for charting."""

from __future__ import annotations

from dataclasses import dataclass
import itertools

from .config import BrewConfig

_SAMPLE_IDS = itertools.count(1)


@dataclass(frozen=True, kw_only=True)
class Sample:
    """One chart point; timestamp is seconds since the session started."""

    id: int
    timestamp_seconds: float
    value_grams: float


class TimeSeries:
    """Append-only ordered samples, cleared between sessions."""

    def __init__(self) -> None:
        self._samples: list[Sample] = []

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> tuple[Sample, ...]:
        return tuple(self._samples)

    @property
    def last(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    def append(self, timestamp_seconds: float, value_grams: float) -> Sample:
        """Append a sample; timestamps must not go backwards."""
        last = self.last
        if last is not None and timestamp_seconds < last.timestamp_seconds:
            raise ValueError(
                f"Sample at {timestamp_seconds}s is older than {last.timestamp_seconds}s"
            )
        sample = Sample(
            id=next(_SAMPLE_IDS),
            timestamp_seconds=timestamp_seconds,
            value_grams=value_grams,
        )
        self._samples.append(sample)
        return sample

    def values(self) -> list[float]:
        return [sample.value_grams for sample in self._samples]

    def clear(self) -> None:
        self._samples.clear()


class BrewSeries:
    """The weight and flow series of one brewing session.

    Weight points closer than ``min_dose_grams`` to the last stored point
    are skipped, but never more than ``max_coalesced_samples`` in a row, so
    a flat stretch still shows up on the chart.
    """

    def __init__(self, config: BrewConfig | None = None) -> None:
        config = config or BrewConfig()
        self._coalesce_threshold = config.min_dose_grams
        self._max_coalesced = config.max_coalesced_samples
        self._coalesced = 0

        self.weight = TimeSeries()
        self.flow = TimeSeries()

    def sample_weight(self, timestamp_seconds: float, grams: float) -> Sample | None:
        """Record a weight sample unless it coalesces into the previous one."""
        last = self.weight.last
        if (
            last is not None
            and abs(grams - last.value_grams) < self._coalesce_threshold
            and self._coalesced < self._max_coalesced
        ):
            self._coalesced += 1
            return None
        self._coalesced = 0
        return self.weight.append(timestamp_seconds, grams)

    def sample_flow(self, timestamp_seconds: float, rate: float) -> Sample:
        """Record the current flow rate, clamped to zero."""
        return self.flow.append(timestamp_seconds, max(rate, 0.0))

    def clear(self) -> None:
        self.weight.clear()
        self.flow.clear()
        self._coalesced = 0
