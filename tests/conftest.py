import pytest

from aiolfsmart.scheduler import Scheduler
from aiolfsmart.telemetry import FilteredTelemetry


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Scheduler with a manual clock; timers fire only inside advance()."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self._handles = []

    def time(self):
        return self.now

    def _schedule(self, delay, callback):
        handle = FakeHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback()
        self.now = target


class FakeScale:
    """Records commands sent by the session and serves live telemetry."""

    def __init__(self, accept=True):
        self.accept = accept
        self.commands = []
        self.weight = 0.0
        self.flow_rate = 0.0

    def tare(self):
        self.commands.append("tare")
        return self.accept

    def switch_to_grams(self):
        self.commands.append("switch_to_grams")
        return self.accept

    def telemetry(self):
        return FilteredTelemetry(
            weight_grams=self.weight, flow_rate_grams_per_second=self.flow_rate
        )


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def fake_scale():
    return FakeScale()
