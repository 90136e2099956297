"""Pytest configuration and shared fixtures."""

import heapq
import itertools
import tempfile
from pathlib import Path

import pytest

from shellfix.host import Pane


class FakePane(Pane):
    """Pane that records everything the assistant does to it."""

    def __init__(self, pane_id="pane-1", cwd=""):
        self._pane_id = pane_id
        self.cwd = cwd
        self.outputs = []
        self.sent = []
        self.toasts = []
        self.fail_send = False

    @property
    def pane_id(self):
        return self._pane_id

    def inject_output(self, text):
        self.outputs.append(text)

    def send_text(self, text):
        if self.fail_send:
            raise RuntimeError("pane is gone")
        self.sent.append(text)

    def emit_toast(self, name):
        self.toasts.append(name)

    def current_working_dir(self):
        return self.cwd

    @property
    def output_text(self):
        return "".join(self.outputs)


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop for call_later, driven by a FakeClock."""

    def __init__(self, clock):
        self.clock = clock
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, callback, *args):
        handle = FakeHandle()
        heapq.heappush(self._queue, (self.clock() + delay, next(self._seq), handle, callback, args))
        return handle

    @property
    def pending(self):
        return sum(1 for _, _, handle, _, _ in self._queue if not handle.cancelled)

    def run_for(self, seconds):
        """Advance the clock by `seconds`, running callbacks as they fall due."""
        end = self.clock() + seconds
        while self._queue and self._queue[0][0] <= end:
            when, _, handle, callback, args = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.now = max(self.clock.now, when)
            callback(*args)
        self.clock.now = end


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    dir_path = tempfile.mkdtemp()
    yield dir_path
    # Cleanup
    import shutil
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def state_dir(temp_dir, monkeypatch):
    """Isolated state directory with no SHELLFIX_* overrides leaking in."""
    path = Path(temp_dir) / "state"
    path.mkdir()
    monkeypatch.setenv("SHELLFIX_STATE_DIR", str(path))
    for name in ("SHELLFIX_API_KEY", "SHELLFIX_MODEL", "SHELLFIX_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    return path


@pytest.fixture
def fake_pane():
    return FakePane()


@pytest.fixture
def make_pane():
    """Factory for extra panes: make_pane("pane-2")."""
    return FakePane


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_loop(fake_clock):
    return FakeLoop(fake_clock)


# Markers for slow tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
