import pytest


# ---------------------------------------------------------------------------
# Manual clock and scheduler (deterministic time)
# ---------------------------------------------------------------------------

class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ManualHandle:
    def __init__(self, when: float, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Stand-in for ``loop.call_later`` driven by ``advance()``."""

    def __init__(self):
        self.time = 0.0
        self.handles: list[ManualHandle] = []

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self.time + delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.time = handle.when
            handle.callback(*handle.args)
        self.time = target


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeTransport:
    """Records connect/close calls; the test drives the callbacks."""

    def __init__(self, fail_on_connect: Exception | None = None):
        self.fail_on_connect = fail_on_connect
        self.connect_calls: list[str] = []
        self.close_calls = 0
        self.on_open = None
        self.on_message = None
        self.on_error = None

    def connect(self, url, on_open, on_message, on_error):
        self.connect_calls.append(url)
        if self.fail_on_connect is not None:
            raise self.fail_on_connect
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error

    def close(self):
        self.close_calls += 1

    # Helpers for tests
    def open(self):
        self.on_open()

    def send(self, data: str):
        self.on_message(data)

    def fail(self, error: Exception):
        self.on_error(error)


async def async_iter(items):
    for item in items:
        yield item


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def recorder():
    """Listener that collects every event it receives."""
    events = []

    def _record(event):
        events.append(event)

    _record.events = events
    return _record
