from evdev.ecodes import EV_KEY

from scriptkeyz.config import Settings
from scriptkeyz.errors import TransportClosed
from scriptkeyz.models.event import Event
from scriptkeyz.runtime import Runtime
from scriptkeyz.transports.base import Transport
from scriptkeyz.transports.embedded import HostHooks


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingTransport(Transport):
    """
    Host stand-in for tests. Batches pushed with ``push`` come out of
    ``poll`` one per call; once the inbox is empty and ``close_input``
    was called, ``poll`` raises TransportClosed like a real host going away.
    """

    def __init__(self):
        self.inbox = []
        self.input_closed = False
        self.lines = []
        self.batches = []
        self.queries = []
        self.passed_events = []
        self.consumed_events = []
        self.logs = []
        self.started = False
        self.closed = False

    def push(self, *messages):
        self.inbox.append(list(messages))

    def close_input(self):
        self.input_closed = True

    def start(self, loop):
        self.started = True

    async def poll(self, timeout):
        if self.inbox:
            return self.inbox.pop(0)
        if self.input_closed:
            raise TransportClosed("stub input exhausted")
        return []

    def send_synthetic(self, events):
        self.batches.append(list(events))

    def send_query(self, query):
        self.queries.append(query)

    def ready(self):
        self.lines.append("READY")

    def loaded(self, name):
        self.lines.append(f"LOADED:{name}")

    def error(self, message):
        self.lines.append(f"ERROR:{message}")

    def consumed(self, name, event):
        self.lines.append(f"CONSUME:{name}")
        self.consumed_events.append((name, event))

    def passed(self, name, event):
        self.passed_events.append((name, event))

    def log(self, level, message):
        self.logs.append((level, message))

    def close(self):
        self.closed = True

    @property
    def synthetic(self):
        """All synthetic events sent so far, as (type, code, value)."""
        return [(e.event_type, e.code, e.value) for batch in self.batches for e in batch]

    @property
    def errors(self):
        return [line[len("ERROR:"):] for line in self.lines if line.startswith("ERROR:")]


class RecordingHooks(HostHooks):
    def __init__(self, fd=None, answers=None):
        self.fd = fd
        self.pending = []
        self.answers = answers or {}
        self.emitted = []
        self.asked = []
        self.logs = []
        self.consumed = []
        self.passed = []

    def get_signal_readiness_fd(self):
        return self.fd

    def fetch_pending_events(self):
        events, self.pending = self.pending, []
        return events

    def emit_synthetic_event(self, event_type, code, value):
        self.emitted.append((event_type, code, value))

    def query_host_state(self, kind, arg):
        self.asked.append((kind, arg))
        answer = self.answers[kind]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def log(self, level, message):
        self.logs.append((level, message))

    def script_consumed(self, name, event):
        self.consumed.append((name, event))

    def script_passed(self, name, event):
        self.passed.append((name, event))


def key(code, value, script=None, sec=0, nsec=0):
    return Event(EV_KEY, code, value, sec, nsec, script)


def press(code, script=None):
    return key(code, 1, script)


def release(code, script=None):
    return key(code, 0, script)


def make_runtime(clock=None, **settings):
    transport = RecordingTransport()
    runtime = Runtime(transport, Settings(**settings), clock=clock or FakeClock())
    return runtime, transport
