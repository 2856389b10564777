import inspect
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Optional

from .event import Event
from .query import StateQuery


@unique
class TaskState(Enum):
    IDLE            = "idle"
    RUNNING         = "running"
    SLEEP_WAITING   = "sleep-waiting"
    QUERY_WAITING   = "query-waiting"
    DEAD            = "dead"

    def __str__(self):
        return self.value


@unique
class Outcome(Enum):
    CONSUME         = "consume"
    PASS            = "pass"
    ERROR           = "error"

    def __str__(self):
        return self.value


class _Consume:
    def __repr__(self):
        return "CONSUME"


# handlers may return this instead of calling consume()
CONSUME = _Consume()


# ─── SUSPENSION REQUESTS ──────────────────────────────────────────────────────

# What a task hands the scheduler when it parks. Only the scheduler
# ever sees these objects.


@dataclass(frozen=True)
class SleepRequest:
    seconds: float


@dataclass(frozen=True)
class QueryRequest:
    query: StateQuery


class Suspend:
    """Awaitable that parks the awaiting task until the scheduler resumes it."""

    __slots__ = ("request",)

    def __init__(self, request):
        self.request = request

    def __await__(self):
        value = yield self.request
        return value


# ─── TASK ─────────────────────────────────────────────────────────────────────


@dataclass(eq=False)
class Task:
    """
    One script's handler in progress.

    The namespace is the script's globals, private to this task. It lives
    as long as the task does, so module-level variables in a script keep
    their values between events. A script that defines ``handle`` keeps its
    task alive between events (persistent). A script without one runs its
    whole body per event and the task dies after each run (ephemeral).
    """

    definition: Any
    namespace: dict
    state: TaskState                = TaskState.IDLE
    # pending input event slot
    event: Optional[Event]          = None
    coro: Any                       = field(default=None, repr=False)
    query: Optional[StateQuery]     = None
    # set by the query bridge, fails the task even if the script catches it
    violation: Optional[Exception]  = None
    sleep_entry: Any                = field(default=None, repr=False)
    consumed: bool                  = False
    started: bool                   = False
    persistent: Optional[bool]      = None

    @property
    def name(self):
        return self.definition.name

    @property
    def is_idle(self):
        return self.state is TaskState.IDLE

    @property
    def is_alive(self):
        return self.state is not TaskState.DEAD

    def begin(self, event: Event):
        """Fill the input slot and prepare the coroutine for one handling cycle."""
        self.event = event
        self.consumed = False
        self.violation = None
        self.coro = self._cycle(event)
        self.state = TaskState.RUNNING

    def end_cycle(self):
        self.event = None
        self.coro = None
        self.query = None

    async def _cycle(self, event: Event):
        self.namespace["event"] = event

        if not self.started:
            self.started = True
            result = eval(self.definition.code, self.namespace)
            # compiled with top-level await allowed: awaits in the body
            # turn the whole body into a coroutine
            if inspect.iscoroutine(result):
                await result
            self.persistent = callable(self.namespace.get("handle"))
            if not self.persistent:
                return self.consumed

        result = self.namespace["handle"](event)
        if inspect.isawaitable(result):
            result = await result
        return self.consumed or result is CONSUME or result is True
