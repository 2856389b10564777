import heapq
import itertools
import sys
import time

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .bridge import QueryBridge
from .errors import HandlerError, QueryProtocolViolation, StepBudgetExceeded
from .lib.logger import debug, info
from .models.event import Event
from .models.query import StateResponse
from .models.task import Outcome, QueryRequest, SleepRequest, Task, TaskState


@dataclass(order=True)
class SleepEntry:
    deadline: float
    # insertion order, breaks ties between equal deadlines
    seq: int
    task: Task                  = field(compare=False)
    cancelled: bool             = field(default=False, compare=False)


OutcomeCallback = Callable[[Task, Optional[Event], Outcome, Optional[HandlerError]], None]


class Scheduler:
    """
    Run queue and timer set.

    Drives one task at a time: a task runs until it sleeps, waits on a
    query, finishes its handling cycle or dies. Nothing here ever blocks;
    waiting happens in the runtime's poll step.
    """

    def __init__(self,
                 queries: QueryBridge,
                 clock: Callable[[], float] = time.monotonic,
                 step_budget: Optional[int] = None,
                 on_outcome: Optional[OutcomeCallback] = None):
        self._queries = queries
        self._clock = clock
        self.step_budget = step_budget
        self.on_outcome = on_outcome

        self._tasks: Dict[str, Task] = {}
        self._timers: List[SleepEntry] = []
        self._ready: Deque[Tuple[Task, Any]] = deque()
        self._seq = itertools.count()
        self._current: Optional[Task] = None

    # ─── LIVE TASK SET ────────────────────────────────────────────────────────

    @property
    def current(self) -> Optional[Task]:
        return self._current

    def task_for(self, name) -> Optional[Task]:
        return self._tasks.get(name)

    def live_tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def spawn(self, definition, make_namespace: Optional[Callable[[Task], dict]] = None) -> Task:
        task = Task(definition=definition, namespace={})
        if make_namespace is not None:
            task.namespace = make_namespace(task)
        self._tasks[definition.name] = task
        debug(f"task created for {definition.name}", ctx="+T")
        return task

    def deliver(self, task: Task, event: Event):
        if not task.is_idle:
            raise RuntimeError(f"cannot deliver to {task.name} in state {task.state}")
        task.begin(event)
        self._ready.append((task, None))

    def retire(self, task: Task):
        """Drop an idle task without reporting an outcome."""
        self._kill(task)
        debug(f"task retired for {task.name}", ctx="-T")

    # ─── TIMER SET ────────────────────────────────────────────────────────────

    @property
    def pending_timers(self):
        return sum(1 for entry in self._timers if not entry.cancelled)

    def next_deadline(self) -> Optional[float]:
        while self._timers and self._timers[0].cancelled:
            heapq.heappop(self._timers)
        if not self._timers:
            return None
        return self._timers[0].deadline

    def fire_timers(self, now: Optional[float] = None) -> int:
        """Make every task whose deadline has passed runnable, earliest first."""
        if now is None:
            now = self._clock()
        fired = 0
        while self._timers and self._timers[0].deadline <= now:
            entry = heapq.heappop(self._timers)
            if entry.cancelled:
                continue
            task = entry.task
            task.sleep_entry = None
            task.state = TaskState.RUNNING
            self._ready.append((task, None))
            fired += 1
        return fired

    def _sleep(self, task: Task, seconds: float):
        deadline = self._clock() + max(0.0, float(seconds))
        entry = SleepEntry(deadline, next(self._seq), task)
        task.sleep_entry = entry
        task.state = TaskState.SLEEP_WAITING
        heapq.heappush(self._timers, entry)

    # ─── QUERIES ──────────────────────────────────────────────────────────────

    def resolve(self, response: StateResponse) -> bool:
        query = self._queries.resolve(response)
        if query is None:
            return False
        task = query.task
        # answered before the task got around to awaiting it, the value
        # waits on the query until then
        if task.state is TaskState.QUERY_WAITING and task.query is query:
            task.query = None
            task.state = TaskState.RUNNING
            self._ready.append((task, query.value))
        return True

    # ─── RUN QUEUE ────────────────────────────────────────────────────────────

    @property
    def runnable(self):
        return len(self._ready)

    def run_ready(self) -> int:
        ran = 0
        while self._ready:
            task, value = self._ready.popleft()
            if task.state is TaskState.DEAD:
                continue
            self._resume(task, value)
            ran += 1
        return ran

    def _resume(self, task: Task, value):
        self._current = task
        task.state = TaskState.RUNNING
        try:
            request = self._send(task, value)
        except StopIteration as stop:
            if task.violation is not None:
                self._fail(task, task.violation)
            else:
                self._complete(task, bool(stop.value))
        except (Exception, SystemExit) as exc:
            self._fail(task, task.violation or exc)
        else:
            # a protocol violation stands even when the script caught it
            if task.violation is not None:
                self._fail(task, task.violation)
            else:
                self._park(task, request)
        finally:
            self._current = None

    def _send(self, task: Task, value):
        if not self.step_budget:
            return task.coro.send(value)
        previous = sys.gettrace()
        sys.settrace(self._budget_tracer(task))
        try:
            return task.coro.send(value)
        finally:
            sys.settrace(previous)

    def _budget_tracer(self, task: Task):
        filename = task.definition.path
        budget = self.step_budget
        steps = 0

        def count_lines(frame, event, arg):
            nonlocal steps
            if event == "line":
                steps += 1
                if steps > budget:
                    raise StepBudgetExceeded(
                        f"ran {budget} steps without suspending"
                    )
            return count_lines

        def in_script(frame, event, arg):
            if frame.f_code.co_filename == filename:
                return count_lines
            return None

        return in_script

    def _park(self, task: Task, request):
        if isinstance(request, SleepRequest):
            self._sleep(task, request.seconds)
        elif isinstance(request, QueryRequest):
            query = request.query
            if query.task is not task or task.query is not query:
                self._fail(task, QueryProtocolViolation(
                    f"Script {task.name} awaited query {query.id} it does not own"
                ))
            elif query.answered:
                task.query = None
                self._ready.append((task, query.value))
            else:
                task.state = TaskState.QUERY_WAITING
        else:
            self._fail(task, TypeError(
                f"unsupported awaitable {request!r}, "
                "only sleep(), type_text() and state queries may be awaited"
            ))

    # ─── TERMINATION ──────────────────────────────────────────────────────────

    def _complete(self, task: Task, consumed: bool):
        event = task.event
        # a query that was issued but never awaited is orphaned now
        self._queries.cancel(task)
        task.end_cycle()
        if task.persistent:
            task.state = TaskState.IDLE
        else:
            self._kill(task)
        self._report(task, event, Outcome.CONSUME if consumed else Outcome.PASS, None)

    def _fail(self, task: Task, exc: BaseException):
        event = task.event
        err = exc if isinstance(exc, HandlerError) else HandlerError(task.name, exc)
        self._kill(task)
        task.end_cycle()
        self._report(task, event, Outcome.ERROR, err)

    def _kill(self, task: Task):
        task.state = TaskState.DEAD
        if task.sleep_entry is not None:
            task.sleep_entry.cancelled = True
            task.sleep_entry = None
        self._queries.cancel(task)
        if self._tasks.get(task.name) is task:
            del self._tasks[task.name]

    def _report(self, task, event, outcome, err):
        debug(f"{task.name}: {outcome} ({task.state})", ctx="<<")
        if self.on_outcome is not None:
            self.on_outcome(task, event, outcome, err)

    def discard_all(self) -> List[Task]:
        """
        Drop every live task and timer. No script cleanup runs.

        The dropped tasks are returned with their coroutines still
        suspended. Whoever holds on to them decides when, if ever, those
        coroutines are finalized; closing one would run the script's
        ``finally`` blocks.
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            self._kill(task)
        self._tasks.clear()
        self._timers.clear()
        self._ready.clear()
        return tasks

    def diag(self):
        info("*** SCHEDULER ***", ctx="DG")
        for task in self._tasks.values():
            info(f"task {task.name}: {task.state} event={task.event} query={task.query}", ctx="DG")
        for entry in sorted(self._timers):
            if not entry.cancelled:
                info(f"timer {entry.deadline:.6f} #{entry.seq} {entry.task.name}", ctx="DG")
        info(f"runnable: {len(self._ready)}", ctx="DG")
