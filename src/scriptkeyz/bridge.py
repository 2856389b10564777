from collections import deque
from typing import Callable, Dict, List, Optional

from .errors import QueryProtocolViolation
from .lib.logger import debug, warn
from .models.event import SyntheticEvent
from .models.query import StateQuery, StateResponse, decode_answer
from .models.task import Task


class OutputBridge:
    """
    FIFO of synthetic events produced by scripts.

    ``emit`` never blocks and never fails. ``flush`` hands the whole queue
    to the sink in emission order, once per scheduler iteration.
    """

    def __init__(self):
        self._queue = deque()

    def __len__(self):
        return len(self._queue)

    @property
    def pending(self):
        return len(self._queue)

    def emit(self, event: SyntheticEvent):
        self._queue.append(event)

    def flush(self, sink: Optional[Callable[[List[SyntheticEvent]], None]] = None):
        # swap the queue out first, anything emitted by the sink itself
        # belongs to the next batch
        batch = list(self._queue)
        self._queue.clear()
        if batch:
            debug(f"flushing {len(batch)} synthetic event(s)", ctx="OO")
        if sink is not None and batch:
            sink(batch)
        return batch

    def discard(self):
        self._queue.clear()


class QueryBridge:
    """
    Request/response channel between running tasks and the host.

    Each task may have one outstanding query. The request is forwarded to
    the host as soon as it is issued; the answer comes back later through
    ``resolve`` and is delivered exactly once.
    """

    def __init__(self, forward: Optional[Callable[[StateQuery], None]] = None):
        self._forward = forward
        self._pending: Dict[int, StateQuery] = {}
        self._next_id = 1

    def __len__(self):
        return len(self._pending)

    def set_forward(self, forward: Callable[[StateQuery], None]):
        self._forward = forward

    def pending(self) -> List[StateQuery]:
        return list(self._pending.values())

    def issue(self, task: Task, kind: str, arg=None) -> StateQuery:
        if task.query is not None:
            task.violation = QueryProtocolViolation(
                f"Script {task.name} issued a {kind} query while query "
                f"{task.query.id} ({task.query.kind}) is still outstanding"
            )
            raise task.violation
        query = StateQuery(id=self._next_id, script=task.name, kind=kind, arg=arg, task=task)
        self._next_id += 1
        task.query = query
        self._pending[query.id] = query
        debug(f"query {query.id}: {kind}({'' if arg is None else arg}) from {task.name}", ctx="??")
        if self._forward is not None:
            self._forward(query)
        return query

    def resolve(self, response: StateResponse) -> Optional[StateQuery]:
        query = self._pending.pop(response.id, None)
        if query is None:
            warn(f"Ignoring response to unknown or stale query {response.id}")
            return None
        query.answered = True
        query.value = decode_answer(query.kind, response.value)
        return query

    def cancel(self, task: Task):
        query = task.query
        if query is not None:
            self._pending.pop(query.id, None)
        task.query = None

    def discard(self):
        self._pending.clear()
