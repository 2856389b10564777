from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import DispatchBusy, HandlerError, ScriptNotLoaded
from .lib import logger
from .lib.logger import debug, error, warn
from .models.event import Event
from .models.task import Outcome, Task
from .registry import ScriptRegistry
from .scheduler import Scheduler

AUTO                            = "auto"
TARGETED                        = "targeted"
BROADCAST                       = "broadcast"
ADDRESSING_MODES                = (AUTO, TARGETED, BROADCAST)

DELIVERED                       = "delivered"
BUSY                            = "busy"
NOT_LOADED                      = "not-loaded"
REJECTED                        = "rejected"


@dataclass(frozen=True)
class DispatchResult:
    script: Optional[str]
    status: str


class Dispatcher:
    """
    Decides which script tasks see an event, and reports what they did with it.

    Targeted events (``event.script`` set) go to exactly one script,
    untargeted ones are offered to every registered script in
    registration order. A task that is not idle when its event arrives
    does not get it: the event is dropped and a busy notice goes out.
    """

    def __init__(self,
                 registry: ScriptRegistry,
                 scheduler: Scheduler,
                 make_namespace: Callable[[Task], dict],
                 notifier=None,
                 mode: str = AUTO):
        if mode not in ADDRESSING_MODES:
            raise ValueError(f"Unknown addressing mode: {mode}")
        self._registry = registry
        self._scheduler = scheduler
        self._make_namespace = make_namespace
        self._notifier = notifier
        self.mode = mode
        self.stats = Counter()
        scheduler.on_outcome = self._on_outcome

    def targets(self, event: Event) -> List[str]:
        if self.mode == BROADCAST:
            return self._registry.names()
        if event.script:
            return [event.script]
        if self.mode == TARGETED:
            return []
        return self._registry.names()

    def dispatch(self, event: Event) -> List[DispatchResult]:
        if logger.VERBOSE:
            debug()
            debug(f"in {event}", ctx="II")
        if self.mode == TARGETED and not event.script:
            warn(f"Dropping untargeted event in targeted mode: {event}")
            self.stats[REJECTED] += 1
            return [DispatchResult(None, REJECTED)]
        return [self._offer(name, event) for name in self.targets(event)]

    def _offer(self, name, event: Event) -> DispatchResult:
        definition = self._registry.get(name)
        if definition is None:
            self._report_error(ScriptNotLoaded(name))
            self.stats[NOT_LOADED] += 1
            return DispatchResult(name, NOT_LOADED)

        task = self._scheduler.task_for(name)
        # an idle task built from an older body gives way to the new one,
        # busy tasks keep running the body they started with
        if task is not None and task.is_idle and task.definition is not definition:
            self._scheduler.retire(task)
            task = None

        if task is None:
            task = self._scheduler.spawn(definition, self._make_namespace)
        elif not task.is_idle:
            self._report_error(DispatchBusy(name, task.state))
            self.stats[BUSY] += 1
            return DispatchResult(name, BUSY)

        self._scheduler.deliver(task, event.with_script(name))
        self._scheduler.run_ready()
        self.stats[DELIVERED] += 1
        return DispatchResult(name, DELIVERED)

    def _on_outcome(self, task: Task, event: Optional[Event], outcome: Outcome,
                    err: Optional[HandlerError]):
        self.stats[str(outcome)] += 1
        # unloaded or replaced while busy
        if task.is_idle and self._registry.get(task.name) is not task.definition:
            self._scheduler.retire(task)
        if outcome is Outcome.CONSUME:
            debug(f"{task.name} consumed {event}", ctx="<<")
            if self._notifier is not None:
                self._notifier.consumed(task.name, event)
            return
        if outcome is Outcome.ERROR:
            self._report_error(err)
        # errors count as pass-through for the event that triggered them
        if self._notifier is not None:
            self._notifier.passed(task.name, event)

    def _report_error(self, err):
        error(str(err))
        if self._notifier is not None:
            self._notifier.error(str(err))
