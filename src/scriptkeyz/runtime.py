import asyncio
import time

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .api import ScriptContext
from .bridge import OutputBridge, QueryBridge
from .config import Settings
from .dispatcher import Dispatcher
from .errors import LoadError, TransportClosed
from .lib.logger import debug, info, warn
from .models.event import Event
from .models.query import StateResponse
from .models.task import Task
from .registry import ScriptRegistry
from .scheduler import Scheduler
from .transports.base import LoadCommand, Transport, UnloadCommand


class Runtime:
    """
    The process-wide engine state: registry, tasks, timers, both bridges
    and the scratch store scripts share, wired to one host transport.

    ``run`` drives the loop until the host input is exhausted or ``stop``
    is called. Each iteration fires due timers, polls the host, dispatches
    what arrived, runs whatever became runnable and flushes the synthetic
    output.
    """

    def __init__(self, transport: Transport, settings: Optional[Settings] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings or Settings()
        self.transport = transport
        self._clock = clock
        self._stopping = False
        self.iterations = 0
        # tasks dropped at shutdown, their coroutines are never closed
        self.abandoned: List[Task] = []

        # unguarded on purpose: any script may read and write it at any time
        self.shared = {}

        self.registry = ScriptRegistry(on_loaded=transport.loaded, on_error=transport.error)
        self.output = OutputBridge()
        self.queries = QueryBridge(forward=transport.send_query)
        self.scheduler = Scheduler(
            self.queries, clock=clock, step_budget=self.settings.step_budget
        )
        self.dispatcher = Dispatcher(
            self.registry,
            self.scheduler,
            self._make_namespace,
            notifier=transport,
            mode=self.settings.addressing,
        )

    def _make_namespace(self, task: Task) -> dict:
        context = ScriptContext(
            task, self.output, self.queries, self.shared, log_sink=self.transport.log
        )
        return context.namespace()

    # ─── SCRIPTS ──────────────────────────────────────────────────────────────

    def load_script(self, name, path) -> bool:
        try:
            self.registry.load(name, path)
        except LoadError:
            return False
        return True

    def load_source(self, name, source, path="<string>") -> bool:
        try:
            self.registry.load_source(name, source, path)
        except LoadError:
            return False
        return True

    def unload_script(self, name) -> bool:
        if not self.registry.unload(name):
            return False
        # a busy task finishes first and is retired when it goes idle
        task = self.scheduler.task_for(name)
        if task is not None and task.is_idle:
            self.scheduler.retire(task)
        return True

    def load_directory(self, directory) -> int:
        directory = Path(directory)
        if not directory.is_dir():
            warn(f"Scripts directory not found: {directory}")
            return 0
        loaded = 0
        for path in sorted(directory.glob("*.py")):
            if path.name.startswith((".", "_")):
                continue
            if self.load_script(path.stem, str(path)):
                loaded += 1
        info(f"{loaded} script(s) loaded from {directory}")
        return loaded

    # ─── LOOP ─────────────────────────────────────────────────────────────────

    def process(self, messages: Iterable[object]):
        messages = list(messages)
        # answers first, so tasks waiting on them run before new input
        for message in messages:
            if isinstance(message, StateResponse):
                self.scheduler.resolve(message)
        self.scheduler.run_ready()

        for message in messages:
            if isinstance(message, Event):
                self.dispatcher.dispatch(message)
            elif isinstance(message, LoadCommand):
                self.load_script(message.name, message.path)
            elif isinstance(message, UnloadCommand):
                self.unload_script(message.name)
            elif not isinstance(message, StateResponse):
                warn(f"Ignoring unknown message from host: {message!r}")

    def poll_timeout(self) -> float:
        timeout = self.settings.poll_timeout
        deadline = self.scheduler.next_deadline()
        if deadline is not None:
            timeout = max(0.0, min(timeout, deadline - self._clock()))
        return timeout

    def flush(self):
        return self.output.flush(self.transport.send_synthetic)

    async def run_once(self):
        self.scheduler.fire_timers(self._clock())
        self.scheduler.run_ready()

        messages = await self.transport.poll(self.poll_timeout())
        self.process(messages)

        self.scheduler.run_ready()
        self.flush()
        self.iterations += 1

    async def run(self):
        self._stopping = False
        self.transport.start(asyncio.get_running_loop())
        self.transport.ready()
        info("Ready to process input.")
        try:
            while not self._stopping:
                await self.run_once()
        except TransportClosed as err:
            info(f"Host input closed ({err}), shutting down")
        finally:
            self.shutdown()

    def stop(self):
        self._stopping = True

    def shutdown(self):
        live = len(self.scheduler.live_tasks())
        if live:
            debug(f"discarding {live} live task(s)")
        self.abandoned.extend(self.scheduler.discard_all())
        self.output.discard()
        self.queries.discard()
        self.transport.close()

    def dump_diagnostics(self):
        info("*** RUNTIME ***", ctx="DG")
        info(f"iterations: {self.iterations}", ctx="DG")
        info(f"scripts: {self.registry.names()}", ctx="DG")
        info(f"dispatch: {dict(self.dispatcher.stats)}", ctx="DG")
        info(f"pending queries: {[q.to_json() for q in self.queries.pending()]}", ctx="DG")
        info(f"queued output: {self.output.pending}", ctx="DG")
        info(f"shared keys: {sorted(map(str, self.shared))}", ctx="DG")
        self.scheduler.diag()
