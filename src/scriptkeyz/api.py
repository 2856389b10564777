from evdev import ecodes

from .bridge import OutputBridge, QueryBridge
from .lib import keycodes
from .lib.logger import log_at, warn
from .models.event import Action, Event, SyntheticEvent
from .models.query import DEVICE_CONNECTED, KEY_STATE, MODIFIER_STATE
from .models.task import CONSUME, QueryRequest, SleepRequest, Suspend, Task


class ScriptContext:
    """
    Everything a script can reach, bound to one task.

    Output functions queue synthetic events and return immediately. The
    awaitable ones (``sleep``, ``yield_now``, ``type_text`` and the state
    queries) park the task until the scheduler resumes it.
    """

    def __init__(self, task: Task, output: OutputBridge, queries: QueryBridge,
                 shared: dict, log_sink=None):
        self._task = task
        self._output = output
        self._queries = queries
        self._shared = shared
        self._log_sink = log_sink

    @property
    def name(self):
        return self._task.name

    # ─── OUTPUT ───────────────────────────────────────────────────────────────

    def emit(self, event_type, code, value):
        self._output.emit(SyntheticEvent(
            int(event_type), keycodes.code_for(code), int(value), self.name
        ))

    def press(self, code):
        self.emit(ecodes.EV_KEY, code, Action.DOWN)

    def press_down(self, *codes):
        for code in codes:
            self.emit(ecodes.EV_KEY, code, Action.DOWN)

    def release(self, code):
        self.emit(ecodes.EV_KEY, code, Action.UP)

    def tap(self, code):
        self.press(code)
        self.release(code)

    def pass_event(self, event: Event = None):
        if event is None:
            event = self._task.event
        if event is None:
            return
        self._output.emit(SyntheticEvent.from_event(event, self.name))

    async def type_text(self, text, delay=0):
        for char in str(text):
            mapping = keycodes.char_to_key(char)
            if mapping is None:
                warn(f"No keycode mapping for character: {char!r}", ctx=self.name)
                continue
            code, shifted = mapping
            if shifted:
                self.press_down(ecodes.KEY_LEFTSHIFT)
            self.tap(code)
            if shifted:
                self.release(ecodes.KEY_LEFTSHIFT)
            if delay and delay > 0:
                await self.sleep(delay)

    # ─── SUSPENSION ───────────────────────────────────────────────────────────

    def sleep(self, seconds):
        seconds = float(seconds)
        if seconds < 0:
            raise ValueError(f"sleep() needs a non-negative duration, got {seconds}")
        return Suspend(SleepRequest(seconds))

    def yield_now(self):
        return Suspend(SleepRequest(0.0))

    def query(self, kind, arg=None):
        # issued right away, so a second call before the first is
        # awaited is caught here
        return Suspend(QueryRequest(self._queries.issue(self._task, str(kind), arg)))

    def key_state(self, code):
        return self.query(KEY_STATE, keycodes.code_for(code))

    def modifier_state(self):
        return self.query(MODIFIER_STATE)

    def device_connected(self):
        return self.query(DEVICE_CONNECTED)

    # ─── MISC ─────────────────────────────────────────────────────────────────

    def consume(self):
        self._task.consumed = True

    def log(self, message, level="info"):
        if self._log_sink is not None:
            self._log_sink(level, f"[{self.name}] {message}")
        else:
            log_at(level, message, ctx=self.name)

    def namespace(self) -> dict:
        ns = dict(keycodes.symbols())
        ns.update(
            __name__=f"scriptkeyz.scripts.{self.name}",
            __file__=self._task.definition.path,
            script_name=self.name,
            event=None,
            shared=self._shared,
            CONSUME=CONSUME,
            emit=self.emit,
            press=self.press,
            press_down=self.press_down,
            release=self.release,
            tap=self.tap,
            pass_event=self.pass_event,
            type_text=self.type_text,
            sleep=self.sleep,
            yield_now=self.yield_now,
            query=self.query,
            key_state=self.key_state,
            modifier_state=self.modifier_state,
            device_connected=self.device_connected,
            consume=self.consume,
            log=self.log,
        )
        return ns
