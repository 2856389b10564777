import abc
import asyncio
import os

from typing import List, Optional

from evdev import InputEvent

from ..errors import ProtocolError, TransportClosed
from ..lib.logger import debug, error
from ..models.event import Event
from ..models.query import StateResponse
from .base import Transport


class HostHooks(abc.ABC):
    """Functions a host provides when it runs the engine in-process."""

    @abc.abstractmethod
    def get_signal_readiness_fd(self) -> Optional[int]:
        """
        A descriptor that becomes readable when new events are queued, or
        None to have the engine poll ``fetch_pending_events`` instead.
        """

    @abc.abstractmethod
    def fetch_pending_events(self) -> list:
        """Drain queued events: ``Event``, evdev ``InputEvent`` or dicts."""

    @abc.abstractmethod
    def emit_synthetic_event(self, event_type, code, value):
        pass

    @abc.abstractmethod
    def query_host_state(self, kind, arg) -> str:
        pass

    @abc.abstractmethod
    def log(self, level, message):
        pass

    def script_consumed(self, name, event):
        pass

    def script_passed(self, name, event):
        pass


class EmbeddedTransport(Transport):
    """
    Host binding by direct calls.

    The loop waits on the host's readiness descriptor. State queries are
    answered synchronously by the host, but the answer is only handed back
    at the next poll so that the querying task is resumed by the scheduler
    like any other.
    """

    def __init__(self, hooks: HostHooks):
        self._hooks = hooks
        self._fd: Optional[int] = None
        self._loop = None
        self._wakeup: Optional[asyncio.Event] = None
        self._signaled = False
        self._responses: List[StateResponse] = []
        self._closed_reason: Optional[str] = None

    @property
    def closed(self):
        return self._closed_reason is not None

    def start(self, loop):
        self._loop = loop
        self._wakeup = asyncio.Event()
        fd = self._hooks.get_signal_readiness_fd()
        if fd is None or fd < 0:
            debug("No readiness descriptor, polling the host for events")
            return
        self._fd = fd
        os.set_blocking(fd, False)
        loop.add_reader(fd, self._on_signal)

    def _on_signal(self):
        try:
            data = os.read(self._fd, 4096)
        except BlockingIOError:
            return
        except OSError as err:
            self._close(f"readiness descriptor error: {err}")
            return
        if not data:
            self._close("readiness descriptor closed")
            return
        self._signaled = True
        self._wake()

    def _close(self, reason):
        error(f"Host input lost: {reason}")
        self._closed_reason = reason
        self._remove_reader()
        self._wake()

    def _wake(self):
        if self._wakeup is not None:
            self._wakeup.set()

    # ─── INBOUND ──────────────────────────────────────────────────────────────

    async def _wait(self, timeout):
        if self._fd is None or self._wakeup is None:
            await asyncio.sleep(timeout)
            return
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    async def poll(self, timeout: float) -> List[object]:
        if not self._responses and not self._signaled and not self.closed:
            await self._wait(timeout)
        if self.closed:
            raise TransportClosed(self._closed_reason)

        messages: List[object] = list(self._responses)
        self._responses.clear()
        if self._signaled or self._fd is None:
            self._signaled = False
            for raw in self._hooks.fetch_pending_events() or ():
                event = self._convert(raw)
                if event is not None:
                    messages.append(event)
        return messages

    def _convert(self, raw) -> Optional[Event]:
        if isinstance(raw, Event):
            return raw
        if isinstance(raw, InputEvent):
            return Event.from_input_event(raw)
        try:
            return Event.from_json(raw)
        except ProtocolError as err:
            self.error(str(err))
            return None

    # ─── OUTBOUND ─────────────────────────────────────────────────────────────

    def send_synthetic(self, events):
        for event in events:
            self._hooks.emit_synthetic_event(event.event_type, event.code, event.value)

    def send_query(self, query):
        try:
            raw = self._hooks.query_host_state(query.kind, query.arg)
        except Exception as err:
            error(f"Host failed to answer {query.kind} query {query.id}: {err}")
            raw = None
        self._responses.append(StateResponse(query.id, raw))

    def ready(self):
        self._hooks.log("info", "Script engine ready")

    def loaded(self, name):
        self._hooks.log("info", f"Script loaded: {name}")

    def error(self, message):
        self._hooks.log("error", str(message))

    def consumed(self, name, event):
        self._hooks.script_consumed(name, event)

    def passed(self, name, event):
        self._hooks.script_passed(name, event)

    def log(self, level, message):
        self._hooks.log(level, message)

    def _remove_reader(self):
        if self._loop is not None and self._fd is not None:
            try:
                self._loop.remove_reader(self._fd)
            except (ValueError, OSError):
                pass
            self._fd = None

    def close(self):
        self._remove_reader()
