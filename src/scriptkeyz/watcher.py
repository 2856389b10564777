import os

from asyncio import TimerHandle
from typing import List, Optional

from inotify_simple import INotify, flags
from inotify_simple import Event as inotify_Event

from .lib.logger import debug, info

_WATCH_FLAGS = flags.CLOSE_WRITE | flags.MOVED_TO | flags.DELETE | flags.MOVED_FROM
_GONE = flags.DELETE | flags.MOVED_FROM


class ScriptWatcher:
    """
    Reloads scripts when their files change on disk.

    Changes are collected and applied together once the directory has been
    quiet for ``delay`` seconds, so an editor's write-rename-delete dance
    results in one reload. Tasks already running keep their old body.
    """

    def __init__(self, runtime, directory, delay=0.5):
        self._runtime = runtime
        self._directory = str(directory)
        self._delay = delay
        self._inotify: Optional[INotify] = None
        self._loop = None
        self._timer: Optional[TimerHandle] = None
        self._pending: List[inotify_Event] = []

    def start(self, loop):
        self._loop = loop
        self._inotify = INotify()
        self._inotify.add_watch(self._directory, _WATCH_FLAGS)
        loop.add_reader(self._inotify.fd, self._on_readable)
        info(f"Watching {self._directory} for script changes")

    def _on_readable(self):
        self._pending.extend(self._inotify.read(0))
        if self._timer:
            self._timer.cancel()
        self._timer = self._loop.call_later(self._delay, self.apply_pending)

    def apply_pending(self):
        self._timer = None
        # last event per file wins
        latest = {}
        while self._pending:
            event: inotify_Event = self._pending.pop(0)
            # type hint for `event.name` keeps the str methods below obvious
            event_name: str = event.name
            if not event_name.endswith(".py") or event_name.startswith((".", "_")):
                continue
            latest[event_name] = event

        for event_name, event in latest.items():
            name = event_name[:-3]
            path = os.path.join(self._directory, event_name)
            if event.mask & _GONE:
                self._runtime.unload_script(name)
                continue
            debug(f"change detected in {path}", ctx="+S")
            self._runtime.load_script(name, path)

    def close(self):
        if self._timer:
            self._timer.cancel()
            self._timer = None
        if self._inotify is not None:
            if self._loop is not None:
                self._loop.remove_reader(self._inotify.fd)
            self._inotify.close()
            self._inotify = None
