import asyncio
import json
import os
import sys

from typing import List, Optional

from ..errors import ProtocolError, TransportClosed
from ..lib.logger import debug, error, info, log_at
from ..models.event import Event
from ..models.query import StateResponse
from .base import LoadCommand, Transport, UnloadCommand

# Inbound, one command per line:
#
#   LOAD:<name>:<path>
#   UNLOAD:<name>
#   EVENT:{"event_type":1,"code":30,"value":1,"timestamp_sec":0,"timestamp_nsec":0,"script":"x"}
#   RESPONSE:{"id":3,"value":true}
#
# Outbound:
#
#   READY, LOADED:<name>, ERROR:<message>, CONSUME:<name>,
#   SYNTHETIC:{"event_type":1,"code":30,"value":1}
#   STATE:{"id":3,"script":"x","kind":"KeyState","arg":30}


def _json_payload(command, payload):
    try:
        return json.loads(payload)
    except ValueError as err:
        raise ProtocolError(f"Invalid JSON in {command}: {err}") from err


def parse_line(line: str):
    """Turn one protocol line into a message, None for a blank line."""
    line = line.strip()
    if not line:
        return None

    command, sep, payload = line.partition(":")
    if not sep:
        raise ProtocolError(f"Unknown command: {line}")

    if command == "EVENT":
        return Event.from_json(_json_payload(command, payload))
    if command == "RESPONSE":
        return StateResponse.from_json(_json_payload(command, payload))
    if command == "LOAD":
        name, sep, path = payload.partition(":")
        if not sep or not name or not path:
            raise ProtocolError(f"LOAD expects <name>:<path>, got '{payload}'")
        return LoadCommand(name, path)
    if command == "UNLOAD":
        if not payload:
            raise ProtocolError("UNLOAD expects a script name")
        return UnloadCommand(payload)

    raise ProtocolError(f"Unknown command: {command}")


def _compact(data) -> str:
    return json.dumps(data, separators=(",", ":"))


class LineProtocolTransport(Transport):
    """
    Host binding over a pair of byte streams, normally stdin and stdout.

    Input is read without blocking through ``loop.add_reader`` and split
    into lines. Only protocol lines go to the writer; logging stays on
    stderr.
    """

    def __init__(self, fd: Optional[int] = None, writer=None):
        self._fd = fd
        self._writer = writer
        self._buffer = b""
        self._inbox: List[object] = []
        self._eof = False
        self._loop = None
        self._wakeup: Optional[asyncio.Event] = None

    @classmethod
    def stdio(cls):
        return cls(fd=sys.stdin.fileno(), writer=sys.stdout)

    @property
    def closed(self):
        return self._eof

    def start(self, loop):
        self._loop = loop
        self._wakeup = asyncio.Event()
        if self._fd is not None:
            os.set_blocking(self._fd, False)
            loop.add_reader(self._fd, self._on_readable)

    # ─── INBOUND ──────────────────────────────────────────────────────────────

    def _on_readable(self):
        try:
            chunk = os.read(self._fd, 65536)
        except BlockingIOError:
            return
        except OSError as err:
            error(f"Reading host input failed: {err}")
            chunk = b""
        if not chunk:
            self.feed_eof()
            return
        self._buffer += chunk
        while b"\n" in self._buffer:
            raw, self._buffer = self._buffer.split(b"\n", 1)
            self.feed_line(raw.decode("utf-8", errors="replace"))

    def feed_line(self, line: str):
        try:
            message = parse_line(line)
        except ProtocolError as err:
            error(str(err))
            self.error(str(err))
            return
        if message is None:
            return
        debug(f"rx {line.strip()}", ctx="<-")
        self._inbox.append(message)
        self._wake()

    def feed_eof(self):
        if self._eof:
            return
        if self._buffer:
            leftover, self._buffer = self._buffer, b""
            self.feed_line(leftover.decode("utf-8", errors="replace"))
        self._eof = True
        self._remove_reader()
        self._wake()

    def _wake(self):
        if self._wakeup is not None:
            self._wakeup.set()

    async def poll(self, timeout: float) -> List[object]:
        if not self._inbox and not self._eof and self._wakeup is not None:
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except asyncio.TimeoutError:
                pass
        if self._inbox:
            batch, self._inbox = self._inbox, []
            return batch
        if self._eof:
            raise TransportClosed("end of input stream")
        return []

    # ─── OUTBOUND ─────────────────────────────────────────────────────────────

    def _write(self, line: str):
        if self._writer is None:
            return
        try:
            self._writer.write(line + "\n")
            self._writer.flush()
        except BrokenPipeError:
            error("Host closed the output stream")
            self._writer = None
            self.feed_eof()

    def ready(self):
        self._write("READY")

    def loaded(self, name):
        self._write(f"LOADED:{name}")

    def error(self, message):
        # one notification per line, whatever the message contains
        self._write("ERROR:" + " ".join(str(message).splitlines()))

    def consumed(self, name, event):
        self._write(f"CONSUME:{name}")

    def send_synthetic(self, events):
        for event in events:
            self._write("SYNTHETIC:" + _compact(event.to_json()))

    def send_query(self, query):
        self._write("STATE:" + _compact(query.to_json()))

    def log(self, level, message):
        log_at(level, message)

    def _remove_reader(self):
        if self._loop is not None and self._fd is not None:
            try:
                self._loop.remove_reader(self._fd)
            except (ValueError, OSError):
                pass

    def close(self):
        self._remove_reader()
        info("Line protocol closed", ctx="--")
