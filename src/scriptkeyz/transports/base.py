import abc

from dataclasses import dataclass
from typing import List

from ..lib.logger import log_at


@dataclass(frozen=True)
class LoadCommand:
    name: str
    path: str


@dataclass(frozen=True)
class UnloadCommand:
    name: str


class Transport(abc.ABC):
    """
    The runtime's only view of the host.

    Inbound: ``poll`` returns whatever arrived (events, state query
    responses, load commands). Outbound: synthetic events, query requests
    and notifications. Implementations must never block outside ``poll``.
    """

    def start(self, loop):
        """Hook the transport into the running event loop."""

    @abc.abstractmethod
    async def poll(self, timeout: float) -> List[object]:
        """
        Wait at most ``timeout`` seconds for inbound messages and return them
        in arrival order. Raises TransportClosed once the host input is
        exhausted.
        """

    @abc.abstractmethod
    def send_synthetic(self, events):
        """Deliver one flushed batch of synthetic events, in order."""

    @abc.abstractmethod
    def send_query(self, query):
        """Forward a state query. The answer comes back through ``poll``."""

    def ready(self):
        pass

    def loaded(self, name):
        pass

    def error(self, message):
        pass

    def consumed(self, name, event):
        pass

    def passed(self, name, event):
        pass

    def log(self, level, message):
        log_at(level, message)

    def close(self):
        pass
