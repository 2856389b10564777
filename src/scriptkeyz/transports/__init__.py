from .base import LoadCommand, Transport, UnloadCommand  # noqa: F401
from .embedded import EmbeddedTransport, HostHooks  # noqa: F401
from .line_protocol import LineProtocolTransport, parse_line  # noqa: F401
