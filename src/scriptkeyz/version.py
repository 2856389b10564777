__name__ = "scriptkeyz"

__version__ = "0.1.0"

__description__ = "A cooperative script engine for Linux input remapping daemons."

__doc__ = """
``scriptkeyz`` runs user-authored Python handler scripts against a stream of
input events coming from a remapping daemon.

- Handlers are plain Python files defining ``handle(event)`` (sync or async),
  or a bare script body that runs once per event.
- Handlers can ``await sleep(...)``, type text with an inter-key delay and
  query host state (key state, modifiers, device presence) without ever
  blocking the capture path.
- Synthetic output events are batched and flushed to the host in order.
- Two host bindings: a line protocol over stdin/stdout, and direct call
  hooks for hosts that embed the engine.
"""
