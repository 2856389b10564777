class ScriptkeyzError(Exception):
    pass


class LoadError(ScriptkeyzError):
    """Script file unreadable or not compilable. The registry is unchanged."""

    def __init__(self, name, path, cause):
        self.name = name
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to load script {name}: {cause}")


class ScriptNotLoaded(ScriptkeyzError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Script not loaded: {name}")


class DispatchBusy(ScriptkeyzError):
    """Event arrived while the script's task was not idle. The event is dropped."""

    def __init__(self, name, state):
        self.name = name
        self.state = state
        super().__init__(f"Script {name} busy ({state}), event dropped")


class HandlerError(ScriptkeyzError):
    def __init__(self, name, cause):
        self.name = name
        self.cause = cause
        super().__init__(f"Script {name} error: {cause.__class__.__name__}: {cause}")


class ProtocolError(ScriptkeyzError):
    """Malformed inbound message. The message is discarded."""


class QueryProtocolViolation(ScriptkeyzError):
    """A task issued a state query while its previous one was still outstanding."""


class StepBudgetExceeded(ScriptkeyzError):
    pass


class TransportClosed(ScriptkeyzError):
    """The host input source is exhausted. Ends the run loop."""
