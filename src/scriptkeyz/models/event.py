from dataclasses import dataclass, replace
from enum import IntEnum, unique
from typing import Optional

from evdev import InputEvent, ecodes

from ..errors import ProtocolError
from ..lib.keycodes import key_name


@unique
class Action(IntEnum):

    UP, DOWN, HOLD = range(3)

    @property
    def is_pressed(self):
        return self == Action.DOWN or self == Action.HOLD

    @property
    def just_pressed(self):
        return self == Action.DOWN

    @property
    def is_released(self):
        return self == Action.UP

    @property
    def is_hold(self):
        return self == Action.HOLD

    def __str__(self):
        return self.name.lower()


def _require_int(data: dict, field: str, default=None) -> int:
    value = data.get(field, default)
    # bool is an int subclass, but "true" is never a valid code
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProtocolError(f"Event field '{field}' must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class Event:
    """
    One input event as delivered by the host.

    Immutable. ``script`` names the script the event is targeted at, when
    the host uses targeted addressing.
    """

    event_type: int
    code: int
    value: int
    timestamp_sec: int          = 0
    timestamp_nsec: int         = 0
    script: Optional[str]       = None

    @property
    def key(self):
        # code 0 is KEY_RESERVED, which scripts see as "no key"
        return None if self.code == 0 else self.code

    @property
    def is_key_event(self):
        return self.event_type == ecodes.EV_KEY

    @property
    def is_key_down(self):
        return self.value == Action.DOWN

    @property
    def is_key_up(self):
        return self.value == Action.UP

    @property
    def is_key_hold(self):
        return self.value == Action.HOLD

    @property
    def action(self) -> Optional[Action]:
        if not self.is_key_event or self.value not in (0, 1, 2):
            return None
        return Action(self.value)

    @property
    def key_identity(self):
        return (self.event_type, self.code)

    @property
    def timestamp(self) -> float:
        return self.timestamp_sec + self.timestamp_nsec / 1_000_000_000

    def with_script(self, script):
        return replace(self, script=script)

    @classmethod
    def from_json(cls, data: dict) -> "Event":
        if not isinstance(data, dict):
            raise ProtocolError(f"Event must be a JSON object, got {type(data).__name__}")
        script = data.get("script")
        if script is not None and not isinstance(script, str):
            raise ProtocolError(f"Event field 'script' must be a string, got {script!r}")
        return cls(
            event_type=_require_int(data, "event_type"),
            code=_require_int(data, "code"),
            value=_require_int(data, "value"),
            timestamp_sec=_require_int(data, "timestamp_sec", 0),
            timestamp_nsec=_require_int(data, "timestamp_nsec", 0),
            script=script or None,
        )

    def to_json(self) -> dict:
        return {
            "event_type": self.event_type,
            "code": self.code,
            "value": self.value,
            "timestamp_sec": self.timestamp_sec,
            "timestamp_nsec": self.timestamp_nsec,
            "script": self.script,
        }

    @classmethod
    def from_input_event(cls, event: InputEvent, script=None) -> "Event":
        return cls(
            event_type=event.type,
            code=event.code,
            value=event.value,
            timestamp_sec=event.sec,
            timestamp_nsec=event.usec * 1000,
            script=script,
        )

    def __str__(self):
        code = key_name(self.code) if self.is_key_event else self.code
        return (f"Event(type={self.event_type}, code={code}, value={self.value}, "
                f"time={self.timestamp_sec}.{self.timestamp_nsec:09d}, script={self.script})")


@dataclass(frozen=True)
class SyntheticEvent:
    """An event produced by a script, bound for the host's virtual device."""

    event_type: int
    code: int
    value: int
    origin_script: Optional[str] = None

    @classmethod
    def from_event(cls, event: Event, origin_script=None) -> "SyntheticEvent":
        return cls(event.event_type, event.code, event.value, origin_script)

    def to_json(self) -> dict:
        return {
            "event_type": self.event_type,
            "code": self.code,
            "value": self.value,
        }
