import json
from dataclasses import dataclass, field
from typing import Any

from ..errors import ProtocolError

# Query kinds the host is known to answer. The set is host-defined, any
# other kind string is forwarded as is.
KEY_STATE                       = "KeyState"
MODIFIER_STATE                  = "ModifierState"
DEVICE_CONNECTED                = "DeviceConnected"


@dataclass
class StateQuery:
    id: int
    script: str
    kind: str
    arg: Any                    = None
    # filled in by the query bridge, exactly once
    answered: bool              = False
    value: Any                  = None
    task: Any                   = field(default=None, repr=False, compare=False)

    def to_json(self) -> dict:
        return {"id": self.id, "script": self.script, "kind": self.kind, "arg": self.arg}


@dataclass(frozen=True)
class StateResponse:
    id: int
    value: Any

    @classmethod
    def from_json(cls, data: dict) -> "StateResponse":
        if not isinstance(data, dict):
            raise ProtocolError(f"Response must be a JSON object, got {type(data).__name__}")
        query_id = data.get("id")
        if not isinstance(query_id, int) or isinstance(query_id, bool):
            raise ProtocolError(f"Response field 'id' must be an integer, got {query_id!r}")
        return cls(query_id, data.get("value"))


def decode_answer(kind: str, raw):
    """
    Decode a host answer into the value handed back to the script.

    Hosts answer in strings: "true"/"false" for booleans and "[29,42]" for
    modifier lists. Already-decoded values pass through, modifier lists
    always come back as a set of ints.
    """
    value = raw
    if isinstance(raw, (bytes, bytearray)):
        value = raw.decode("utf-8", errors="replace")
    if isinstance(value, str):
        text = value.strip()
        if text in ("true", "false"):
            value = text == "true"
        else:
            try:
                value = json.loads(text)
            except ValueError:
                value = text
    if kind == MODIFIER_STATE:
        if value in (None, "", False):
            return set()
        try:
            return {int(code) for code in value}
        except (TypeError, ValueError):
            return set()
    if kind in (KEY_STATE, DEVICE_CONNECTED):
        return bool(value)
    return value
