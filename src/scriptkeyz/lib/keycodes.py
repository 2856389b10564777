from typing import Dict, Optional, Tuple

from evdev import ecodes

# Symbol table handed to every script namespace. Built once from the
# kernel's input-event-codes via evdev, so KEY_A, BTN_LEFT, EV_KEY,
# REL_X and friends all resolve to the same values the host uses.

KEY_VALUE_UP                    = 0
KEY_VALUE_DOWN                  = 1
KEY_VALUE_HOLD                  = 2

_SYMBOLS: Dict[str, int] = None
_CHARS: Dict[str, Tuple[int, bool]] = None


def symbols() -> Dict[str, int]:
    global _SYMBOLS
    if _SYMBOLS is None:
        table = {name: code for name, code in ecodes.ecodes.items() if name.isupper()}
        table.update(
            KEY_VALUE_UP=KEY_VALUE_UP,
            KEY_VALUE_DOWN=KEY_VALUE_DOWN,
            KEY_VALUE_HOLD=KEY_VALUE_HOLD,
        )
        _SYMBOLS = table
    return _SYMBOLS


def code_for(name) -> int:
    """
    Resolve a symbolic key name to its code.

    Accepts an int (returned as is), a full name like "KEY_A" or
    "BTN_LEFT", or a bare key name like "a" or "Enter".
    """
    if isinstance(name, int):
        return name
    table = symbols()
    candidate = str(name).strip().upper()
    if candidate in table:
        return table[candidate]
    if f"KEY_{candidate}" in table:
        return table[f"KEY_{candidate}"]
    raise KeyError(f"Unknown key name: {name}")


def key_name(code: int) -> str:
    name = ecodes.KEY.get(code) or ecodes.BTN.get(code)
    if name is None:
        return f"UNKNOWN({code})"
    # some codes carry several aliases, the first is the canonical one
    if isinstance(name, (list, tuple)):
        return name[0]
    return name


# ─── PRINTABLE CHARACTERS (US layout) ─────────────────────────────────────────

_UNSHIFTED_PUNCT = {
    "`": ecodes.KEY_GRAVE,      "-": ecodes.KEY_MINUS,
    "=": ecodes.KEY_EQUAL,      "[": ecodes.KEY_LEFTBRACE,
    "]": ecodes.KEY_RIGHTBRACE, "\\": ecodes.KEY_BACKSLASH,
    ";": ecodes.KEY_SEMICOLON,  "'": ecodes.KEY_APOSTROPHE,
    ",": ecodes.KEY_COMMA,      ".": ecodes.KEY_DOT,
    "/": ecodes.KEY_SLASH,      " ": ecodes.KEY_SPACE,
    "\n": ecodes.KEY_ENTER,     "\t": ecodes.KEY_TAB,
}

_SHIFTED_PUNCT = {
    "~": ecodes.KEY_GRAVE,      "!": ecodes.KEY_1,
    "@": ecodes.KEY_2,          "#": ecodes.KEY_3,
    "$": ecodes.KEY_4,          "%": ecodes.KEY_5,
    "^": ecodes.KEY_6,          "&": ecodes.KEY_7,
    "*": ecodes.KEY_8,          "(": ecodes.KEY_9,
    ")": ecodes.KEY_0,          "_": ecodes.KEY_MINUS,
    "+": ecodes.KEY_EQUAL,      "{": ecodes.KEY_LEFTBRACE,
    "}": ecodes.KEY_RIGHTBRACE, "|": ecodes.KEY_BACKSLASH,
    ":": ecodes.KEY_SEMICOLON,  '"': ecodes.KEY_APOSTROPHE,
    "<": ecodes.KEY_COMMA,      ">": ecodes.KEY_DOT,
    "?": ecodes.KEY_SLASH,
}


def _build_char_table():
    table = {}
    for letter in "abcdefghijklmnopqrstuvwxyz":
        code = getattr(ecodes, f"KEY_{letter.upper()}")
        table[letter] = (code, False)
        table[letter.upper()] = (code, True)
    for digit in "0123456789":
        table[digit] = (getattr(ecodes, f"KEY_{digit}"), False)
    for char, code in _UNSHIFTED_PUNCT.items():
        table[char] = (code, False)
    for char, code in _SHIFTED_PUNCT.items():
        table[char] = (code, True)
    return table


def char_to_key(char: str) -> Optional[Tuple[int, bool]]:
    """Return (code, shift_required) for a printable character, or None."""
    global _CHARS
    if _CHARS is None:
        _CHARS = _build_char_table()
    return _CHARS.get(char)
