"""A table binding MIDI controllers to OSC parameter paths, with learning."""

from __future__ import annotations

import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .argval import ArgVal, arg_val_from_float

__all__ = [
    "INVALID_MIDI",
    "Port",
    "Message",
    "MidiAddr",
    "MidiTable",
    "translate",
]

INVALID_MIDI = 255

_PATH_LEN = 128
_TABLE_SIZE = 128
_MAX_UNHANDLED_PATH = 128

_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True)
class Port:
    """A parameter port: its name with argument spec, metadata and sub-ports.

    ``name`` has the form ``"freq:f"``; ``metadata`` maps property names
    such as ``"min"``, ``"max"`` and ``"scale"`` to their values.  A port
    with ``ports`` set is a directory node.
    """

    name: str
    metadata: Mapping[str, Optional[str]] = field(default_factory=dict)
    ports: Any = None


@dataclass(frozen=True)
class Message:
    """An OSC message: an address and its typed arguments."""

    path: str
    args: tuple[ArgVal, ...] = ()

    @property
    def types(self) -> str:
        """The type tag string of the arguments."""
        return "".join(arg.type for arg in self.args)


@dataclass
class MidiAddr:
    """One table entry: a MIDI channel and controller bound to a path."""

    ch: int = INVALID_MIDI
    ctl: int = INVALID_MIDI
    path: str = ""
    type: Optional[str] = None
    conversion: Optional[Mapping[str, Optional[str]]] = None


def _atof(text: Optional[str]) -> float:
    match = _FLOAT_PREFIX.match(text or "")
    return float(match.group(1)) if match else 0.0


def _log(x: float) -> float:
    if x > 0:
        return math.log(x)
    return -math.inf if x == 0 else math.nan


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def translate(val: int, metadata: Optional[Mapping[str, Optional[str]]]) -> float:
    """Map a 7-bit controller value onto a parameter's range.

    The value 64 maps to the exact middle.  The range comes from the
    ``min``, ``max`` and ``scale`` metadata; ``scale`` is ``linear`` or
    ``logarithmic`` (with an optional ``logmin``).  Returns 0.0 when the
    metadata is missing or the scale is unknown.
    """
    x = val / 127.0 if val != 64 else 0.5
    meta = metadata or {}
    lo, hi, scale = meta.get("min"), meta.get("max"), meta.get("scale")
    if lo is None or hi is None or scale is None:
        print("failed to get properties", file=sys.stderr)
        return 0.0

    mn, mx = _atof(lo), _atof(hi)
    if scale == "linear":
        return x * (mx - mn) + mn
    if scale == "logarithmic":
        logmin = meta.get("logmin")
        b = _log(_atof(logmin) if logmin is not None else mn)
        a = _log(mx) - b
        return _exp(a * x + b)
    return 0.0


def _report_error(reason: str, path: str) -> None:
    print(f"'{reason}' and '{path}'")


def _report_event(msg: Message) -> None:
    print(f"'{msg.path}'")


def _mash_port(entry: MidiAddr, port: Port) -> bool:
    """Set the entry's type from the port's argument spec."""
    _, sep, args = port.name.partition(":")
    if not sep:
        return False
    if "f" in args:
        entry.type = "f"
        entry.conversion = port.metadata
    elif "i" in args:
        entry.type = "i"
    elif "T" in args:
        entry.type = "T"
    elif "c" in args:
        entry.type = "c"
    else:
        return False
    return True


class MidiTable:
    """Maps (channel, controller) pairs to parameter paths.

    ``lookup`` returns the :class:`Port` for a path, or ``None``.  The
    callbacks ``error_cb(reason, path)``, ``event_cb(message)`` and
    ``modify_cb(action, path, conversion, ch, ctl)`` may be replaced;
    ``modify_cb`` is not called while it is ``None``.
    """

    def __init__(self, lookup: Callable[[str], Optional[Port]]):
        self._lookup = lookup
        self.table = [MidiAddr() for _ in range(_TABLE_SIZE)]
        self.unhandled_ch = INVALID_MIDI
        self.unhandled_ctl = INVALID_MIDI
        self.unhandled_path = ""
        self.error_cb: Callable[[str, str], None] = _report_error
        self.event_cb: Callable[[Message], None] = _report_event
        self.modify_cb: Optional[Callable[[str, str, Any, int, int], None]] = None

    def _modified(self, action: str, path: str, conversion: Any, ch: int, ctl: int) -> None:
        if self.modify_cb is not None:
            self.modify_cb(action, path, conversion, ch, ctl)

    def has(self, ch: int, ctl: int) -> bool:
        """Return whether an entry for this channel and controller exists."""
        return self.get(ch, ctl) is not None

    def get(self, ch: int, ctl: int) -> Optional[MidiAddr]:
        """Return the entry for this channel and controller, if any."""
        ch, ctl = ch & 0xFF, ctl & 0xFF
        return next((e for e in self.table if e.ch == ch and e.ctl == ctl), None)

    @staticmethod
    def _bind(entry: MidiAddr, path: str, port: Port, error_cb) -> None:
        entry.path = path[:_PATH_LEN - 1]
        if not _mash_port(entry, port):
            entry.ch = INVALID_MIDI
            entry.ctl = INVALID_MIDI
            error_cb("Failed to read metadata", path)

    def add_elm(self, ch: int, ctl: int, path: str) -> None:
        """Bind a controller to a path, replacing an existing binding."""
        ch, ctl = ch & 0xFF, ctl & 0xFF
        port = self._lookup(path)
        if port is None or port.ports:
            self.error_cb("Bad path", path)
            return

        entry = self.get(ch, ctl)
        if entry is not None:
            self._bind(entry, path, port, self.error_cb)
            self._modified("REPLACE", path, entry.conversion, ch, ctl)
            return

        for entry in self.table:
            if entry.ch == INVALID_MIDI:
                entry.ch, entry.ctl = ch, ctl
                self._bind(entry, path, port, self.error_cb)
                self._modified("ADD", path, entry.conversion, ch, ctl)
                return

    def _check_learn(self) -> None:
        if self.unhandled_ctl == INVALID_MIDI or not self.unhandled_path:
            return
        self.add_elm(self.unhandled_ch, self.unhandled_ctl, self.unhandled_path)
        self.unhandled_ch = self.unhandled_ctl = INVALID_MIDI
        self.unhandled_path = ""

    def learn(self, path: str) -> None:
        """Bind ``path`` to the next unbound controller that is moved."""
        if len(path) > _PATH_LEN:
            self.error_cb("String too long", path)
            return
        self.clear_entry(path)
        self.unhandled_path = path[:_MAX_UNHANDLED_PATH - 1]
        self._check_learn()

    def clear_entry(self, path: str) -> None:
        """Remove the first binding for ``path``."""
        for entry in self.table:
            if entry.path == path:
                entry.ch = INVALID_MIDI
                entry.ctl = INVALID_MIDI
                self._modified("DEL", path, "", -1, -1)
                break

    def process(self, ch: int, ctl: int, val: int) -> None:
        """Handle a controller change, emitting a message or learning a binding."""
        ch, ctl, val = ch & 0xFF, ctl & 0xFF, val & 0xFF
        entry = self.get(ch, ctl)
        if entry is None:
            self.unhandled_ctl = ctl
            self.unhandled_ch = ch
            self._check_learn()
            return

        if entry.type == "f":
            args = (arg_val_from_float("f", translate(val, entry.conversion)),)
        elif entry.type == "i":
            args = (ArgVal("i", val),)
        elif entry.type == "T":
            args = (ArgVal("F", False),) if val < 64 else (ArgVal("T", True),)
        elif entry.type == "c":
            args = (ArgVal("c", val),)
        else:
            return
        self.event_cb(Message(entry.path, args))