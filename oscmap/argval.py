"""Typed OSC argument values, their arithmetic and range expansion."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import Any, Sequence

__all__ = [
    "ArgValTypeError",
    "ArgVal",
    "ArgValIterator",
    "array_header",
    "range_header",
    "null_arg_val",
    "arg_val_from_int",
    "arg_val_from_float",
    "negate",
    "rounded",
    "add",
    "sub",
    "mult",
    "div",
    "to_int",
    "range_arg",
    "flatten_arg_vals",
]

_BOOL_TYPES = frozenset("TF")
_INT32_TYPES = frozenset("ci")
_ARITH_TYPES = frozenset("dfhci")
_CONVERTIBLE_TYPES = _ARITH_TYPES | _BOOL_TYPES


class ArgValTypeError(TypeError):
    """Raised when an operation is not defined for the given argument types."""


@dataclass(frozen=True)
class ArgVal:
    """One OSC argument: a type tag and its value.

    Array headers (type ``'a'``) hold ``(element_type, length)``; the
    elements follow the header in the surrounding sequence.  Range headers
    (type ``'-'``) hold ``(count, has_delta)``; a count of zero means an
    infinite range.  A range header is followed by the delta (if any) and
    then the start value.
    """

    type: str
    value: Any = None


_TRUE = ArgVal("T", True)
_FALSE = ArgVal("F", False)


def _f32(x: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


def _wrap(x: int, bits: int) -> int:
    mask = (1 << bits) - 1
    x &= mask
    return x - (1 << bits) if x >> (bits - 1) else x


def _numeric(type_tag: str, x: Any) -> ArgVal:
    if type_tag == "d":
        return ArgVal("d", float(x))
    if type_tag == "f":
        return ArgVal("f", _f32(x))
    if type_tag == "h":
        return ArgVal("h", _wrap(int(x), 64))
    return ArgVal(type_tag, _wrap(int(x), 32))


def _unsupported(op: str, *types: str) -> ArgValTypeError:
    return ArgValTypeError(f"{op} not defined for type(s) {', '.join(map(repr, types))}")


def array_header(element_type: str, length: int) -> ArgVal:
    """Return the header of an array of ``length`` elements of ``element_type``."""
    return ArgVal("a", (element_type, int(length)))


def range_header(count: int, has_delta: bool) -> ArgVal:
    """Return the header of a range repeating ``count`` times (0 = infinite)."""
    return ArgVal("-", (int(count), bool(has_delta)))


def null_arg_val(type: str) -> ArgVal:
    """Return the zero value of ``type``; booleans become ``'F'``."""
    if type in {"h", "t", "c", "i", "r"}:
        return ArgVal(type, 0)
    if type in {"s", "S"}:
        return ArgVal(type, None)
    if type in {"d", "f"}:
        return _numeric(type, 0.0)
    if type in _BOOL_TYPES:
        return _FALSE
    raise _unsupported("null value", type)


def _from_number(type_tag: str, number: Any) -> ArgVal:
    if type_tag in _BOOL_TYPES:
        # The truth of the number decides the tag, not the requested type.
        return _TRUE if number != 0 else _FALSE
    if type_tag in _ARITH_TYPES:
        return _numeric(type_tag, number)
    raise _unsupported("conversion", type_tag)


def arg_val_from_int(type: str, number: int) -> ArgVal:
    """Return ``number`` converted to an argument of ``type``."""
    return _from_number(type, int(number))


def arg_val_from_float(type: str, number: float) -> ArgVal:
    """Return ``number`` converted to an argument of ``type``."""
    return _from_number(type, float(number))


def negate(av: ArgVal) -> ArgVal:
    """Return the negation of ``av``; booleans are inverted."""
    if av.type == "T":
        return _FALSE
    if av.type == "F":
        return _TRUE
    if av.type in _ARITH_TYPES:
        return _numeric(av.type, -av.value)
    raise _unsupported("negation", av.type)


def rounded(av: ArgVal) -> ArgVal:
    """Return ``av`` truncated, rounding up only when within 0.001 of the next integer."""
    if av.type == "d":
        whole = int(av.value)
        return ArgVal("d", float(whole + (av.value - whole >= 0.999)))
    if av.type == "f":
        whole = int(av.value)
        return ArgVal("f", _f32(whole + (_f32(av.value - whole) >= _f32(0.999))))
    if av.type in {"h", "c", "i", "T", "F"}:
        return av
    raise _unsupported("rounding", av.type)


def add(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Return ``lhs + rhs``; booleans add as exclusive or."""
    if lhs.type != rhs.type:
        if {lhs.type, rhs.type} == {"T", "F"}:
            return _TRUE
        raise _unsupported("addition", lhs.type, rhs.type)
    if lhs.type in _BOOL_TYPES:
        return _FALSE
    if lhs.type in _ARITH_TYPES:
        return _numeric(lhs.type, lhs.value + rhs.value)
    raise _unsupported("addition", lhs.type)


def sub(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Return ``lhs - rhs``; booleans subtract as exclusive or."""
    if lhs.type != rhs.type:
        return add(lhs, rhs)
    if lhs.type in _BOOL_TYPES:
        return _FALSE
    if lhs.type in _ARITH_TYPES:
        return _numeric(lhs.type, lhs.value - rhs.value)
    raise _unsupported("subtraction", lhs.type)


def mult(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Return ``lhs * rhs``; booleans multiply as logical and."""
    if lhs.type != rhs.type:
        if {lhs.type, rhs.type} == {"T", "F"}:
            return _FALSE
        raise _unsupported("multiplication", lhs.type, rhs.type)
    if lhs.type == "T":
        return _TRUE
    if lhs.type == "F":
        return _FALSE
    if lhs.type in _ARITH_TYPES:
        return _numeric(lhs.type, lhs.value * rhs.value)
    raise _unsupported("multiplication", lhs.type)


def _float_div(a: float, b: float) -> float:
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _trunc_div(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("integer division by zero")
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


def div(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Return ``lhs / rhs``; integers divide truncating towards zero."""
    if lhs.type != rhs.type:
        raise _unsupported("division", lhs.type, rhs.type)
    if lhs.type == "T":
        return _TRUE
    if lhs.type == "F":
        raise ZeroDivisionError("division by false")
    if lhs.type in {"d", "f"}:
        return _numeric(lhs.type, _float_div(lhs.value, rhs.value))
    if lhs.type in {"h", "c", "i"}:
        return _numeric(lhs.type, _trunc_div(lhs.value, rhs.value))
    raise _unsupported("division", lhs.type)


def to_int(av: ArgVal) -> int:
    """Return ``av`` as an integer, truncating floating point values."""
    if av.type in {"d", "f"}:
        return int(av.value)
    if av.type == "h":
        return _wrap(av.value, 32)
    if av.type in _INT32_TYPES:
        return av.value
    if av.type in _BOOL_TYPES:
        return int(bool(av.value))
    raise _unsupported("integer conversion", av.type)


def range_arg(range_args: Sequence[ArgVal], ith: int) -> ArgVal:
    """Return element ``ith`` of a range with delta: ``start + ith * delta``.

    ``range_args`` starts at the range header, followed by delta and start.
    """
    delta, start = range_args[1], range_args[2]
    step = mult(arg_val_from_int(delta.type, ith), delta)
    return add(start, step)


class ArgValIterator:
    """Walks a sequence of argument values, expanding ranges and skipping array bodies."""

    def __init__(self, args: Sequence[ArgVal]):
        self.args = args
        self.index = 0
        self.range_index = 0

    def get(self) -> ArgVal:
        """Return the current value, computing it if inside a range."""
        current = self.args[self.index]
        if current.type == "-":
            _, has_delta = current.value
            if has_delta:
                return range_arg(self.args[self.index:self.index + 3], self.range_index)
            return self.args[self.index + 1]
        return current

    def advance(self) -> None:
        """Move to the next value."""
        current = self.args[self.index]
        if current.type == "-":
            count, has_delta = current.value
            self.range_index += 1
            if count and self.range_index >= count:
                self.index += 2 if has_delta else 1
                self.range_index = 0

        if not self.range_index:
            current = self.args[self.index]
            if current.type == "a":
                self.index += current.value[1]
            self.index += 1


def flatten_arg_vals(args: Sequence[ArgVal], nargs: int | None = None) -> list[ArgVal]:
    """Return the values the first ``nargs`` entries of ``args`` stand for.

    Ranges are expanded; an array appears as its header only.
    """
    if nargs is None:
        nargs = len(args)
    itr = ArgValIterator(args)
    result: list[ArgVal] = []
    while itr.index < nargs:
        current = args[itr.index]
        if current.type == "-" and current.value[0] == 0:
            raise ValueError("cannot flatten an infinite range")
        result.append(itr.get())
        itr.advance()
    return result