"""Equality and ordering of sequences of OSC argument values."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import Sequence, Union

from .argval import ArgVal, ArgValIterator, ArgValTypeError

__all__ = [
    "CmpOptions",
    "arg_val_eq_single",
    "arg_val_cmp_single",
    "arg_vals_eq",
    "arg_vals_cmp",
]

ArgVals = Union[ArgVal, Sequence[ArgVal]]

_INT_TYPES = frozenset("icr")
_VALUELESS_TYPES = frozenset("ITFN")
_STRING_TYPES = frozenset("sS")


@dataclass(frozen=True)
class CmpOptions:
    """Options for comparing argument values.

    ``float_tolerance`` is the largest difference at which two floating
    point values still count as equal; zero means exact comparison.
    """

    float_tolerance: float = 0.0


_DEFAULT_OPTIONS = CmpOptions()


def _f32(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    try:
        return struct.unpack("<f", struct.pack("<f", x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


def _cmp3(a, b) -> int:
    return (a > b) - (a < b)


def _as_seq(value: ArgVals) -> Sequence[ArgVal]:
    if isinstance(value, ArgVal):
        return (value,)
    return value if isinstance(value, (list, tuple)) else tuple(value)


def _is_infinite_range(av: ArgVal) -> bool:
    return av.type == "-" and av.value[0] == 0


def _has_next(litr: ArgValIterator, ritr: ArgValIterator, lsize: int, rsize: int) -> bool:
    # Stop once either side is done, or when both sit on infinite ranges.
    if litr.index >= lsize or ritr.index >= rsize:
        return False
    left = litr.args[litr.index]
    right = ritr.args[ritr.index]
    return (
        left.type != "-"
        or right.type != "-"
        or bool(left.value[0])
        or bool(right.value[0])
    )


def _finished(itr: ArgValIterator, size: int) -> bool:
    if itr.index == size:
        return True
    return itr.index < len(itr.args) and _is_infinite_range(itr.args[itr.index])


def _eq_after_abort(litr: ArgValIterator, ritr: ArgValIterator, lsize: int, rsize: int) -> bool:
    return _finished(litr, lsize) and _finished(ritr, rsize)


def _current(itr: ArgValIterator) -> Sequence[ArgVal]:
    if itr.args[itr.index].type == "-":
        return (itr.get(),)
    return itr.args[itr.index:]


def _check_comparable(type_tag: str) -> None:
    if type_tag == "-":
        raise ArgValTypeError("ranges cannot be compared as single values")


def arg_val_eq_single(lhs: ArgVals, rhs: ArgVals, options: CmpOptions | None = None) -> bool:
    """Return whether two single values are equal.

    For arrays, ``lhs`` and ``rhs`` are sequences starting at the array
    header with the elements following.
    """
    opt = options or _DEFAULT_OPTIONS
    lseq, rseq = _as_seq(lhs), _as_seq(rhs)
    left, right = lseq[0], rseq[0]
    _check_comparable(left.type)
    _check_comparable(right.type)
    if left.type != right.type:
        return False

    kind = left.type
    if kind in _INT_TYPES or kind in {"h", "t"}:
        return left.value == right.value
    if kind in _VALUELESS_TYPES:
        return True
    if kind == "f":
        if opt.float_tolerance == 0.0:
            return left.value == right.value
        return abs(_f32(left.value - right.value)) <= _f32(opt.float_tolerance)
    if kind == "d":
        if opt.float_tolerance == 0.0:
            return left.value == right.value
        return abs(left.value - right.value) <= opt.float_tolerance
    if kind == "m":
        return bytes(left.value[:4]) == bytes(right.value[:4])
    if kind in _STRING_TYPES:
        if left.value is None or right.value is None:
            return left.value is right.value
        return left.value == right.value
    if kind == "b":
        return bytes(left.value) == bytes(right.value)
    if kind == "a":
        ltype, llen = left.value
        rtype, rlen = right.value
        if ltype != rtype and {ltype, rtype} != {"T", "F"}:
            return False
        return arg_vals_eq(lseq[1:], rseq[1:], llen, rlen, opt)
    raise ArgValTypeError(f"cannot compare values of type {kind!r}")


def _signed_byte(x: int) -> int:
    return x - 256 if x >= 128 else x


def arg_val_cmp_single(lhs: ArgVals, rhs: ArgVals, options: CmpOptions | None = None) -> int:
    """Return a negative, zero or positive number as ``lhs`` is less than,
    equal to or greater than ``rhs``.

    Values of different types are ordered by their type tags.  A time tag
    of 1 ("immediately") is lower than every other time tag.
    """
    opt = options or _DEFAULT_OPTIONS
    lseq, rseq = _as_seq(lhs), _as_seq(rhs)
    left, right = lseq[0], rseq[0]
    _check_comparable(left.type)
    _check_comparable(right.type)
    if left.type != right.type:
        return 1 if left.type > right.type else -1

    kind = left.type
    if kind in _INT_TYPES or kind == "h":
        return _cmp3(left.value, right.value)
    if kind in _VALUELESS_TYPES:
        return 0
    if kind in {"f", "d"}:
        if opt.float_tolerance == 0.0:
            return _cmp3(left.value, right.value)
        if kind == "f":
            close = abs(_f32(left.value - right.value)) <= _f32(opt.float_tolerance)
        else:
            close = abs(left.value - right.value) <= opt.float_tolerance
        if close:
            return 0
        return 1 if left.value > right.value else -1
    if kind == "t":
        if left.value == 1:
            return 0 if right.value == 1 else -1
        if right.value == 1:
            return 1
        return _cmp3(left.value, right.value)
    if kind == "m":
        return _cmp3(bytes(left.value[:4]), bytes(right.value[:4]))
    if kind in _STRING_TYPES:
        if left.value is None or right.value is None:
            return _cmp3(left.value is not None, right.value is not None)
        return _cmp3(left.value, right.value)
    if kind == "b":
        ldata, rdata = bytes(left.value), bytes(right.value)
        minlen = min(len(ldata), len(rdata))
        result = _cmp3(ldata[:minlen], rdata[:minlen])
        if result == 0 and len(ldata) != len(rdata):
            # The blob that ends first is the smaller one.
            if len(ldata) > len(rdata):
                result = _signed_byte(ldata[minlen])
            else:
                result = -_signed_byte(rdata[minlen])
            result = (result > 0) - (result < 0)
        return result
    if kind == "a":
        ltype, llen = left.value
        rtype, rlen = right.value
        if ltype != rtype and ltype not in {"T", "F"}:
            return 1 if ltype > rtype else -1
        return arg_vals_cmp(lseq[1:], rseq[1:], llen, rlen, opt)
    raise ArgValTypeError(f"cannot compare values of type {kind!r}")


def _prepare(args: ArgVals, size: int | None) -> tuple[Sequence[ArgVal], int]:
    seq = _as_seq(args)
    return seq, len(seq) if size is None else size


def arg_vals_eq(
    lhs: ArgVals,
    rhs: ArgVals,
    lsize: int | None = None,
    rsize: int | None = None,
    options: CmpOptions | None = None,
) -> bool:
    """Return whether the first ``lsize`` entries of ``lhs`` equal the first
    ``rsize`` entries of ``rhs``, with ranges expanded."""
    opt = options or _DEFAULT_OPTIONS
    lseq, lsize = _prepare(lhs, lsize)
    rseq, rsize = _prepare(rhs, rsize)
    litr, ritr = ArgValIterator(lseq), ArgValIterator(rseq)

    equal = True
    while equal and _has_next(litr, ritr, lsize, rsize):
        equal = arg_val_eq_single(_current(litr), _current(ritr), opt)
        litr.advance()
        ritr.advance()

    return equal and _eq_after_abort(litr, ritr, lsize, rsize)


def arg_vals_cmp(
    lhs: ArgVals,
    rhs: ArgVals,
    lsize: int | None = None,
    rsize: int | None = None,
    options: CmpOptions | None = None,
) -> int:
    """Compare two sequences of argument values lexicographically.

    Returns a negative, zero or positive number; of two sequences equal up
    to where one ends, the one with more entries left is the greater.
    """
    opt = options or _DEFAULT_OPTIONS
    lseq, lsize = _prepare(lhs, lsize)
    rseq, rsize = _prepare(rhs, rsize)
    litr, ritr = ArgValIterator(lseq), ArgValIterator(rseq)

    result = 0
    while not result and _has_next(litr, ritr, lsize, rsize):
        result = arg_val_cmp_single(_current(litr), _current(ritr), opt)
        litr.advance()
        ritr.advance()

    if result:
        return result
    if _eq_after_abort(litr, ritr, lsize, rsize):
        return 0
    return 1 if lsize - litr.index > rsize - ritr.index else -1