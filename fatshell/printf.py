"""Formatted output with C printf conversions (no floating point)."""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Iterator

RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
PURPLE = "\033[35m"
DEEPGREEN = "\033[36m"
CLEAR = "\033[0m"

NL_ARGMAX = 9
INT_MAX = 0x7FFFFFFF
INTMAX_MAX = (1 << 63) - 1
_MASK64 = (1 << 64) - 1
_POINTER_DIGITS = 16
_FLAG_CHARS = "#0- +"


class FormatError(ValueError):
    """Raised for an invalid format string, missing arguments or overflow."""


class _Prefix(Enum):
    BARE = auto()
    L = auto()
    LL = auto()
    H = auto()
    HH = auto()
    ZT = auto()
    J = auto()


class _Arg(Enum):
    PTR = auto()
    INT = auto()
    UINT = auto()
    ULLONG = auto()
    LONG = auto()
    ULONG = auto()
    SHORT = auto()
    USHORT = auto()
    CHAR = auto()
    UCHAR = auto()
    LLONG = auto()
    SIZET = auto()
    IMAX = auto()
    UMAX = auto()
    PDIFF = auto()
    UIPTR = auto()


def _row(signed: _Arg, unsigned: _Arg) -> dict[str, _Prefix | _Arg]:
    row: dict[str, _Prefix | _Arg] = {c: signed for c in "di"}
    row.update({c: unsigned for c in "ouxX"})
    row["n"] = _Arg.PTR
    return row


_STATES: dict[_Prefix, dict[str, _Prefix | _Arg]] = {
    _Prefix.BARE: {
        **_row(_Arg.INT, _Arg.UINT),
        "c": _Arg.INT,
        "s": _Arg.PTR,
        "p": _Arg.UIPTR,
        "l": _Prefix.L,
        "h": _Prefix.H,
        "z": _Prefix.ZT,
        "j": _Prefix.J,
        "t": _Prefix.ZT,
    },
    _Prefix.L: {
        **_row(_Arg.LONG, _Arg.ULONG),
        "c": _Arg.UINT,
        "s": _Arg.PTR,
        "l": _Prefix.LL,
    },
    _Prefix.LL: _row(_Arg.LLONG, _Arg.ULLONG),
    _Prefix.H: {**_row(_Arg.SHORT, _Arg.USHORT), "h": _Prefix.HH},
    _Prefix.HH: _row(_Arg.CHAR, _Arg.UCHAR),
    _Prefix.ZT: _row(_Arg.PDIFF, _Arg.SIZET),
    _Prefix.J: _row(_Arg.IMAX, _Arg.UMAX),
}

_INT_LAYOUT: dict[_Arg, tuple[int, bool]] = {
    _Arg.INT: (32, True),
    _Arg.UINT: (32, False),
    _Arg.LONG: (64, True),
    _Arg.ULONG: (64, False),
    _Arg.ULLONG: (64, False),
    _Arg.SHORT: (16, True),
    _Arg.USHORT: (16, False),
    _Arg.CHAR: (8, True),
    _Arg.UCHAR: (8, False),
    _Arg.LLONG: (64, True),
    _Arg.SIZET: (64, False),
    _Arg.IMAX: (64, True),
    _Arg.UMAX: (64, False),
    _Arg.PDIFF: (64, True),
    _Arg.UIPTR: (64, False),
}

_COUNT_LAYOUT: dict[_Prefix, tuple[int, bool]] = {
    _Prefix.BARE: (32, True),
    _Prefix.L: (64, True),
    _Prefix.LL: (64, True),
    _Prefix.H: (16, False),
    _Prefix.HH: (8, False),
    _Prefix.ZT: (64, False),
    _Prefix.J: (64, False),
}


def _wrap(value: int, bits: int, signed: bool) -> int:
    value &= (1 << bits) - 1
    if signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


@dataclass
class _Spec:
    conversion: str
    prefix: _Prefix
    arg_type: _Arg
    flags: frozenset[str]
    argpos: int | None
    width: int
    width_star: bool
    width_pos: int | None
    precision: int
    explicit_precision: bool
    precision_star: bool
    precision_pos: int | None


def _is_digit(c: str) -> bool:
    return len(c) == 1 and "0" <= c <= "9"


def _getint(fmt: str, i: int) -> tuple[int, int]:
    value = 0
    while i < len(fmt) and _is_digit(fmt[i]):
        value = value * 10 + ord(fmt[i]) - 48
        i += 1
    return (-1 if value > INT_MAX else value), i


def _position(c: str) -> int:
    pos = ord(c) - 48
    if pos < 1:
        raise FormatError("argument positions start at 1")
    return pos


def _parse(fmt: str) -> tuple[list[str | _Spec], dict[int, _Arg]]:
    tokens: list[str | _Spec] = []
    positional: dict[int, _Arg] = {}
    uses_positional = False
    uses_sequential = False
    n = len(fmt)

    def ch(k: int) -> str:
        return fmt[k] if k < n else ""

    i = 0
    while i < n:
        end = fmt.find("%", i)
        if end < 0:
            end = n
        literal = fmt[i:end]
        i = end
        percents = 0
        while fmt.startswith("%%", i):
            percents += 1
            i += 2
        text = literal + "%" * percents
        if text:
            tokens.append(text)
            continue

        argpos = None
        if _is_digit(ch(i + 1)) and ch(i + 2) == "$":
            uses_positional = True
            argpos = _position(ch(i + 1))
            i += 3
        else:
            i += 1

        flags = set()
        while i < n and fmt[i] in _FLAG_CHARS:
            flags.add(fmt[i])
            i += 1

        width, width_star, width_pos = 0, False, None
        if ch(i) == "*":
            if _is_digit(ch(i + 1)) and ch(i + 2) == "$":
                uses_positional = True
                width_pos = _position(ch(i + 1))
                positional[width_pos] = _Arg.INT
                i += 3
            elif not uses_positional:
                width_star = uses_sequential = True
                i += 1
            else:
                raise FormatError(f"invalid width at position {i}")
        else:
            width, i = _getint(fmt, i)
            if width < 0:
                raise FormatError("field width overflows")

        precision, explicit, precision_star, precision_pos = -1, False, False, None
        if ch(i) == "." and ch(i + 1) == "*":
            if _is_digit(ch(i + 2)) and ch(i + 3) == "$":
                uses_positional = True
                precision_pos = _position(ch(i + 2))
                positional[precision_pos] = _Arg.INT
                i += 4
            elif not uses_positional:
                precision_star = uses_sequential = True
                i += 2
            else:
                raise FormatError(f"invalid precision at position {i}")
        elif ch(i) == ".":
            precision, i = _getint(fmt, i + 1)
            explicit = True

        state = _Prefix.BARE
        while True:
            c = ch(i)
            if not ("A" <= c <= "z"):
                raise FormatError(f"invalid conversion at position {i}")
            prev = state
            step = _STATES[state].get(c)
            i += 1
            if step is None:
                raise FormatError(f"invalid conversion {c!r} at position {i - 1}")
            if isinstance(step, _Arg):
                break
            state = step

        if argpos is None:
            uses_sequential = True
        else:
            positional[argpos] = step
        tokens.append(
            _Spec(c, prev, step, frozenset(flags), argpos, width, width_star,
                  width_pos, precision, explicit, precision_star, precision_pos)
        )

    if uses_positional and uses_sequential:
        raise FormatError("positional and sequential arguments are mixed")
    if sorted(positional) != list(range(1, len(positional) + 1)):
        raise FormatError("argument positions are not contiguous")
    return tokens, positional


def _coerce(value: Any, arg_type: _Arg) -> Any:
    if arg_type is _Arg.PTR:
        return value
    if value is None and arg_type is _Arg.UIPTR:
        value = 0
    if isinstance(value, str) and len(value) == 1:
        value = ord(value)
    if not isinstance(value, int):
        raise FormatError(f"integer argument expected, got {type(value).__name__}")
    bits, signed = _INT_LAYOUT[arg_type]
    return _wrap(int(value), bits, signed)


def _text_of(value: Any) -> str:
    if value is None:
        return "(null)"
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("latin-1")
    if not isinstance(value, str):
        raise FormatError(f"string argument expected, got {type(value).__name__}")
    return value.split("\0", 1)[0]


def _render(tokens: list[str | _Spec], positional: dict[int, _Arg], args: tuple) -> Iterator[str]:
    if len(args) < len(positional):
        raise FormatError("not enough arguments for format")
    slots = {pos: _coerce(args[pos - 1], kind) for pos, kind in positional.items()}
    remaining = iter(args)

    def pop(kind: _Arg) -> Any:
        try:
            return _coerce(next(remaining), kind)
        except StopIteration:
            raise FormatError("not enough arguments for format") from None

    cnt = 0
    for token in tokens:
        if isinstance(token, str):
            cnt += len(token)
            yield token
            continue
        spec = token
        flags = set(spec.flags)

        if spec.width_star:
            w = pop(_Arg.INT)
        elif spec.width_pos is not None:
            w = slots[spec.width_pos]
        else:
            w = spec.width
        if w < 0:
            flags.add("-")
            w = -w

        if spec.precision_star or spec.precision_pos is not None:
            p = pop(_Arg.INT) if spec.precision_star else slots[spec.precision_pos]
            xp = p >= 0
        else:
            p, xp = spec.precision, spec.explicit_precision

        arg = slots[spec.argpos] if spec.argpos is not None else pop(spec.arg_type)

        if "-" in flags:
            flags.discard("0")
        t = spec.conversion
        prefix = ""

        if t == "n":
            bits, signed = _COUNT_LAYOUT[spec.prefix]
            try:
                arg[0] = _wrap(cnt, bits, signed)
            except (TypeError, IndexError) as exc:
                raise FormatError("%n needs a mutable sequence argument") from exc
            continue

        if t in "pxXoudi":
            value = arg & _MASK64
            if t == "p":
                if p >= 0:
                    p = max(p, _POINTER_DIGITS)
                t = "x"
                flags.add("#")
            if t in "xX":
                body = format(value, "x") if value else ""
                if t == "X":
                    body = body.upper()
                if value and "#" in flags:
                    prefix = "0" + t
            elif t == "o":
                body = format(value, "o") if value else ""
                if "#" in flags and p < len(body) + 1:
                    p = len(body) + 1
            else:
                if t in "di":
                    if value > INTMAX_MAX:
                        value = -value & _MASK64
                        prefix = "-"
                    elif "+" in flags:
                        prefix = "+"
                    elif " " in flags:
                        prefix = " "
                body = str(value) if value else ""
            if xp and p < 0:
                raise FormatError("precision overflows")
            if xp:
                flags.discard("0")
            if value or p:
                p = max(p, len(body) + (not value))
        elif t == "c":
            body = chr(arg & 0xFF)
            p = 1
            flags.discard("0")
        else:
            body = _text_of(arg)
            if p >= 0:
                body = body[:p]
            p = len(body)
            flags.discard("0")

        p = max(p, len(body))
        pl = len(prefix)
        if p > INT_MAX - pl:
            raise FormatError("field overflows")
        w = max(w, pl + p)
        if w > INT_MAX - cnt:
            raise FormatError("output overflows")

        fill = w - pl - p
        left = "-" in flags
        zero = "0" in flags
        pieces = []
        if not left and not zero:
            pieces.append(" " * fill)
        pieces.append(prefix)
        if zero:
            pieces.append("0" * fill)
        pieces.append("0" * (p - len(body)))
        pieces.append(body)
        if left:
            pieces.append(" " * fill)
        cnt += w
        yield "".join(pieces)


def format_printf(fmt: str, *args: Any) -> str:
    """Return ``fmt`` with its conversions replaced by formatted ``args``.

    Supports the flags ``#0- +``, field width and precision (also ``*`` and
    ``*N$``), the length modifiers ``hh h l ll z t j`` and the conversions
    ``d i o u x X c s p n`` as well as ``%N$`` argument positions.
    ``%n`` stores the count so far in ``arg[0]`` of a mutable sequence.
    """
    tokens, positional = _parse(fmt)
    return "".join(_render(tokens, positional, args))


def vfprintf(stream: Any, fmt: str, *args: Any) -> int:
    """Write the formatted text to ``stream`` and return its length in characters.

    Text streams receive ``str``; any other stream receives UTF-8 bytes.
    """
    text = format_printf(fmt, *args)
    if isinstance(stream, io.TextIOBase):
        stream.write(text)
    else:
        stream.write(text.encode("utf-8"))
    flush = getattr(stream, "flush", None)
    if flush is not None:
        flush()
    return len(text)