"""A small formatted reader supporting %d, %c and %s."""

from __future__ import annotations

from typing import BinaryIO

_TERMINATORS = frozenset(b"\n\r \b\x7f\x00")


class ScanError(ValueError):
    """Raised on a malformed format, bad input or end of input."""


def _getc(stream: BinaryIO, echo: BinaryIO | None) -> int:
    ch = stream.read(1)
    if not ch:
        raise ScanError("unexpected end of input")
    if echo is not None:
        echo.write(ch)
    return ch[0]


def _scan_int(stream: BinaryIO, echo: BinaryIO | None) -> int:
    number = 0
    sign = 1
    signed = False
    while True:
        ch = _getc(stream, echo)
        if 0x30 <= ch <= 0x39:
            number = number * 10 + (ch - 0x30)
            continue
        if ch == ord("-") and not number and not signed:
            signed = True
            sign = -1
            continue
        if ch == ord("+") and not number and not signed:
            signed = True
            continue
        if ch in _TERMINATORS:
            return number * sign
        raise ScanError(f"not a digit: {chr(ch)!r}")


def _scan_word(stream: BinaryIO, echo: BinaryIO | None) -> str:
    chars = bytearray()
    while (ch := _getc(stream, echo)) not in _TERMINATORS:
        chars.append(ch)
    return chars.decode("latin-1")


def scanf(stream: BinaryIO, fmt: str, echo: BinaryIO | None = None) -> list[int | str]:
    """Read values described by ``fmt`` and return them in order.

    ``%d`` reads a signed decimal, ``%c`` one character and ``%s`` a word;
    numbers and words end at a newline, carriage return, blank, backspace,
    DEL or NUL. Every byte read is copied to ``echo`` when one is given.
    Other conversion letters are skipped without reading.
    """
    values: list[int | str] = []
    i = 0
    while i < len(fmt):
        while i < len(fmt) and fmt[i].isspace():
            i += 1
        if i == len(fmt):
            break
        if fmt[i] != "%":
            raise ScanError(f"wrong format at position {i}: {fmt!r}")
        i += 1
        if i == len(fmt):
            raise ScanError("format ends with a bare '%'")
        spec = fmt[i]
        if spec == "d":
            values.append(_scan_int(stream, echo))
        elif spec == "c":
            values.append(chr(_getc(stream, echo)))
        elif spec == "s":
            values.append(_scan_word(stream, echo))
        i += 1
    return values