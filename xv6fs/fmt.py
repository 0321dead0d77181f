"""The two minimal printf dialects: the user library's and the kernel console's."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

LOWER_DIGITS = "0123456789abcdef"
UPPER_DIGITS = "0123456789ABCDEF"

_WORD = 0xFFFFFFFF


def format_int(value: int, base: int, signed: bool, digits: str = LOWER_DIGITS) -> str:
    """Render ``value`` as a 32-bit integer in ``base``, as signed or unsigned."""
    if not 2 <= base <= len(digits):
        raise ValueError(f"unsupported base {base}")
    word = value & _WORD
    negative = signed and word > 0x7FFFFFFF
    x = (_WORD + 1 - word) if negative else word
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _next(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _string(arg: Any) -> str:
    return "(null)" if arg is None else str(arg)


def format_user(fmt: str, *args: Any) -> str:
    """Format like the user-space printf: %d %x %p %s %c %%, upper-case hex."""
    it = iter(args)
    out = []
    in_spec = False
    for c in fmt:
        if not in_spec:
            if c == "%":
                in_spec = True
            else:
                out.append(c)
            continue
        if c == "d":
            out.append(format_int(_next(it), 10, True, UPPER_DIGITS))
        elif c in "xp":
            out.append(format_int(_next(it), 16, False, UPPER_DIGITS))
        elif c == "s":
            out.append(_string(_next(it)))
        elif c == "c":
            arg = _next(it)
            out.append(chr(arg & 0xFF) if isinstance(arg, int) else str(arg))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
        in_spec = False
    return "".join(out)


def format_kernel(fmt: str, *args: Any) -> str:
    """Format like the kernel's cprintf: %d %x %p %s %%, lower-case hex."""
    it = iter(args)
    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(format_int(_next(it), 10, True))
        elif c in "xp":
            out.append(format_int(_next(it), 16, False))
        elif c == "s":
            out.append(_string(_next(it)))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)