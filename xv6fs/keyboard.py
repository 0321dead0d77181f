"""Decode PC keyboard scan codes (set 1) into characters."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntFlag


class Modifier(IntFlag):
    NONE = 0
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def ctrl(ch: str) -> int:
    """Code produced by Control plus ``ch``."""
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = {
    0x1D: Modifier.CTL,
    0x2A: Modifier.SHIFT,
    0x36: Modifier.SHIFT,
    0x38: Modifier.ALT,
    0x9D: Modifier.CTL,
    0xB8: Modifier.ALT,
}

_TOGGLECODE = {
    0x3A: Modifier.CAPSLOCK,
    0x45: Modifier.NUMLOCK,
    0x46: Modifier.SCROLLLOCK,
}

_NAVIGATION = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD = "\x00" * 7 + "7" + "89-456+1" + "230." + "\x00" * 4


def _table(base: list[int], specials: dict[int, int]) -> tuple[int, ...]:
    table = base + [0] * (256 - len(base))
    for code, value in specials.items():
        table[code] = value
    return tuple(table)


_NORMALMAP = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b1234567890-=\b\t"
            "qwertyuiop[]\n\x00as"
            "dfghjkl;'`\x00\\zxcv"
            "bnm,./\x00*\x00 " + "\x00" * 6 + _KEYPAD
        )
    ],
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAVIGATION},
)

_SHIFTMAP = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b!@#$%^&*()_+\b\t"
            "QWERTYUIOP{}\n\x00AS"
            'DFGHJKL:"~\x00|ZXCV'
            "BNM<>?\x00*\x00 " + "\x00" * 6 + _KEYPAD
        )
    ],
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAVIGATION},
)

_CTLMAP = _table(
    [0] * 16
    + [ctrl(c) for c in "QWERTYUIOP"]
    + [0, 0, ord("\r"), 0, ctrl("A"), ctrl("S")]
    + [ctrl(c) for c in "DFGHJKL"]
    + [0, 0, 0, 0, ctrl("\\")]
    + [ctrl(c) for c in "ZXCVBNM"]
    + [0, 0, ctrl("/"), 0, 0],
    {0x9C: ord("\r"), 0xB5: ctrl("/"), **_NAVIGATION},
)

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class KeyboardDecoder:
    """Tracks modifier state across scan codes and turns key presses into codes."""

    def __init__(self) -> None:
        self._state = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self._state)

    def feed(self, scancode: int) -> int:
        """Consume one scan code; return the character code, or 0 if none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code out of range: {scancode}")
        data = scancode
        if data == 0xE0:
            self._state |= Modifier.E0ESC
            return 0
        if data & 0x80:
            if not self._state & Modifier.E0ESC:
                data &= 0x7F
            self._state &= ~(_SHIFTCODE.get(data, 0) | Modifier.E0ESC)
            return 0
        if self._state & Modifier.E0ESC:
            data |= 0x80
            self._state &= ~Modifier.E0ESC

        self._state |= _SHIFTCODE.get(data, 0)
        self._state ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self._state & (Modifier.CTL | Modifier.SHIFT)][data]
        if self._state & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def decode(self, scancodes: Iterable[int]) -> str:
        """Feed every scan code and return the characters they produce."""
        return "".join(chr(c) for c in map(self.feed, scancodes) if c)