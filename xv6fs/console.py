"""Line-edited console input: characters arrive by interrupt and are read a line at a time."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import Optional, Union

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


CTRL_D = _ctrl("D")
CTRL_H = _ctrl("H")
CTRL_P = _ctrl("P")
CTRL_U = _ctrl("U")
DELETE = 0x7F


class ConsoleInput:
    """The console's input ring with line editing, echo and end-of-file handling."""

    def __init__(
        self,
        echo: Optional[Callable[[str], None]] = None,
        procdump: Optional[Callable[[], None]] = None,
    ) -> None:
        self._echo = echo
        self._procdump = procdump
        self._cond = threading.Condition()
        self._buf = bytearray(INPUT_BUF)
        self.r = 0  # read index
        self.w = 0  # write index
        self.e = 0  # edit index
        self.killed = False

    def _putc(self, c: int) -> None:
        if self._echo is None:
            return
        if c == BACKSPACE:
            self._echo("\b \b")
        else:
            self._echo(chr(c))

    def kill(self) -> None:
        """Make a reader waiting for input, or the next one, give up."""
        with self._cond:
            self.killed = True
            self._cond.notify_all()

    def interrupt(self, chars: Union[str, bytes, Iterable[int]]) -> None:
        """Take in typed characters, applying the editing keys."""
        codes = (ord(c) for c in chars) if isinstance(chars, str) else iter(chars)
        dump = False
        with self._cond:
            for c in codes:
                if c == CTRL_P:
                    dump = True
                elif c == CTRL_U:
                    while self.e != self.w and self._buf[(self.e - 1) % INPUT_BUF] != ord("\n"):
                        self.e -= 1
                        self._putc(BACKSPACE)
                elif c in (CTRL_H, DELETE):
                    if self.e != self.w:
                        self.e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self.e - self.r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self.e % INPUT_BUF] = c & 0xFF
                    self.e += 1
                    self._putc(c)
                    if c == ord("\n") or c == CTRL_D or self.e == self.r + INPUT_BUF:
                        self.w = self.e
                        self._cond.notify_all()
        if dump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; empty at end of file."""
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self.r == self.w:
                    if self.killed:
                        raise InterruptedError("console read interrupted")
                    self._cond.wait()
                c = self._buf[self.r % INPUT_BUF]
                self.r += 1
                if c == CTRL_D:
                    if out:
                        # Keep the end-of-file mark so the next read returns nothing.
                        self.r -= 1
                    break
                out.append(c)
                if c == ord("\n"):
                    break
        return bytes(out)