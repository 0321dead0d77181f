"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from typing import BinaryIO

_BUF_SIZE = 1024


def _match_here(re: str, text: str) -> bool:
    while True:
        if not re:
            return True
        if len(re) > 1 and re[1] == "*":
            return _match_star(re[0], re[2:], text)
        if re == "$":
            return not text
        if text and (re[0] == "." or re[0] == text[0]):
            re, text = re[1:], text[1:]
            continue
        return False


def _match_star(c: str, re: str, text: str) -> bool:
    # A starred character matches zero or more instances.
    while True:
        if _match_here(re, text):
            return True
        if not text or not (text[0] == c or c == "."):
            return False
        text = text[1:]


def match(pattern: str, text: str) -> bool:
    """Return whether ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _match_here(pattern[1:], text)
    return any(_match_here(pattern, text[i:]) for i in range(len(text) + 1))


def grep_lines(pattern: str | bytes, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches ``pattern``.

    Lines are read through a 1024-byte buffer: a buffer that fills without
    holding a newline is dropped, and a final line with no newline is ignored.
    """
    if isinstance(pattern, bytes):
        pattern = pattern.decode("latin-1")
    buf = b""
    while True:
        chunk = stream.read(_BUF_SIZE - 1 - len(buf))
        if not chunk:
            return
        buf += chunk
        start = 0
        while (nl := buf.find(b"\n", start)) != -1:
            if match(pattern, buf[start:nl].decode("latin-1")):
                yield buf[start:nl + 1]
            start = nl + 1
        buf = b"" if start == 0 else buf[start:]


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern = os.fsencode(args[0])
    sys.stdout.flush()
    out = sys.stdout.buffer

    if len(args) == 1:
        out.writelines(grep_lines(pattern, sys.stdin.buffer))
        out.flush()
        return 0

    for path in args[1:]:
        try:
            stream = open(path, "rb")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            out.writelines(grep_lines(pattern, stream))
        out.flush()
    return 0