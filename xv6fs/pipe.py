"""A bounded in-memory pipe between one reading end and one writing end."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeError(Exception):
    """A pipe operation that cannot complete: the other end is gone or the caller was killed."""


class Pipe:
    """A ring buffer of bytes; writers block while it is full, readers while it is empty."""

    def __init__(self, size: int = PIPESIZE) -> None:
        if size < 1:
            raise ValueError("a pipe needs room for at least one byte")
        self.size = size
        self._data = bytearray(size)
        self._cond = threading.Condition()
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self.killed = False

    @property
    def closed(self) -> bool:
        """True once both ends have been closed."""
        return not self.readopen and not self.writeopen

    def kill(self) -> None:
        """Make waiting and future blocking calls fail instead of sleeping."""
        with self._cond:
            self.killed = True
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room; return the number of bytes written."""
        payload = bytes(data)
        with self._cond:
            for byte in payload:
                while self.nwrite == self.nread + self.size:
                    if not self.readopen or self.killed:
                        raise PipeError("pipe closed for reading")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % self.size] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(payload)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while the pipe is empty and still open for writing.

        Returns an empty result once the pipe is empty and the writer has closed.
        """
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                if self.killed:
                    raise PipeError("killed while waiting for data")
                self._cond.wait()
            out = bytearray()
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % self.size])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)

    def close(self, writable: bool) -> None:
        """Close the writing end if ``writable``, otherwise the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()