"""Cache of disk blocks with most-recently-used ordering and per-buffer locks."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .disk import DiskError, MemoryDisk
from .layout import BSIZE

NBUF = 30


class CacheError(Exception):
    """Misuse of the buffer cache, or no buffer available."""


class _SleepLock:
    """A lock that may be held across blocking work and knows its holder."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._holder: int | None = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._holder == me:
                raise CacheError("buffer already locked by this thread")
            while self._holder is not None:
                self._cond.wait()
            self._holder = me

    def release(self) -> None:
        with self._cond:
            self._holder = None
            self._cond.notify_all()

    def held(self) -> bool:
        return self._holder == threading.get_ident()


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int = -1
    blockno: int = -1
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class BufferCache:
    """A fixed set of buffers over one disk, recycled least-recently-used first."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            for b in self._mru:
                if b.dev == dev and b.blockno == blockno:
                    b.refcnt += 1
                    break
            else:
                # A dirty buffer is pinned by the log even with no references.
                for b in reversed(self._mru):
                    if b.refcnt == 0 and not b.dirty:
                        b.dev = dev
                        b.blockno = blockno
                        b.valid = False
                        b.dirty = False
                        b.refcnt = 1
                        break
                else:
                    raise CacheError("bget: no buffers")
        try:
            b._lock.acquire()
        except CacheError:
            with self._lock:
                b.refcnt -= 1
            raise
        return b

    def _sync(self, b: Buffer) -> None:
        if not b._lock.held():
            raise CacheError("iderw: buf not locked")
        if b.valid and not b.dirty:
            raise CacheError("iderw: nothing to do")
        if b.dev != self.disk.dev:
            raise DiskError(f"iderw: request not for disk {self.disk.dev}")
        if b.dirty:
            self.disk.write_block(b.blockno, b.data)
            b.dirty = False
        else:
            b.data[:] = self.disk.read_block(b.blockno)
        b.valid = True

    def bread(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the contents of the block."""
        b = self._get(dev, blockno)
        if not b.valid:
            try:
                self._sync(b)
            except Exception:
                self.brelse(b)
                raise
        return b

    def bwrite(self, buf: Buffer) -> None:
        """Write the buffer's contents to disk; the caller must hold it."""
        if not buf._lock.held():
            raise CacheError("bwrite")
        buf.dirty = True
        self._sync(buf)

    def brelse(self, buf: Buffer) -> None:
        """Release a locked buffer and mark it most recently used."""
        if not buf._lock.held():
            raise CacheError("brelse")
        buf._lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        """Read a block and release it when the block ends."""
        buf = self.bread(dev, blockno)
        try:
            yield buf
        finally:
            self.brelse(buf)