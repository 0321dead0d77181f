"""Write-ahead redo log that groups file system operations into transactions."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .bufcache import Buffer, BufferCache
from .layout import BSIZE, SuperBlock

LOGSIZE = 30
MAXOPBLOCKS = 10


class LogError(Exception):
    """Misuse of the log or a transaction that does not fit."""


class Log:
    """The on-disk log of one device.

    The header block holds a count and the home block numbers of the logged
    blocks; the logged copies follow it in order. A transaction commits only
    once no operation is outstanding.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        log_size: int = LOGSIZE,
        max_op_blocks: int = MAXOPBLOCKS,
    ) -> None:
        self._header = struct.Struct(f"<i{log_size}i")
        if self._header.size >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.log_size = log_size
        self.max_op_blocks = max_op_blocks
        with cache.block(dev, 1) as buf:
            sb = SuperBlock.unpack(bytes(buf.data))
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        self._recover()

    @property
    def blocks(self) -> list[int]:
        """Home block numbers logged in the current transaction."""
        return list(self._blocks)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            n, *blocks = self._header.unpack_from(buf.data)
        self._blocks = blocks[:max(n, 0)]

    def _write_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            _, *entries = self._header.unpack_from(buf.data)
            entries[:len(self._blocks)] = self._blocks
            self._header.pack_into(buf.data, 0, len(self._blocks), *entries)
            self.cache.bwrite(buf)

    def _install_trans(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as lbuf, \
                    self.cache.block(self.dev, home) as dbuf:
                dbuf.data[:] = lbuf.data
                self.cache.bwrite(dbuf)

    def _write_log(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as to, \
                    self.cache.block(self.dev, home) as src:
                to.data[:] = src.data
                self.cache.bwrite(to)

    def _recover(self) -> None:
        self._read_head()
        self._install_trans()
        self._blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self._blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self._blocks) + (self.outstanding + 1) * self.max_op_blocks
                > self.log_size
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one outstanding commits the transaction."""
        with self._cond:
            if self.outstanding < 1:
                raise LogError("end_op outside of transaction")
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        with self._cond:
            if len(self._blocks) >= self.log_size or len(self._blocks) >= self.size - 1:
                raise LogError("too big a transaction")
            if self.outstanding < 1:
                raise LogError("log_write outside of trans")
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the enclosed block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()