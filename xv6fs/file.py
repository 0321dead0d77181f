"""Open files: a shared table of reference-counted handles on inodes and pipes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .fs import FsError, Inode, Stat
from .layout import BSIZE
from .pipe import Pipe

NFILE = 100


class FileType(IntEnum):
    NONE = 0
    PIPE = 1
    INODE = 2


class FileError(Exception):
    """A file operation that is not allowed or did not complete."""


@dataclass(eq=False)
class OpenFile:
    """One open file: what it refers to, how it may be used, and where it stands."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    ip: Optional[Inode] = None
    off: int = 0

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, advancing the offset of an inode file."""
        if not self.readable:
            raise FileError("file not open for reading")
        if self.type == FileType.PIPE and self.pipe is not None:
            return self.pipe.read(n)
        if self.type == FileType.INODE and self.ip is not None:
            with self.ip.locked():
                try:
                    data = self.ip.read(self.off, n)
                except FsError as err:
                    raise FileError(str(err)) from err
                self.off += len(data)
            return data
        raise FileError("fileread")

    def write(self, data: bytes) -> int:
        """Write all of ``data``; inode writes go in chunks that fit one transaction."""
        if not self.writable:
            raise FileError("file not open for writing")
        if self.type == FileType.PIPE and self.pipe is not None:
            return self.pipe.write(data)
        if self.type == FileType.INODE and self.ip is not None:
            return self._write_inode(bytes(data))
        raise FileError("filewrite")

    def _write_inode(self, payload: bytes) -> int:
        ip = self.ip
        assert ip is not None
        log = ip.fs.log
        # Room for the inode, the indirect block, bitmap blocks and two
        # blocks of slop for unaligned writes.
        limit = max(((log.max_op_blocks - 1 - 1 - 2) // 2) * BSIZE, 1)
        done = 0
        while done < len(payload):
            chunk = payload[done:done + limit]
            with log.transaction():
                with ip.locked():
                    try:
                        r = ip.write(chunk, self.off)
                    except FsError as err:
                        raise FileError(str(err)) from err
                    if r > 0:
                        self.off += r
            if r != len(chunk):
                raise FileError("short filewrite")
            done += r
        return len(payload)

    def stat(self) -> Stat:
        """Metadata of the inode behind this file."""
        if self.type != FileType.INODE or self.ip is None:
            raise FileError("only inode files have metadata")
        with self.ip.locked():
            return self.ip.stat()


class FileTable:
    """A fixed number of open-file slots shared by all users."""

    def __init__(self, nfile: int = NFILE) -> None:
        if nfile < 1:
            raise ValueError("the file table needs at least one slot")
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        """Claim a free slot with one reference."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise FileError("file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f``."""
        with self._lock:
            if f.ref < 1:
                raise FileError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; on the last one release the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise FileError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            ftype, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None
            f.off = 0
            f.readable = False
            f.writable = False

        if ftype == FileType.PIPE and pipe is not None:
            pipe.close(writable)
        elif ftype == FileType.INODE and ip is not None:
            with ip.fs.log.transaction():
                ip.fs.iput(ip)

    def open_pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe and return its reading and writing ends."""
        ends: list[OpenFile] = []
        try:
            ends.append(self.alloc())
            ends.append(self.alloc())
        except FileError:
            for f in ends:
                self.close(f)
            raise
        pipe = Pipe()
        read_end, write_end = ends
        read_end.type = FileType.PIPE
        read_end.readable = True
        read_end.writable = False
        read_end.pipe = pipe
        write_end.type = FileType.PIPE
        write_end.readable = False
        write_end.writable = True
        write_end.pipe = pipe
        return read_end, write_end