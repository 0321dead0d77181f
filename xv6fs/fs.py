"""Inodes, directories and path names on top of the log and buffer cache."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from .bufcache import BufferCache
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
    name_equal,
)
from .log import Log

NINODE = 50

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FsError(Exception):
    """A file system request that cannot be carried out."""


@dataclass(frozen=True)
class Stat:
    """Metadata of an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


class _SleepLock:
    """A lock that may be held across blocking work and knows its holder."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._holder: int | None = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._holder == me:
                raise FsError("inode already locked by this thread")
            while self._holder is not None:
                self._cond.wait()
            self._holder = me

    def release(self) -> None:
        with self._cond:
            self._holder = None
            self._cond.notify_all()

    def held(self) -> bool:
        return self._holder == threading.get_ident()


def _truncate_name(name: str) -> str:
    raw = name.encode("utf-8", "surrogateescape")
    if len(raw) <= DIRSIZ:
        return name
    return raw[:DIRSIZ].decode("utf-8", "surrogateescape")


def skip_elem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns the element (cut to DIRSIZ bytes) and the rest of the path with
    its leading slashes removed, or None if there is no element left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return _truncate_name(name), rest.lstrip("/")


class Inode:
    """The in-memory copy of an inode, shared by everyone who refers to it."""

    def __init__(self, fs: FileSystem, dev: int, inum: int) -> None:
        self.fs = fs
        self.dev = dev
        self.inum = inum
        self.ref = 0
        self.valid = False
        self.type = InodeType.FREE
        self.major = 0
        self.minor = 0
        self.nlink = 0
        self.size = 0
        self.addrs = [0] * (NDIRECT + 1)
        self._lock = _SleepLock()

    def __repr__(self) -> str:
        return f"Inode(dev={self.dev}, inum={self.inum}, ref={self.ref}, type={self.type})"

    # Locking

    def _ilock(self) -> None:
        if self.ref < 1:
            raise FsError("ilock")
        self._lock.acquire()
        if self.valid:
            return
        try:
            din = self.fs._read_dinode(self.dev, self.inum)
        except Exception:
            self._lock.release()
            raise
        self.type = din.type
        self.major = din.major
        self.minor = din.minor
        self.nlink = din.nlink
        self.size = din.size
        self.addrs = list(din.addrs)
        if self.type == InodeType.FREE:
            self._lock.release()
            raise FsError("ilock: no type")
        self.valid = True

    def _iunlock(self) -> None:
        if not self._lock.held() or self.ref < 1:
            raise FsError("iunlock")
        self._lock.release()

    @contextmanager
    def locked(self) -> Iterator[Inode]:
        """Hold the inode's lock, reading it from disk if needed."""
        self._ilock()
        try:
            yield self
        finally:
            self._iunlock()

    # Metadata

    def update(self) -> None:
        """Write the in-memory copy back to disk; must run inside a transaction."""
        din = DiskInode(
            type=self.type,
            major=self.major,
            minor=self.minor,
            nlink=self.nlink,
            size=self.size,
            addrs=list(self.addrs),
        )
        self.fs._write_dinode(self.dev, self.inum, din)

    def stat(self) -> Stat:
        return Stat(self.dev, self.inum, self.type, self.nlink, self.size)

    # Content

    def _bmap(self, bn: int) -> int:
        fs = self.fs
        if bn < NDIRECT:
            addr = self.addrs[bn]
            if addr == 0:
                addr = self.addrs[bn] = fs._balloc(self.dev)
            return addr
        bn -= NDIRECT
        if bn < NINDIRECT:
            indirect = self.addrs[NDIRECT]
            if indirect == 0:
                indirect = self.addrs[NDIRECT] = fs._balloc(self.dev)
            with fs.cache.block(self.dev, indirect) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = fs._balloc(self.dev)
                    _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                    fs.log.log_write(buf)
            return addr
        raise FsError("bmap: out of range")

    def _truncate(self) -> None:
        fs = self.fs
        for i in range(NDIRECT):
            if self.addrs[i]:
                fs._bfree(self.dev, self.addrs[i])
                self.addrs[i] = 0
        if self.addrs[NDIRECT]:
            with fs.cache.block(self.dev, self.addrs[NDIRECT]) as buf:
                entries = _INDIRECT.unpack_from(buf.data)
            for addr in entries:
                if addr:
                    fs._bfree(self.dev, addr)
            fs._bfree(self.dev, self.addrs[NDIRECT])
            self.addrs[NDIRECT] = 0
        self.size = 0
        self.update()

    def _device(self, op: str) -> Any:
        handler = getattr(self.fs.devsw.get(self.major), op, None)
        if handler is None:
            raise FsError(f"no device {op} for major {self.major}")
        return handler

    def read(self, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; the caller holds the lock."""
        if self.type == InodeType.DEVICE:
            return self._device("read")(self, n)
        if off < 0 or n < 0 or off > self.size:
            raise FsError("read outside the file")
        n = min(n, self.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            start = pos % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.fs.cache.block(self.dev, self._bmap(pos // BSIZE)) as buf:
                out += buf.data[start:start + m]
        return bytes(out)

    def write(self, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file; the caller holds the lock."""
        if self.type == InodeType.DEVICE:
            return self._device("write")(self, data)
        view = memoryview(bytes(data))
        n = len(view)
        if off < 0 or off > self.size:
            raise FsError("write outside the file")
        if off + n > MAXFILE * BSIZE:
            raise FsError("file too large")
        tot = 0
        while tot < n:
            pos = off + tot
            start = pos % BSIZE
            m = min(n - tot, BSIZE - start)
            with self.fs.cache.block(self.dev, self._bmap(pos // BSIZE)) as buf:
                buf.data[start:start + m] = view[tot:tot + m]
                self.fs.log.log_write(buf)
            tot += m
        if n > 0 and off + n > self.size:
            self.size = off + n
            self.update()
        return n

    # Directories

    def _entry(self, off: int) -> DirEntry:
        raw = self.read(off, DIRENT_SIZE)
        if len(raw) != DIRENT_SIZE:
            raise FsError("short directory entry")
        return DirEntry.unpack(raw)

    def dirlookup(self, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in this directory; return its inode and byte offset."""
        if self.type != InodeType.DIR:
            raise FsError("dirlookup not DIR")
        for off in range(0, self.size, DIRENT_SIZE):
            de = self._entry(off)
            if de.inum != 0 and name_equal(name, de.name):
                return self.fs.iget(de.inum), off
        return None

    def dirlink(self, name: str, inum: int) -> None:
        """Add the entry (name, inum) to this directory."""
        found = self.dirlookup(name)
        if found is not None:
            ip = found[0]
            if ip is self:
                with self.fs._lock:
                    ip.ref -= 1
            else:
                self.fs.iput(ip)
            raise FsError(f"{name}: entry already exists")
        off = next(
            (o for o in range(0, self.size, DIRENT_SIZE) if self._entry(o).inum == 0),
            -(-self.size // DIRENT_SIZE) * DIRENT_SIZE,
        )
        if self.write(DirEntry(inum, name).pack(), off) != DIRENT_SIZE:
            raise FsError("dirlink")


class FileSystem:
    """The file system on one device, with its inode cache."""

    def __init__(
        self,
        cache: BufferCache,
        log: Log,
        dev: int | None = None,
        ninode: int = NINODE,
    ) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.cache = cache
        self.log = log
        self.dev = cache.disk.dev if dev is None else dev
        self.devsw: dict[int, Any] = {}
        self._lock = threading.Lock()
        self._inodes = [Inode(self, 0, 0) for _ in range(ninode)]
        with cache.block(self.dev, 1) as buf:
            self.superblock = SuperBlock.unpack(bytes(buf.data))

    # Raw inodes

    def _read_dinode(self, dev: int, inum: int) -> DiskInode:
        off = (inum % IPB) * DINODE_SIZE
        with self.cache.block(dev, self.superblock.inode_block(inum)) as buf:
            return DiskInode.unpack(bytes(buf.data[off:off + DINODE_SIZE]))

    def _write_dinode(self, dev: int, inum: int, din: DiskInode) -> None:
        off = (inum % IPB) * DINODE_SIZE
        with self.cache.block(dev, self.superblock.inode_block(inum)) as buf:
            buf.data[off:off + DINODE_SIZE] = din.pack()
            self.log.log_write(buf)

    # Blocks

    def _bzero(self, dev: int, blockno: int) -> None:
        with self.cache.block(dev, blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.log_write(buf)

    def _balloc(self, dev: int) -> int:
        size = self.superblock.size
        for base in range(0, size, BPB):
            found = None
            with self.cache.block(dev, self.superblock.bitmap_block(base)) as buf:
                for bi in range(min(BPB, size - base)):
                    mask = 1 << (bi % 8)
                    if not buf.data[bi // 8] & mask:
                        buf.data[bi // 8] |= mask
                        self.log.log_write(buf)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(dev, found)
                return found
        raise FsError("balloc: out of blocks")

    def _bfree(self, dev: int, blockno: int) -> None:
        with self.cache.block(dev, self.superblock.bitmap_block(blockno)) as buf:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise FsError("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(buf)

    # Inode cache

    def ialloc(self, itype: int) -> Inode:
        """Allocate a free inode of type ``itype``; return it referenced but unlocked."""
        for inum in range(1, self.superblock.ninodes):
            off = (inum % IPB) * DINODE_SIZE
            with self.cache.block(self.dev, self.superblock.inode_block(inum)) as buf:
                din = DiskInode.unpack(bytes(buf.data[off:off + DINODE_SIZE]))
                if din.type != InodeType.FREE:
                    continue
                buf.data[off:off + DINODE_SIZE] = DiskInode(type=itype).pack()
                self.log.log_write(buf)
            return self.iget(inum)
        raise FsError("ialloc: no inodes")

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum``, neither locked nor read from disk."""
        with self._lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        with self._lock:
            ip.ref += 1
        return ip

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last one and unlinked."""
        ip._lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._lock:
                    last = ip.ref == 1
                if last:
                    ip._truncate()
                    ip.type = InodeType.FREE
                    ip.update()
                    ip.valid = False
        finally:
            ip._lock.release()
        with self._lock:
            ip.ref -= 1

    def _iunlockput(self, ip: Inode) -> None:
        ip._iunlock()
        self.iput(ip)

    # Path names

    def _namex(self, path: str, cwd: Inode | None, parent: bool) -> tuple[Inode, str]:
        if path.startswith("/"):
            ip = self.iget(ROOTINO)
        elif cwd is None:
            raise FsError("relative path without a current directory")
        else:
            ip = self.idup(cwd)

        name = ""
        while (elem := skip_elem(path)) is not None:
            name, path = elem
            try:
                ip._ilock()
            except Exception:
                self.iput(ip)
                raise
            try:
                if ip.type != InodeType.DIR:
                    raise FsError(f"{name}: parent is not a directory")
                if parent and not path:
                    ip._iunlock()
                    return ip, name
                found = ip.dirlookup(name)
            except Exception:
                self._iunlockput(ip)
                raise
            self._iunlockput(ip)
            if found is None:
                raise FsError(f"{name}: no such file or directory")
            ip = found[0]

        if parent:
            self.iput(ip)
            raise FsError("path has no final element")
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Return the referenced inode that ``path`` names."""
        return self._namex(path, cwd, False)[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Return the parent directory of ``path`` and the path's final element."""
        return self._namex(path, cwd, True)