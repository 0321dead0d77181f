"""On-disk layout of the file system: superblock, inodes and directory entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

ROOTINO = 1
BSIZE = 512
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
BPB = BSIZE * 8
CONSOLE = 1

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // DINODE_SIZE


class InodeType(IntEnum):
    """Kind of object an inode describes; zero marks a free inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    try:
        return layout.unpack_from(data)
    except struct.error as err:
        raise ValueError(f"{what}: need {layout.size} bytes, got {len(data)}") from err


def _encode_name(name: str | bytes) -> bytes:
    if isinstance(name, str):
        return name.encode("utf-8", "surrogateescape")
    return bytes(name)


@dataclass
class SuperBlock:
    """Describes where each region of the disk starts and how large it is."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> SuperBlock:
        return cls(*_unpack(_SUPERBLOCK, data, "superblock"))

    def inode_block(self, inum: int) -> int:
        """Block holding inode ``inum``."""
        return inum // IPB + self.inodestart

    def bitmap_block(self, blockno: int) -> int:
        """Bitmap block holding the bit for block ``blockno``."""
        return blockno // BPB + self.bmapstart


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = InodeType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"inode needs {NDIRECT + 1} block addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> DiskInode:
        itype, major, minor, nlink, size, *addrs = _unpack(_DINODE, data, "inode")
        return cls(itype, major, minor, nlink, size, list(addrs))


@dataclass
class DirEntry:
    """One slot in a directory: an inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        return _DIRENT.pack(self.inum, _encode_name(self.name))

    @classmethod
    def unpack(cls, data: bytes) -> DirEntry:
        inum, raw = _unpack(_DIRENT, data, "directory entry")
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(inum, name)


def _name_key(name: str | bytes) -> bytes:
    return _encode_name(name)[:DIRSIZ].split(b"\0", 1)[0]


def name_equal(a: str | bytes, b: str | bytes) -> bool:
    """Compare two directory names over their first DIRSIZ bytes."""
    return _name_key(a) == _name_key(b)