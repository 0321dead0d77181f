"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
)

FS_SIZE = 1000
LOG_SIZE = 30
NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """An image under construction, laid out as
    boot | superblock | log | inodes | bitmap | data."""

    def __init__(self, fs_size: int = FS_SIZE, log_size: int = LOG_SIZE, ninodes: int = NINODES):
        self.fs_size = fs_size
        self.nlog = log_size
        self.nbitmap = fs_size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + log_size + self.ninodeblocks + self.nbitmap
        self.nblocks = fs_size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.superblock = SuperBlock(
            size=fs_size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=log_size,
            logstart=2,
            inodestart=2 + log_size,
            bmapstart=2 + log_size + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(fs_size * BSIZE)
        self._finished = False
        self._wsect(1, self.superblock.pack())

        self.root = self.ialloc(InodeType.DIR)
        if self.root != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        for name in (".", ".."):
            self.iappend(self.root, DirEntry(self.root, name).pack())

    def _rsect(self, sec: int) -> bytes:
        return bytes(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if len(data) > BSIZE:
            raise ValueError("sector data larger than a block")
        if not 0 <= sec < self.fs_size:
            raise ValueError(f"sector {sec} outside the image")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = bytes(data).ljust(BSIZE, b"\0")

    def _alloc_block(self) -> int:
        if self.freeblock >= self.fs_size:
            raise ValueError("out of data blocks")
        block = self.freeblock
        self.freeblock += 1
        return block

    def ialloc(self, itype: int) -> int:
        """Allocate the next inode with the given type and one link."""
        inum = self.freeinode
        if inum >= self.superblock.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self.write_inode(inum, DiskInode(type=itype, nlink=1))
        return inum

    def read_inode(self, inum: int) -> DiskInode:
        block = self._rsect(self.superblock.inode_block(inum))
        off = (inum % IPB) * DINODE_SIZE
        return DiskInode.unpack(block[off:off + DINODE_SIZE])

    def write_inode(self, inum: int, dinode: DiskInode) -> None:
        bn = self.superblock.inode_block(inum)
        block = bytearray(self._rsect(bn))
        off = (inum % IPB) * DINODE_SIZE
        block[off:off + DINODE_SIZE] = dinode.pack()
        self._wsect(bn, block)

    def _data_block(self, din: DiskInode, fbn: int) -> int:
        if fbn < NDIRECT:
            if din.addrs[fbn] == 0:
                din.addrs[fbn] = self._alloc_block()
            return din.addrs[fbn]
        if din.addrs[NDIRECT] == 0:
            din.addrs[NDIRECT] = self._alloc_block()
        indirect_block = din.addrs[NDIRECT]
        indirect = list(_INDIRECT.unpack(self._rsect(indirect_block)))
        slot = fbn - NDIRECT
        if indirect[slot] == 0:
            indirect[slot] = self._alloc_block()
            self._wsect(indirect_block, _INDIRECT.pack(*indirect))
        return indirect[slot]

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks as needed."""
        din = self.read_inode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            blockno = self._data_block(din, fbn)
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._rsect(blockno))
            start = off - fbn * BSIZE
            block[start:start + n1] = data[pos:pos + n1]
            self._wsect(blockno, block)
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def _write_bitmap(self, used: int) -> None:
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.superblock.bmapstart, bitmap)

    def finish(self) -> bytes:
        """Round the root directory's size up and write the free-block bitmap."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self.read_inode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self.write_inode(self.root, din)
        self._write_bitmap(self.freeblock)
        self._finished = True
        return self.image()

    def image(self) -> bytes:
        return bytes(self._image)


def _populate(builder: ImageBuilder, files: Iterable[tuple[str, bytes]]) -> None:
    for name, data in files:
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name}")
        # Build products carry a leading underscore that is not part of the name.
        short = name[1:] if name.startswith("_") else name
        inum = builder.ialloc(InodeType.FILE)
        builder.iappend(builder.root, DirEntry(inum, short).pack())
        builder.iappend(inum, data)


def build_image(
    files: Iterable[tuple[str, bytes]],
    fs_size: int = FS_SIZE,
    log_size: int = LOG_SIZE,
    ninodes: int = NINODES,
) -> bytes:
    """Return an image holding ``files``, given as (name, contents) pairs, in the root."""
    builder = ImageBuilder(fs_size, log_size, ninodes)
    _populate(builder, files)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *paths = args

    files = []
    for path in paths:
        try:
            files.append((path, Path(path).read_bytes()))
        except OSError as err:
            print(f"{path}: {err.strerror}", file=sys.stderr)
            return 1

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fs_size}"
    )
    try:
        _populate(builder, files)
        image = builder.finish()
    except ValueError as err:
        print(f"mkfs: {err}", file=sys.stderr)
        return 1
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.superblock.bmapstart}")

    try:
        Path(image_path).write_bytes(image)
    except OSError as err:
        print(f"{image_path}: {err.strerror}", file=sys.stderr)
        return 1
    return 0