"""A disk whose blocks live in memory, loaded from a file system image."""

from __future__ import annotations

import os

from .layout import BSIZE


class DiskError(Exception):
    """A request the disk cannot serve."""


class MemoryDisk:
    """A block device backed by an in-memory copy of a disk image.

    Only whole blocks are addressable; trailing bytes that do not fill a
    block are kept but cannot be read or written.
    """

    def __init__(self, data: bytes | bytearray, dev: int = 1) -> None:
        self.dev = dev
        self._data = bytearray(data)
        self._nblocks = len(self._data) // BSIZE

    def __len__(self) -> int:
        return self._nblocks

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self._nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        """Return the contents of block ``blockno``."""
        off = self._offset(blockno)
        return bytes(self._data[off:off + BSIZE])

    def write_block(self, blockno: int, data: bytes | bytearray) -> None:
        """Replace the contents of block ``blockno`` with ``data``."""
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes, got {len(data)}")
        off = self._offset(blockno)
        self._data[off:off + BSIZE] = data

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], dev: int = 1) -> MemoryDisk:
        """Load a disk image from ``path``."""
        with open(path, "rb") as f:
            return cls(f.read(), dev)

    def to_bytes(self) -> bytes:
        """Return the whole image as it stands now."""
        return bytes(self._data)