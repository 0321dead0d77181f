"""The small user programs: cat, echo and ls."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import BinaryIO

from .fs import FileSystem, FsError
from .layout import DIRENT_SIZE, DIRSIZ, ROOTINO, DirEntry, InodeType

_CHUNK = 512
_PATH_BUF = 512


def cat(streams: Iterable[BinaryIO], out: BinaryIO) -> None:
    """Copy each stream in turn to ``out``."""
    for stream in streams:
        while chunk := stream.read(_CHUNK):
            written = out.write(chunk)
            if written is not None and written != len(chunk):
                raise OSError("cat: write error")


def echo(args: Iterable[str]) -> str:
    """Join the arguments with spaces and end with a newline; nothing for no arguments."""
    words = list(args)
    return " ".join(words) + "\n" if words else ""


def fmtname(path: str) -> str:
    """The last path element, padded with blanks to DIRSIZ unless already that long."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def _listing(fs: FileSystem, root, path: str) -> Iterator[str]:
    ip = fs.namei(path, root)
    try:
        with ip.locked():
            st = ip.stat()
            raw = ip.read(0, ip.size) if st.type == InodeType.DIR else b""
    finally:
        fs.iput(ip)

    if st.type == InodeType.FILE:
        yield _line(path, st)
        return
    if st.type != InodeType.DIR:
        return
    if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _PATH_BUF:
        yield "ls: path too long"
        return
    for off in range(0, len(raw) - DIRENT_SIZE + 1, DIRENT_SIZE):
        de = DirEntry.unpack(raw[off:off + DIRENT_SIZE])
        if de.inum == 0:
            continue
        child = f"{path}/{de.name}"
        try:
            cp = fs.namei(child, root)
        except FsError:
            yield f"ls: cannot stat {child}"
            continue
        try:
            with cp.locked():
                cst = cp.stat()
        finally:
            fs.iput(cp)
        yield _line(child, cst)


def ls(fs: FileSystem, path: str) -> list[str]:
    """List a file or the entries of a directory as "name type inum size" lines.

    Relative paths are taken from the root directory.
    """
    with fs.log.transaction():
        root = fs.iget(ROOTINO)
        try:
            return list(_listing(fs, root, path))
        finally:
            fs.iput(root)