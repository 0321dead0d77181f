# xv6fs

A small Unix-style file system in pure Python. Its disk format is made
of 512-byte blocks laid out as a boot block, a superblock, a write-ahead
log, inode blocks, a free-block bitmap and data blocks. Inodes have 12
direct block addresses and one indirect block. Directory entries are a
16-bit inode number and a name of at most 14 bytes.

The package has no dependencies beyond the standard library.

## What is inside

- `xv6fs.layout`: the on-disk structures `SuperBlock`, `DiskInode` and
  `DirEntry`, each with `pack()` and `unpack()`, plus `InodeType` and
  `name_equal()`. `SuperBlock.inode_block()` and `SuperBlock.bitmap_block()`
  give the block holding an inode or a block's bitmap bit.
- `xv6fs.mkfs`: `ImageBuilder` and `build_image()` to lay out a fresh
  image with a root directory (`.` and `..`) and a set of files. The
  defaults are 1000 blocks, 30 log blocks and 200 inodes.
- `xv6fs.disk`: `MemoryDisk`, a block device held in memory, loadable
  with `MemoryDisk.from_file()` and dumped with `to_bytes()`.
- `xv6fs.bufcache`: `BufferCache` with `bread`, `bwrite`, `brelse` and
  the `block()` context manager. Buffers are recycled least recently
  used first; dirty buffers stay pinned.
- `xv6fs.log`: `Log`, a redo log whose `transaction()` context manager
  wraps `begin_op()` / `end_op()`; modified blocks are recorded with
  `log_write()`. A committed transaction left in the log is installed
  when a `Log` is created.
- `xv6fs.fs`: `FileSystem` and `Inode` for allocating inodes, reading
  and writing file contents, directory lookup and linking, and path
  lookup with `namei()` / `nameiparent()`. `skip_elem()` splits off the
  first element of a path.
- `xv6fs.pipe`: `Pipe`, a bounded byte pipe (512 bytes by default) whose
  writers wait while it is full and readers while it is empty.
- `xv6fs.file`: `FileTable` and `OpenFile`, reference-counted handles on
  inodes and pipes; `FileTable.open_pipe()` returns a reading and a
  writing end. Writes to inode files are split into chunks that each
  fit one log transaction.
- `xv6fs.console`: `ConsoleInput`, the line-editing console input buffer
  (backspace and delete, Ctrl-U to kill the line, Ctrl-D for end of
  file, Ctrl-P to call a process-listing callback).
- `xv6fs.keyboard`: `KeyboardDecoder`, turning PC scan codes (set 1)
  into character codes with shift, control and caps-lock handling.
- `xv6fs.fmt`: `format_int()`, `format_user()` (`%d %x %p %s %c %%`,
  upper-case hex) and `format_kernel()` (`%d %x %p %s %%`, lower-case hex).
- `xv6fs.grep`: `match()` and `grep_lines()`, a tiny matcher supporting
  `^ . * $`. Lines are read through a 1024-byte buffer; a final line
  without a newline is not reported.
- `xv6fs.tools`: `cat`, `echo`, `fmtname` and `ls`.

## Command line

Build a file-system image from host files (a leading `_` in a file
name is dropped inside the image; names may not contain `/`):

    xv6-mkfs fs.img README.md _cat _ls

Search files or standard input for lines matching a simple pattern:

    xv6-grep '^ab*c$' notes.txt

## Using it from Python

Build an image, mount it in memory and read a file:

    from xv6fs.bufcache import BufferCache
    from xv6fs.disk import MemoryDisk
    from xv6fs.fs import FileSystem
    from xv6fs.log import Log
    from xv6fs.mkfs import build_image
    from xv6fs.tools import ls

    disk = MemoryDisk(build_image([("hello.txt", b"hello\n")]))
    cache = BufferCache(disk)
    log = Log(cache, disk.dev)
    fs = FileSystem(cache, log)

    with log.transaction():
        ip = fs.namei("/hello.txt")
        with ip.locked():
            data = ip.read(0, ip.size)
        fs.iput(ip)

    print(ls(fs, "/"))

An existing image is loaded with `MemoryDisk.from_file("fs.img")`, and
the current state is written back with `disk.to_bytes()`.

Any change to inodes or blocks must run inside `log.transaction()`, so
that it reaches its home blocks only when the transaction commits.

Errors are raised as exceptions (`DiskError`, `CacheError`, `LogError`,
`FsError`, `PipeError`, `FileError`) where a request cannot be carried
out; a killed console reader gets `InterruptedError`.

## What it does not do

- There is no system-call layer: no `open`, `unlink`, `mkdir` or `link`
  operations on paths. Files are created with `FileSystem.ialloc()` and
  `Inode.dirlink()`, and nothing removes directory entries.
- There are no processes or scheduler; blocking in pipes and the console
  is done with Python threads.
- `cat`, `echo` and `ls` are Python functions only; they have no
  commands of their own.
- Only the in-memory disk is provided; images are saved by writing
  `to_bytes()` out yourself.

## Tests

    pip install -e .[test]
    pytest