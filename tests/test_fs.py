import pytest

from xv6fs.bufcache import BufferCache
from xv6fs.disk import MemoryDisk
from xv6fs.fs import FileSystem, FsError, skip_elem
from xv6fs.layout import BSIZE, DIRENT_SIZE, DIRSIZ, MAXFILE, NDIRECT, ROOTINO, InodeType
from xv6fs.log import Log, LogError
from xv6fs.mkfs import build_image

HELLO = b"hello, file system\n"
PROG = bytes(range(256)) * 3


def mount(image, ninode=50):
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk)
    log = Log(cache, 1)
    return FileSystem(cache, log, ninode=ninode)


@pytest.fixture
def fs():
    return mount(build_image([("hello", HELLO), ("_prog", PROG)]))


def read_all(ip):
    with ip.locked():
        return ip.read(0, ip.size)


def test_skip_elem_examples():
    assert skip_elem("a/bb/c") == ("a", "bb/c")
    assert skip_elem("///a//bb") == ("a", "bb")
    assert skip_elem("a") == ("a", "")
    assert skip_elem("") is None
    assert skip_elem("////") is None


def test_skip_elem_truncates_long_names():
    long_name = "abcdefghijklmnopqrstu"
    name, rest = skip_elem(long_name + "/x")
    assert name == long_name[:DIRSIZ]
    assert rest == "x"


def test_namei_root(fs):
    ip = fs.namei("/")
    with ip.locked():
        assert ip.type == InodeType.DIR
        assert ip.inum == ROOTINO


def test_read_files(fs):
    assert read_all(fs.namei("/hello")) == HELLO
    assert read_all(fs.namei("/prog")) == PROG


def test_read_partial_and_at_end(fs):
    ip = fs.namei("/hello")
    with ip.locked():
        assert ip.read(6, 4) == HELLO[6:10]
        assert ip.read(ip.size, 10) == b""
        assert ip.read(3, 10_000) == HELLO[3:]
        with pytest.raises(FsError):
            ip.read(ip.size + 1, 1)


def test_missing_path_raises(fs):
    with pytest.raises(FsError):
        fs.namei("/nothing")


def test_file_as_directory_raises(fs):
    with pytest.raises(FsError):
        fs.namei("/hello/x")


def test_relative_lookup_with_cwd(fs):
    root = fs.namei("/")
    assert read_all(fs.namei("hello", root)) == HELLO
    assert fs.namei("./hello", root) is fs.namei("/hello")


def test_relative_lookup_without_cwd_raises(fs):
    with pytest.raises(FsError):
        fs.namei("hello")


def test_nameiparent(fs):
    ip, name = fs.nameiparent("/hello")
    assert ip.inum == ROOTINO
    assert name == "hello"
    with pytest.raises(FsError):
        fs.nameiparent("/")


def test_dirlookup_offsets(fs):
    root = fs.namei("/")
    with root.locked():
        dot, off = root.dirlookup(".")
        assert dot.inum == ROOTINO and off == 0
        assert root.dirlookup("..")[1] == DIRENT_SIZE
        hello, off = root.dirlookup("hello")
        assert off == 2 * DIRENT_SIZE
        assert root.dirlookup("missing") is None
    assert hello is fs.namei("/hello")


def test_dirlookup_on_file_raises(fs):
    ip = fs.namei("/hello")
    with ip.locked():
        with pytest.raises(FsError):
            ip.dirlookup("x")


def test_stat(fs):
    ip = fs.namei("/hello")
    with ip.locked():
        st = ip.stat()
    assert st.ino == ip.inum
    assert st.type == InodeType.FILE
    assert st.size == len(HELLO)
    assert st.nlink == 1


def test_create_file_survives_remount(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        with ip.locked():
            ip.nlink = 1
            ip.update()
            assert ip.write(b"data", 0) == 4
        root = fs.namei("/")
        with root.locked():
            root.dirlink("new", ip.inum)
    again = mount(fs.cache.disk.to_bytes())
    found = again.namei("/new")
    assert found.inum == ip.inum
    assert read_all(found) == b"data"


def test_dirlink_duplicate_raises(fs):
    root = fs.namei("/")
    with fs.log.transaction(), root.locked():
        with pytest.raises(FsError):
            root.dirlink("hello", ROOTINO)
        with pytest.raises(FsError):
            root.dirlink(".", ROOTINO)


def test_dirlink_long_name_matches_on_prefix(fs):
    long_name = "a_rather_long_file_name"
    with fs.log.transaction():
        root = fs.namei("/")
        with root.locked():
            root.dirlink(long_name, ROOTINO)
            ip, _ = root.dirlookup(long_name[:DIRSIZ] + "zzz")
    assert ip.inum == ROOTINO


def test_large_write_uses_indirect_block(fs):
    data = bytes((i * 7) % 251 for i in range(NDIRECT * BSIZE + 100))
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        with ip.locked():
            ip.nlink = 1
            ip.write(data, 0)
            assert ip.addrs[NDIRECT] != 0
        root = fs.namei("/")
        with root.locked():
            root.dirlink("big", ip.inum)
    assert read_all(ip) == data
    assert read_all(mount(fs.cache.disk.to_bytes()).namei("/big")) == data


def test_write_errors(fs):
    ip = fs.namei("/hello")
    with fs.log.transaction(), ip.locked():
        with pytest.raises(FsError):
            ip.write(b"x", ip.size + 1)
        with pytest.raises(FsError):
            ip.write(bytes(MAXFILE * BSIZE + 1), 0)
        assert ip.size == len(HELLO)


def test_overwrite_within_file(fs):
    ip = fs.namei("/hello")
    with fs.log.transaction(), ip.locked():
        ip.write(b"HELLO", 0)
    assert read_all(ip) == b"HELLO" + HELLO[5:]


def test_iput_frees_unlinked_inode_and_blocks(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        inum = ip.inum
        with ip.locked():
            ip.write(b"temporary", 0)
            block = ip.addrs[0]
        fs.iput(ip)
    with fs.log.transaction():
        again = fs.ialloc(InodeType.FILE)
        with again.locked():
            again.write(b"x", 0)
            assert again.addrs[0] == block
    assert again.inum == inum


def test_ialloc_outside_transaction_raises(fs):
    with pytest.raises(LogError):
        fs.ialloc(InodeType.FILE)


def test_iget_and_idup(fs):
    ip = fs.iget(ROOTINO)
    assert fs.iget(ROOTINO) is ip
    refs = ip.ref
    assert fs.idup(ip) is ip
    assert ip.ref == refs + 1


def test_inode_cache_exhaustion():
    small = mount(build_image([("hello", HELLO)]), ninode=2)
    first = small.iget(1)
    second = small.iget(2)
    assert first is not second
    with pytest.raises(FsError):
        small.iget(3)


def test_lock_without_reference_raises(fs):
    ip = fs.iget(ROOTINO)
    fs.iput(ip)
    assert ip.ref == 0
    with pytest.raises(FsError):
        with ip.locked():
            pass


def test_lock_free_inode_raises(fs):
    ip = fs.iget(150)
    with pytest.raises(FsError):
        with ip.locked():
            pass


class _Device:
    def __init__(self):
        self.written = b""

    def read(self, ip, n):
        return b"z" * n

    def write(self, ip, data):
        self.written += data
        return len(data)


def test_device_inode(fs):
    device = _Device()
    fs.devsw[1] = device
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.DEVICE)
        with ip.locked():
            ip.major = 1
            ip.nlink = 1
            ip.update()
            assert ip.read(0, 3) == b"zzz"
            assert ip.write(b"out", 0) == 3
            ip.major = 2
            with pytest.raises(FsError):
                ip.read(0, 1)
    assert device.written == b"out"