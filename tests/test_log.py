import struct

import pytest

from xv6fs.bufcache import BufferCache
from xv6fs.disk import MemoryDisk
from xv6fs.layout import BSIZE, SuperBlock
from xv6fs.log import Log, LogError
from xv6fs.mkfs import build_image


def _setup(log_size=30):
    image = build_image([], log_size=log_size)
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk)
    sb = SuperBlock.unpack(image[BSIZE:2 * BSIZE])
    return disk, cache, sb


def _header(disk, sb):
    return struct.unpack_from("<i", disk.read_block(sb.logstart))[0]


def test_log_reads_superblock():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    assert log.start == sb.logstart
    assert log.size == sb.nlog
    assert log.blocks == []


def test_transaction_commits_to_home_location():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    target = sb.size - 5
    data = b"committed!" + bytes(BSIZE - 10)
    with log.transaction():
        with cache.block(1, target) as buf:
            buf.data[:] = data
            log.log_write(buf)
        assert disk.read_block(target) == bytes(BSIZE)
        assert log.blocks == [target]
    assert disk.read_block(target) == data
    assert disk.read_block(sb.logstart + 1) == data
    assert _header(disk, sb) == 0
    assert log.blocks == []
    assert log.outstanding == 0


def test_commit_waits_for_last_outstanding_operation():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    target = sb.size - 3
    log.begin_op()
    log.begin_op()
    with cache.block(1, target) as buf:
        buf.data[:] = b"\x07" * BSIZE
        log.log_write(buf)
    log.end_op()
    assert disk.read_block(target) == bytes(BSIZE)
    log.end_op()
    assert disk.read_block(target) == b"\x07" * BSIZE


def test_log_absorbs_repeated_writes():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    target = sb.size - 2
    with log.transaction():
        for value in (1, 2):
            with cache.block(1, target) as buf:
                buf.data[:] = bytes([value]) * BSIZE
                log.log_write(buf)
        assert log.blocks == [target]
    assert disk.read_block(target) == bytes([2]) * BSIZE


def test_log_write_outside_transaction_raises():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    with cache.block(1, sb.size - 1) as buf:
        with pytest.raises(LogError):
            log.log_write(buf)


def test_end_op_without_begin_raises():
    disk, cache, sb = _setup()
    log = Log(cache, 1)
    with pytest.raises(LogError):
        log.end_op()


def test_too_big_transaction_raises():
    disk, cache, sb = _setup(log_size=5)
    log = Log(cache, 1)
    log.begin_op()
    base = sb.size - 10
    for i in range(sb.nlog - 1):
        with cache.block(1, base + i) as buf:
            log.log_write(buf)
    with cache.block(1, base + sb.nlog) as buf:
        with pytest.raises(LogError):
            log.log_write(buf)


def test_oversized_header_rejected():
    disk, cache, sb = _setup()
    with pytest.raises(LogError):
        Log(cache, 1, log_size=200)


def test_recovery_installs_committed_log():
    image = bytearray(build_image([]))
    sb = SuperBlock.unpack(bytes(image[BSIZE:2 * BSIZE]))
    target = sb.size - 4
    payload = b"R" * BSIZE
    struct.pack_into("<ii", image, sb.logstart * BSIZE, 1, target)
    image[(sb.logstart + 1) * BSIZE:(sb.logstart + 2) * BSIZE] = payload
    disk = MemoryDisk(image, dev=1)
    Log(BufferCache(disk), 1)
    assert disk.read_block(target) == payload
    assert _header(disk, sb) == 0


def test_recovery_of_empty_log_changes_nothing():
    image = build_image([("hello", b"hi\n")])
    disk = MemoryDisk(image, dev=1)
    Log(BufferCache(disk), 1)
    assert disk.to_bytes() == image