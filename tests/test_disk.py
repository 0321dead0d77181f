import pytest

from xv6fs.disk import DiskError, MemoryDisk
from xv6fs.layout import BSIZE


def _image(nblocks):
    return b"".join(bytes([i]) * BSIZE for i in range(nblocks))


def test_read_block_returns_block_contents():
    disk = MemoryDisk(_image(4))
    assert disk.read_block(2) == bytes([2]) * BSIZE
    assert len(disk) == 4


def test_write_then_read_round_trip():
    disk = MemoryDisk(_image(3))
    data = bytes(range(256)) * 2
    disk.write_block(1, data)
    assert disk.read_block(1) == data
    assert disk.read_block(0) == bytes([0]) * BSIZE
    assert disk.to_bytes()[BSIZE:2 * BSIZE] == data


def test_out_of_range_block_raises():
    disk = MemoryDisk(_image(2))
    with pytest.raises(DiskError):
        disk.read_block(2)
    with pytest.raises(DiskError):
        disk.read_block(-1)
    with pytest.raises(DiskError):
        disk.write_block(5, bytes(BSIZE))


def test_write_wrong_size_raises():
    disk = MemoryDisk(_image(2))
    with pytest.raises(ValueError):
        disk.write_block(0, b"short")


def test_partial_trailing_block_not_addressable():
    disk = MemoryDisk(_image(2) + b"tail")
    assert len(disk) == 2
    with pytest.raises(DiskError):
        disk.read_block(2)
    assert disk.to_bytes().endswith(b"tail")


def test_from_file(tmp_path):
    path = tmp_path / "fs.img"
    path.write_bytes(_image(3))
    disk = MemoryDisk.from_file(path, dev=1)
    assert disk.dev == 1
    assert disk.to_bytes() == _image(3)


def test_data_is_copied():
    raw = bytearray(_image(1))
    disk = MemoryDisk(raw)
    raw[0] = 0xFF
    assert disk.read_block(0)[0] == 0