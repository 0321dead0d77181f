import threading

import pytest

from xv6fs.pipe import Pipe, PipeError


def test_write_then_read_round_trip():
    p = Pipe()
    assert p.write(b"hello") == 5
    assert p.read(100) == b"hello"


def test_read_is_limited_to_n():
    p = Pipe()
    p.write(b"abcdef")
    assert p.read(2) == b"ab"
    assert p.read(10) == b"cdef"


def test_read_after_writer_closed_returns_empty():
    p = Pipe()
    p.write(b"x")
    p.close(writable=True)
    assert p.read(10) == b"x"
    assert p.read(10) == b""


def test_write_to_full_pipe_with_reader_closed_raises():
    p = Pipe()
    p.write(b"x" * p.size)
    p.close(writable=False)
    with pytest.raises(PipeError):
        p.write(b"y")


def test_killed_reader_on_empty_pipe_raises():
    p = Pipe()
    p.kill()
    with pytest.raises(PipeError):
        p.read(1)


def test_closed_after_both_ends():
    p = Pipe()
    p.close(writable=True)
    assert not p.closed
    p.close(writable=False)
    assert p.closed


def test_write_larger_than_buffer_waits_for_reader():
    p = Pipe()
    data = bytes(range(256)) * 4
    got = bytearray()

    def reader():
        while chunk := p.read(100):
            got.extend(chunk)

    t = threading.Thread(target=reader)
    t.start()
    assert p.write(data) == len(data)
    p.close(writable=True)
    t.join(5)
    assert not t.is_alive()
    assert bytes(got) == data


def test_wrap_around_preserves_order():
    p = Pipe(size=4)
    p.write(b"abc")
    assert p.read(2) == b"ab"
    p.write(b"def")
    assert p.read(10) == b"cdef"


def test_invalid_size_rejected():
    with pytest.raises(ValueError):
        Pipe(size=0)