import os
import threading

import pytest

from sysproc import File


@pytest.fixture
def pipe():
    r, w = os.pipe()
    reader, writer = File(r), File(w)
    yield reader, writer
    reader.close()
    writer.close()


def test_read_write(pipe: tuple[File, File]) -> None:
    reader, writer = pipe

    assert writer.write(b"hello world") == 11
    assert reader.read(5) == b"hello"
    writer.close()
    assert reader.read() == b" world"
    assert reader.read(10) == b""


def test_readall(pipe: tuple[File, File]) -> None:
    reader, writer = pipe
    writer.write(bytearray(b"abc"))
    writer.close()
    assert reader.readall() == b"abc"


def test_large_write(pipe: tuple[File, File]) -> None:
    reader, writer = pipe
    data = os.urandom(1 << 20)
    result: list[bytes] = []

    t = threading.Thread(target=lambda: result.append(reader.readall()))
    t.start()
    assert writer.write(data) == len(data)
    writer.close()
    t.join()

    assert result == [data]


def test_close(pipe: tuple[File, File]) -> None:
    reader, _ = pipe
    fd = reader.fileno()

    reader.close()
    reader.close()

    assert reader.closed
    with pytest.raises(OSError):
        os.fstat(fd)
    with pytest.raises(ValueError, match="closed file"):
        reader.read(1)
    with pytest.raises(ValueError, match="closed file"):
        reader.fileno()


def test_context_manager() -> None:
    r, w = os.pipe()
    os.close(w)
    with File(r, "label") as f:
        assert f.path == "label"
        assert f.read(1) == b""
    assert f.closed
    assert repr(f) == "<File 'label' closed>"
