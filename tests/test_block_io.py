import array
import os
import socket
import threading

import pytest

from plugshm.block_io import read_full, recv_oob, send_oob, write_full


@pytest.fixture
def pair():
    left, right = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    yield left, right
    left.close()
    right.close()


def test_block_read_full_and_write_full(pair):
    left, right = pair
    content = b"hello,shmipc!"
    write_full(left.fileno(), content)
    assert read_full(right.fileno(), len(content)) == content


def test_read_full_collects_many_chunks(pair):
    left, right = pair
    payload = bytes(range(256)) * 4096
    writer = threading.Thread(target=write_full, args=(left.fileno(), payload))
    writer.start()
    received = read_full(right.fileno(), len(payload))
    writer.join()
    assert received == payload


def test_read_full_zero_size(pair):
    _, right = pair
    assert read_full(right.fileno(), 0) == b""


def test_read_full_raises_eof_when_peer_closes(pair):
    left, right = pair
    write_full(left.fileno(), b"abc")
    left.shutdown(socket.SHUT_WR)
    with pytest.raises(EOFError):
        read_full(right.fileno(), 10)


def test_read_full_bad_fd_raises():
    with pytest.raises(OSError, match="ReadFull failed, had readSize:0"):
        read_full(-1, 4)


def test_write_full_bad_fd_raises():
    with pytest.raises(OSError):
        write_full(-1, b"data")


def test_send_and_receive_file_descriptor(pair):
    left, right = pair
    pipe_read, pipe_write = os.pipe()
    try:
        fds = array.array("i", [pipe_write])
        send_oob(left, [(socket.SOL_SOCKET, socket.SCM_RIGHTS, fds.tobytes())])
        ancdata = recv_oob(right, socket.CMSG_SPACE(fds.itemsize))
        assert len(ancdata) == 1
        level, kind, data = ancdata[0]
        assert (level, kind) == (socket.SOL_SOCKET, socket.SCM_RIGHTS)
        received = array.array("i")
        received.frombytes(data[: fds.itemsize])
        passed_fd = received[0]
        try:
            os.write(passed_fd, b"via passed fd")
        finally:
            os.close(passed_fd)
        assert os.read(pipe_read, 64) == b"via passed fd"
    finally:
        os.close(pipe_read)
        os.close(pipe_write)


def test_oob_dummy_byte_does_not_leak_into_stream(pair):
    left, right = pair
    pipe_read, pipe_write = os.pipe()
    try:
        fds = array.array("i", [pipe_read])
        send_oob(left, [(socket.SOL_SOCKET, socket.SCM_RIGHTS, fds.tobytes())])
        write_full(left.fileno(), b"after")
        ancdata = recv_oob(right, socket.CMSG_SPACE(fds.itemsize))
        received = array.array("i")
        received.frombytes(ancdata[0][2][: fds.itemsize])
        os.close(received[0])
        assert read_full(right.fileno(), 5) == b"after"
    finally:
        os.close(pipe_read)
        os.close(pipe_write)