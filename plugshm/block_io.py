"""Blocking helpers for whole reads and writes and for ancillary data."""

import os
import socket

_DUMMY = b"\x00"


def read_full(fd, size):
    """Read exactly size bytes from fd.

    Raises EOFError if the peer closes before all bytes arrive and OSError
    if a read fails.
    """
    chunks = []
    read_size = 0
    while read_size < size:
        try:
            chunk = os.read(fd, size - read_size)
        except OSError as exc:
            raise OSError(
                exc.errno,
                f"ReadFull failed, had readSize:{read_size} reason:{exc.strerror or exc}",
            ) from exc
        if not chunk:
            raise EOFError(f"end of file after {read_size} of {size} bytes")
        chunks.append(chunk)
        read_size += len(chunk)
    return b"".join(chunks)


def write_full(fd, data):
    """Write all of data to fd, retrying on short writes."""
    view = memoryview(data)
    written = 0
    while written < len(view):
        written += os.write(fd, view[written:])


def _needs_dummy_byte(sock):
    return sock.type != socket.SOCK_DGRAM


def send_oob(sock, oob):
    """Send ancillary data, a list of (level, type, data) tuples, with no payload.

    Stream sockets cannot carry ancillary data alone, so one dummy byte is
    sent with it there.
    """
    oob = list(oob)
    payload = [_DUMMY] if oob and _needs_dummy_byte(sock) else []
    sock.sendmsg(payload, oob)


def recv_oob(sock, oob_size):
    """Receive ancillary data of up to oob_size bytes; return its (level, type, data) list."""
    payload_size = 1 if oob_size > 0 and _needs_dummy_byte(sock) else 0
    _, ancdata, _, _ = sock.recvmsg(payload_size, oob_size)
    return ancdata