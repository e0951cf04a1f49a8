"""Sample request and response messages with wire and buffer encodings.

Each message is an 8-byte big-endian id, a 4-byte length and the name in
UTF-8, then a 4-byte length and the payload bytes.
"""

import struct
from dataclasses import dataclass

_ID = struct.Struct(">Q")
_LEN = struct.Struct(">I")


def _encode(ident, name, blob):
    name_bytes = name.encode("utf-8")
    return b"".join(
        (
            _ID.pack(ident),
            _LEN.pack(len(name_bytes)),
            name_bytes,
            _LEN.pack(len(blob)),
            bytes(blob),
        )
    )


def _decode(data):
    view = memoryview(data)
    offset = 0

    def take(count):
        nonlocal offset
        if offset + count > len(view):
            raise ValueError(
                f"truncated message: need {offset + count} bytes, have {len(view)}"
            )
        chunk = view[offset:offset + count]
        offset += count
        return chunk

    ident = _ID.unpack(take(_ID.size))[0]
    name = bytes(take(_LEN.unpack(take(_LEN.size))[0])).decode("utf-8")
    blob = bytes(take(_LEN.unpack(take(_LEN.size))[0]))
    return ident, name, blob


def _read(reader):
    ident = _ID.unpack(bytes(reader.read_bytes(_ID.size)))[0]
    name_len = _LEN.unpack(bytes(reader.read_bytes(_LEN.size)))[0]
    name = bytes(reader.read_bytes(name_len)).decode("utf-8")
    blob_len = _LEN.unpack(bytes(reader.read_bytes(_LEN.size)))[0]
    blob = bytes(reader.read_bytes(blob_len))
    reader.release_previous_read()
    return ident, name, blob


def _write(writer, ident, name, blob):
    writer.reserve(_ID.size)[:] = _ID.pack(ident)
    name_bytes = name.encode("utf-8")
    writer.reserve(_LEN.size)[:] = _LEN.pack(len(name_bytes))
    writer.write_bytes(name_bytes)
    writer.reserve(_LEN.size)[:] = _LEN.pack(len(blob))
    writer.write_bytes(blob)


@dataclass
class Request:
    id: int = 0
    name: str = ""
    key: bytes = b""

    def read_from_shm(self, reader):
        """Fill this request from a buffer reader and release the read data."""
        self.id, self.name, self.key = _read(reader)

    def write_to_shm(self, writer):
        """Write this request into a buffer writer."""
        _write(writer, self.id, self.name, self.key)

    def serialize(self):
        return _encode(self.id, self.name, self.key)

    @classmethod
    def deserialize(cls, data):
        ident, name, key = _decode(data)
        return cls(ident, name, key)

    def reset(self):
        self.id = 0
        self.name = ""
        self.key = b""


@dataclass
class Response:
    id: int = 0
    name: str = ""
    image: bytes = b""

    def read_from_shm(self, reader):
        """Fill this response from a buffer reader and release the read data."""
        self.id, self.name, self.image = _read(reader)

    def write_to_shm(self, writer):
        """Write this response into a buffer writer."""
        _write(writer, self.id, self.name, self.image)

    def serialize(self):
        return _encode(self.id, self.name, self.image)

    @classmethod
    def deserialize(cls, data):
        ident, name, image = _decode(data)
        return cls(ident, name, image)

    def reset(self):
        self.id = 0
        self.name = ""
        self.image = b""


def must_write(conn, data):
    """Send all of data on a socket, raising on any failure."""
    view = memoryview(data)
    written = 0
    while written < len(view):
        written += conn.send(view[written:])