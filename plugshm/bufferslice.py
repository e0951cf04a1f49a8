"""Buffer slices, their shared-memory headers and a singly linked slice list."""

import struct

from .errors import NoMoreBufferError
from .log import internal_logger

# header layout: cap 4 | size 4 | start 4 | next 4 | flag 4
BUFFER_HEADER_SIZE = 4 + 4 + 4 + 4 + 4
BUFFER_CAP_OFFSET = 0
BUFFER_SIZE_OFFSET = BUFFER_CAP_OFFSET + 4
BUFFER_DATA_START_OFFSET = BUFFER_SIZE_OFFSET + 4
NEXT_BUFFER_OFFSET = BUFFER_DATA_START_OFFSET + 4
BUFFER_FLAG_OFFSET = NEXT_BUFFER_OFFSET + 4
BUFFER_LIST_HEADER_SIZE = 36
BUFFER_MANAGER_HEADER_SIZE = 8
BM_CAP_OFFSET = 4

HAS_NEXT_BUFFER_FLAG = 1 << 0
SLICE_IN_USED_FLAG = 1 << 1

_U32 = struct.Struct("<I")


def count_buffer_list_mem_size(buffer_num, cap_per_buffer):
    """Bytes needed for a free list of buffer_num buffers of cap_per_buffer bytes."""
    return BUFFER_LIST_HEADER_SIZE + buffer_num * (cap_per_buffer + BUFFER_HEADER_SIZE)


class BufferHeader:
    """View over the 20-byte header that precedes a buffer in shared memory."""

    def __init__(self, raw):
        view = memoryview(raw)
        if view.readonly:
            raise ValueError("buffer header must be writable")
        if len(view) < BUFFER_HEADER_SIZE:
            raise ValueError(
                f"buffer header needs {BUFFER_HEADER_SIZE} bytes, got {len(view)}"
            )
        self.raw = view

    def _get(self, offset):
        return _U32.unpack_from(self.raw, offset)[0]

    def _set(self, offset, value):
        _U32.pack_into(self.raw, offset, value & 0xFFFFFFFF)

    @property
    def capacity(self):
        return self._get(BUFFER_CAP_OFFSET)

    @capacity.setter
    def capacity(self, value):
        self._set(BUFFER_CAP_OFFSET, value)

    @property
    def data_size(self):
        return self._get(BUFFER_SIZE_OFFSET)

    @data_size.setter
    def data_size(self, value):
        self._set(BUFFER_SIZE_OFFSET, value)

    @property
    def data_start(self):
        return self._get(BUFFER_DATA_START_OFFSET)

    @data_start.setter
    def data_start(self, value):
        self._set(BUFFER_DATA_START_OFFSET, value)

    def next_buffer_offset(self):
        return self._get(NEXT_BUFFER_OFFSET)

    def has_next(self):
        return bool(self.raw[BUFFER_FLAG_OFFSET] & HAS_NEXT_BUFFER_FLAG)

    def clear_flag(self):
        self.raw[BUFFER_FLAG_OFFSET] = 0

    def set_in_used(self):
        self.raw[BUFFER_FLAG_OFFSET] |= SLICE_IN_USED_FLAG

    def is_in_used(self):
        return bool(self.raw[BUFFER_FLAG_OFFSET] & SLICE_IN_USED_FLAG)

    def link_next(self, next_offset):
        self._set(NEXT_BUFFER_OFFSET, next_offset)
        self.raw[BUFFER_FLAG_OFFSET] |= HAS_NEXT_BUFFER_FLAG


class BufferSlice:
    """A window of readable and writable bytes, optionally backed by shared memory.

    Reads and reservations return memoryviews over the underlying data, so no
    bytes are copied. A read shorter than requested means not enough data.
    """

    def __init__(self, header, data, offset_in_shm=0, is_from_shm=False):
        if header is not None and not isinstance(header, BufferHeader):
            header = BufferHeader(header)
        self.header = header
        self.data = data
        self._view = memoryview(data)
        self.offset_in_shm = offset_in_shm
        self.is_from_shm = is_from_shm
        self.next_slice = None
        self.recycled = False
        self.start = 0
        self.read_index = 0
        self.write_index = 0
        if is_from_shm and header is not None:
            self.cap = header.capacity
            self.start = header.data_start
            self.read_index = self.start
            self.write_index = self.start + header.data_size
        else:
            self.cap = len(self._view)

    def size(self):
        """Number of unread bytes."""
        return self.write_index - self.read_index

    def remain(self):
        """Number of bytes that can still be written."""
        return self.cap - self.write_index

    def capacity(self):
        return self.cap

    def reserve(self, size):
        """Claim size writable bytes; raise NoMoreBufferError if they do not fit."""
        if self.remain() < size:
            raise NoMoreBufferError()
        start = self.write_index
        self.write_index += size
        return self._view[start:self.write_index]

    def append(self, data):
        """Copy as much of data (bytes or a single int) as fits; return the count."""
        if isinstance(data, int):
            data = bytes((data,))
        if not data:
            return 0
        room = len(self._view) - self.write_index
        count = min(room, len(data))
        if count <= 0:
            return 0
        self._view[self.write_index:self.write_index + count] = memoryview(data)[:count]
        self.write_index += count
        return count

    def read(self, size):
        """Consume up to size bytes; the result is shorter when data runs out."""
        size = min(size, self.size())
        start = self.read_index
        self.read_index += size
        return self._view[start:self.read_index]

    def peek(self, size):
        """Like read but leaves the read position unchanged."""
        size = min(size, self.size())
        return self._view[self.read_index:self.read_index + size]

    def skip(self, size):
        """Drop up to size unread bytes; return how many were dropped."""
        count = min(size, self.size())
        self.read_index += count
        return count

    def update(self):
        """Write size, start and link to the next slice back into the header."""
        if self.header is None:
            return
        self.header.data_size = self.size()
        self.header.data_start = self.start
        if self.next_slice is not None:
            self.header.link_next(self.next_slice.offset_in_shm)

    def reset(self):
        """Empty the slice and its header so it can be written again."""
        if self.header is not None:
            self.header.data_size = 0
            self.header.data_start = 0
            self.header.clear_flag()
        self.write_index = 0
        self.read_index = 0
        self.next_slice = None


class SliceList:
    """Singly linked list of buffer slices with a write cursor; not thread-safe."""

    def __init__(self):
        self.front_slice = None
        self.back_slice = None
        self.write_slice = None
        self._len = 0

    def __len__(self):
        return self._len

    def __iter__(self):
        node = self.front_slice
        while node is not None:
            yield node
            node = node.next_slice

    def front(self):
        return self.front_slice

    def back(self):
        return self.back_slice

    def push_back(self, slice_):
        if slice_ is None:
            return
        if self._len > 0:
            self.back_slice.next_slice = slice_
        else:
            self.front_slice = slice_
        self.back_slice = slice_
        self._len += 1

    def pop_front(self):
        node = self.front_slice
        if node is None:
            return None
        self.front_slice = node.next_slice
        if self.front_slice is None:
            self.back_slice = None
        self._len -= 1
        internal_logger.debug("sliceList.popFront: offsetInShm=%d", node.offset_in_shm)
        return node

    def split_from_write(self):
        """Cut the list after the write slice and return the detached remainder."""
        rest = self.write_slice.next_slice
        self.back_slice = self.write_slice
        self.back_slice.next_slice = None
        node = rest
        while node is not None:
            self._len -= 1
            node = node.next_slice
        return rest