"""Linked buffers that stream bytes through a chain of buffer slices."""

import threading
from abc import ABC, abstractmethod
from typing import Protocol

from .bufferslice import BufferSlice, SliceList
from .config import DEFAULT_SINGLE_BUFFER_SIZE
from .errors import NotEnoughDataError

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class BufferWriter(ABC):
    """Writes data into a stream's buffer.

    Not safe for concurrent use without external synchronisation.
    """

    @abstractmethod
    def __len__(self):
        """Number of bytes written and not yet read."""

    @abstractmethod
    def write_byte(self, b):
        """Append a single byte."""

    @abstractmethod
    def reserve(self, size):
        """Return a writable view of size bytes for zero-copy writes."""

    @abstractmethod
    def write_bytes(self, data):
        """Copy data into the buffer and return the number of bytes written."""

    @abstractmethod
    def write_string(self, text):
        """Copy a string into the buffer."""


class BufferReader(ABC):
    """Reads data from a stream's buffer.

    Views returned by read_bytes and peek stay meaningful only until
    release_previous_read is called.
    """

    @abstractmethod
    def __len__(self):
        """Number of unread bytes."""

    @abstractmethod
    def read_byte(self):
        """Consume and return one byte as an int."""

    @abstractmethod
    def read_bytes(self, size):
        """Consume and return size bytes, waiting for more data if needed."""

    @abstractmethod
    def peek(self, size):
        """Return size bytes without consuming them."""

    @abstractmethod
    def discard(self, size):
        """Drop size bytes and return how many were dropped."""

    @abstractmethod
    def release_previous_read(self):
        """Release everything returned by earlier read_bytes and peek calls."""

    @abstractmethod
    def read_string(self, size):
        """Consume size bytes and return them as a string."""


class StreamLink(Protocol):
    """What a linked buffer needs from the stream that owns it."""

    def flush(self, end_stream):
        """Send the buffered data to the peer."""

    def read_more(self, size):
        """Make at least size unread bytes available, or raise."""

    def count_alloc_fallback(self):
        """Record that a buffer had to be allocated outside shared memory."""


class LinkedBuffer(BufferWriter, BufferReader):
    """A chain of buffer slices used as both a write and a read buffer."""

    def __init__(self, stream=None):
        self._lock = threading.RLock()
        self._slices = SliceList()
        # slices dropped while their data may still be referenced by callers
        self._pinned = SliceList()
        self._stream = stream
        self._current_pinned = False
        self.end_stream = False
        self._is_from_shm = True
        self._len = 0

    def __len__(self):
        return self._len

    def bind_stream(self, stream):
        with self._lock:
            self._stream = stream

    # ---- writing -------------------------------------------------------

    def _ensure_write_slice(self, size):
        if self._slices.write_slice is None:
            if len(self._slices) == 0:
                self._alloc(size)
            self._slices.write_slice = self._slices.back()
        return self._slices.write_slice

    def write_byte(self, b):
        with self._lock:
            current = self._ensure_write_slice(1)
            if current.append(b) != 1:
                if current.next_slice is None:
                    self._alloc(1)
                current = current.next_slice
                self._slices.write_slice = current
                current.append(b)
            self._len += 1

    def write_bytes(self, data):
        with self._lock:
            view = memoryview(data)
            total = len(view)
            if total == 0:
                return 0
            current = self._ensure_write_slice(total)
            written = 0
            while True:
                written += current.append(view[written:])
                if written >= total:
                    break
                if current.next_slice is None:
                    self._alloc(total - written)
                current = current.next_slice
                self._slices.write_slice = current
            self._len += written
            return written

    def write_string(self, text):
        self.write_bytes(text.encode(_ENCODING, _ERRORS))

    def reserve(self, size):
        """Claim size writable bytes in the current, next or a new slice."""
        with self._lock:
            current = self._ensure_write_slice(size)
            if current.remain() >= size:
                view = current.reserve(size)
                self._len += size
                return view
            following = current.next_slice
            if following is not None and following.remain() >= size:
                view = following.reserve(size)
                self._slices.write_slice = following
                self._len += size
                return view
            self._alloc(size)
            self._slices.write_slice = self._slices.back()
            view = self._slices.write_slice.reserve(size)
            self._len += size
            return view

    def copy_write_and_flush(self, data):
        """Write data and flush it through the bound stream."""
        if len(data) == 0:
            return 0
        written = self.write_bytes(data)
        self._stream.flush(False)
        return written

    # ---- reading -------------------------------------------------------

    def _need(self, size):
        if self._len >= size:
            return
        if self._stream is None:
            raise NotEnoughDataError()
        self._stream.read_more(size)
        if self._len < size:
            raise NotEnoughDataError()

    def _read_next_slice(self):
        node = self._slices.pop_front()
        if node is not None:
            if node is self._slices.write_slice:
                self._slices.write_slice = None
            node.next_slice = None
            if self._current_pinned:
                self._pinned.push_back(node)
        self._current_pinned = False

    def readinto(self, target):
        """Read up to len(target) bytes into target; return the count."""
        with self._lock:
            out = memoryview(target)
            size = len(out)
            if size <= 0:
                return 0
            self._need(1)
            written = 0
            front = self._slices.front()
            while front is not None and written < size:
                wanted = size - written
                chunk = front.read(wanted)
                out[written:written + len(chunk)] = chunk
                written += len(chunk)
                if len(chunk) == wanted:
                    break
                self._read_next_slice()
                front = self._slices.front()
            self._len -= written
            return written

    def read_byte(self):
        with self._lock:
            self._need(1)
            while True:
                chunk = self._slices.front().read(1)
                if len(chunk) == 1:
                    self._len -= 1
                    return chunk[0]
                self._read_next_slice()

    def read_bytes(self, size):
        """Consume size bytes; a view into the buffer when they are contiguous."""
        with self._lock:
            if size <= 0:
                return b""
            self._need(size)
            if self._slices.front().size() == 0:
                self._read_next_slice()
            front = self._slices.front()
            if front.size() >= size:
                self._current_pinned = True
                self._len -= size
                return front.read(size)
            self._len -= size
            result = bytearray()
            remaining = size
            while remaining > 0:
                front = self._slices.front()
                if front is None:
                    break
                chunk = front.read(remaining)
                result += chunk
                if len(chunk) != remaining:
                    self._read_next_slice()
                remaining -= len(chunk)
            return bytes(result)

    def read_string(self, size):
        with self._lock:
            if size <= 0:
                return ""
            self._need(size)
            front = self._slices.front()
            if front.size() >= size:
                data = bytes(front.read(size))
                self._len -= size
                return data.decode(_ENCODING, _ERRORS)
            result = bytearray()
            while len(result) < size:
                if self._slices.front().size() == 0:
                    self._read_next_slice()
                front = self._slices.front()
                if front is None:
                    break
                result += front.read(size - len(result))
            self._len -= size
            return bytes(result).decode(_ENCODING, _ERRORS)

    def peek(self, size):
        """Return size bytes without changing len()."""
        with self._lock:
            if size <= 0:
                return b""
            self._need(size)
            front = self._slices.front()
            head = front.peek(size)
            if len(head) == size:
                self._current_pinned = True
                return head
            result = bytearray(head)
            remaining = size - len(head)
            node = front.next_slice
            while remaining > 0 and node is not None:
                chunk = node.peek(remaining)
                result += chunk
                remaining -= len(chunk)
                node = node.next_slice
            return bytes(result)

    def discard(self, size):
        with self._lock:
            if size <= 0:
                return 0
            self._need(size)
            dropped = 0
            while True:
                front = self._slices.front()
                if front is None:
                    break
                skipped = front.skip(size)
                dropped += skipped
                size -= skipped
                if size == 0:
                    break
                self._read_next_slice()
            self._len -= dropped
            return dropped

    # ---- releasing -----------------------------------------------------

    def _clean_pinned(self):
        if len(self._pinned) == 0:
            return
        self._current_pinned = False
        while len(self._pinned) > 0:
            self._pinned.pop_front()

    def release_previous_read(self):
        with self._lock:
            self._clean_pinned()
            if len(self._slices) == 0:
                return
            front = self._slices.front()
            if front.size() == 0 and front is self._slices.write_slice:
                self._slices.pop_front()
                self._slices.write_slice = None

    def release_previous_read_and_reserve(self):
        """Release reads and keep a single drained slice for the next write."""
        with self._lock:
            self._clean_pinned()
            if self._len == 0 and len(self._slices) == 1:
                front = self._slices.front()
                if front.is_from_shm:
                    front.reset()
                else:
                    self._slices.pop_front()
                    if front is self._slices.write_slice:
                        self._slices.write_slice = None

    # ---- slice management ----------------------------------------------

    def _alloc(self, size):
        size = max(size, DEFAULT_SINGLE_BUFFER_SIZE)
        self._slices.push_back(BufferSlice(None, bytearray(size), 0, False))
        self._is_from_shm = False
        if self._stream is not None:
            self._stream.count_alloc_fallback()

    def append_buffer_slice(self, slice_):
        """Append a filled slice; its unread bytes become readable."""
        with self._lock:
            if slice_ is None:
                return
            self._slices.push_back(slice_)
            if not slice_.is_from_shm:
                self._is_from_shm = False
            self._len += slice_.size()
            self._slices.write_slice = slice_

    def underlying_data(self):
        """Views of the unread bytes of every slice up to the write slice."""
        with self._lock:
            views = []
            for node in self._slices:
                views.append(node._view[node.read_index:node.write_index])
                if node is self._slices.write_slice:
                    break
            return views

    def root_buf_offset(self):
        with self._lock:
            return self._slices.front().offset_in_shm

    def done(self, end_stream):
        """Finish writing: sync shared-memory headers and drop unused slices."""
        with self._lock:
            self.end_stream = end_stream
            if self._is_from_shm:
                write_slice = self._slices.write_slice
                for node in self._slices:
                    node.update()
                    if node is write_slice:
                        break
                if write_slice is not None and write_slice.next_slice is not None:
                    self._slices.split_from_write()
            return self

    def is_from_share_memory(self):
        with self._lock:
            return self._is_from_shm

    def recycle(self):
        """Drop every slice and return the buffer to its empty state."""
        with self._lock:
            self.clean()

    def clean(self):
        with self._lock:
            while len(self._slices) > 0:
                self._slices.pop_front()
            self._slices.write_slice = None
            self._is_from_shm = True
            self.end_stream = False
            self._current_pinned = False
            self._len = 0