"""Event loop that drives non-blocking socket connections through a selector."""

import selectors
import socket
import threading
from abc import ABC, abstractmethod

from .log import internal_logger

_READ = selectors.EVENT_READ
_WRITE = selectors.EVENT_WRITE

_INITIAL_READ_BUFFER = 64 * 1024
# hand data to the callback early once this much is buffered
_ON_DATA_THRESHOLD = 1 * 1024 * 1024
# above this size a drained read buffer is shrunk by half
_MIN_RESIZED_BUFFER_SIZE = 4 * 1024 * 1024
_MAX_IOVECS = 256
_IDLE_TIMEOUT = 1.0
_WRITE_WAIT_TIMEOUT = 1.0


class EventConnCallback(ABC):
    """Receives the events of a connection driven by a dispatcher."""

    @abstractmethod
    def on_event_data(self, buf, conn):
        """Handle the unread bytes in buf; call conn.commit_read for what was used."""

    @abstractmethod
    def on_remote_close(self):
        """The peer closed the connection."""

    @abstractmethod
    def on_local_close(self):
        """The connection was closed on this side."""


class Connection:
    """A socket registered with a dispatcher.

    Reads are delivered to the callback from the dispatcher's thread; writes
    block the caller until every byte is sent.
    """

    def __init__(self, dispatcher, sock):
        self._dispatcher = dispatcher
        self._sock = sock
        self.fd = sock.fileno()
        self._callback = None
        self._read_buffer = bytearray(_INITIAL_READ_BUFFER)
        self._read_start = 0
        self._read_end = 0
        self._write_ready = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False
        self._registered = False

    @property
    def closed(self):
        return self._closed

    def set_callback(self, callback):
        """Make the socket non-blocking and start delivering its events to callback."""
        try:
            self._sock.setblocking(False)
        except OSError as exc:
            raise OSError(
                exc.errno, f"fd:{self.fd} couldn't set nonblocking, reason={exc}"
            ) from exc
        self._dispatcher._register(self, callback)

    # ---- writing -------------------------------------------------------

    def _wait_writable(self):
        self._write_ready.clear()
        self._dispatcher._want_write(self)
        self._write_ready.wait(_WRITE_WAIT_TIMEOUT)

    def write(self, data):
        """Send all of data, waiting for the socket to drain when it is full."""
        view = memoryview(data)
        written = 0
        while written < len(view):
            if self._closed:
                raise BrokenPipeError("connection is closed")
            try:
                written += self._sock.send(view[written:])
            except BlockingIOError:
                self._wait_writable()
            except InterruptedError:
                continue

    def writev(self, *args):
        """Send several buffers in order with vectored writes."""
        pending = [memoryview(chunk) for chunk in args if len(chunk)]
        head = 0
        while head < len(pending):
            if self._closed:
                raise BrokenPipeError("connection is closed")
            try:
                sent = self._sock.sendmsg(pending[head:head + _MAX_IOVECS])
            except BlockingIOError:
                self._wait_writable()
                continue
            except InterruptedError:
                continue
            while sent > 0:
                first = pending[head]
                if sent >= len(first):
                    sent -= len(first)
                    head += 1
                else:
                    pending[head] = first[sent:]
                    sent = 0

    # ---- reading -------------------------------------------------------

    def _maybe_expand_read_buffer(self):
        if len(self._read_buffer) - self._read_end == 0:
            unread = self._read_buffer[self._read_start:self._read_end]
            grown = bytearray(2 * len(self._read_buffer))
            grown[:len(unread)] = unread
            self._read_buffer = grown
            self._read_start = 0
            self._read_end = len(unread)

    def _unread(self):
        return memoryview(self._read_buffer)[self._read_start:self._read_end]

    def _on_read_ready(self):
        while True:
            self._maybe_expand_read_buffer()
            target = memoryview(self._read_buffer)[self._read_end:]
            try:
                n = self._sock.recv_into(target)
            except BlockingIOError:
                break
            except InterruptedError:
                continue
            except OSError:
                return
            finally:
                target.release()
            if n == 0:
                self._on_remote_close()
                break
            self._read_end += n
            if self._read_end - self._read_start >= _ON_DATA_THRESHOLD:
                self._callback.on_event_data(self._unread(), self)
        self._callback.on_event_data(self._unread(), self)

    def commit_read(self, n):
        """Mark n buffered bytes as consumed by the callback."""
        self._read_start += n
        if self._read_start == self._read_end:
            if len(self._read_buffer) > _MIN_RESIZED_BUFFER_SIZE:
                # shrink gradually, the buffer may grow again soon
                self._read_buffer = bytearray(len(self._read_buffer) // 2)
            self._read_start = 0
            self._read_end = 0

    # ---- events and closing --------------------------------------------

    def _handle_event(self, mask):
        if self._closed:
            return
        if mask & _READ:
            try:
                self._on_read_ready()
            except Exception as exc:  # a callback failure must not stop the loop
                internal_logger.warn("read failed fd:%d reason:%s", self.fd, exc)
        if mask & _WRITE:
            self._on_write_ready()

    def _on_write_ready(self):
        if self._closed:
            return
        self._write_ready.set()
        self._dispatcher._stop_write_interest(self)

    def _on_remote_close(self):
        if self._callback is not None:
            self._callback.on_remote_close()
        self._deferred_close()

    def close(self):
        """Close the connection from this side."""
        if self._callback is not None:
            self._callback.on_local_close()
        self._deferred_close()

    def _deferred_close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._write_ready.set()
        self._dispatcher.post(lambda: self._dispatcher._forget(self))


class Dispatcher:
    """Runs a selector loop on a background thread for many connections."""

    def __init__(self):
        self._selector = None
        self._conns = {}
        self._lock = threading.RLock()
        self._lambda_lock = threading.Lock()
        self._pending = []
        self._thread = None
        self._is_shutdown = False
        self._wake_r = None
        self._wake_w = None

    @property
    def running(self):
        return self._thread is not None and not self._is_shutdown

    def run_loop(self):
        """Create the selector and start the event loop thread."""
        if self._thread is not None:
            raise RuntimeError("dispatcher loop is already running")
        self._selector = selectors.DefaultSelector()
        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._wake_w.setblocking(False)
        self._selector.register(self._wake_r, _READ, None)
        self._thread = threading.Thread(
            target=self._loop, name="shmipc-dispatcher", daemon=True
        )
        self._thread.start()

    def new_connection(self, sock):
        """Wrap a socket so that it can be driven by this dispatcher."""
        return Connection(self, sock)

    def post(self, fn):
        """Run fn on the loop thread at the next opportunity."""
        with self._lambda_lock:
            self._pending.append(fn)
        self._wake()

    def shutdown(self):
        """Stop the loop and close every connection still registered."""
        self._is_shutdown = True
        self._wake()
        if self._thread is not None:
            self._thread.join()
        with self._lock:
            for conn in list(self._conns.values()):
                conn._closed = True
                conn._write_ready.set()
                try:
                    conn._sock.close()
                except OSError as exc:
                    internal_logger.error("socket close error: %s", exc)
            self._conns.clear()
            if self._selector is not None:
                self._selector.close()
        for sock in (self._wake_r, self._wake_w):
            if sock is not None:
                sock.close()

    # ---- internals -----------------------------------------------------

    def _wake(self):
        if self._wake_w is None:
            return
        try:
            self._wake_w.send(b"\0")
        except (BlockingIOError, OSError):
            pass

    def _drain_wakeup(self):
        try:
            while self._wake_r.recv(4096):
                pass
        except (BlockingIOError, OSError):
            pass

    def _register(self, conn, callback):
        if not self.running:
            raise RuntimeError("dispatcher is not running")
        with self._lock:
            conn._callback = callback
            try:
                self._selector.register(conn._sock, _READ, conn)
            except (OSError, ValueError, KeyError) as exc:
                raise OSError(f"register fd:{conn.fd} failed, reason={exc}") from exc
            conn._registered = True
            self._conns[conn.fd] = conn

    def _set_interest(self, conn, events):
        with self._lock:
            if not conn._registered or conn._closed:
                return
            try:
                self._selector.modify(conn._sock, events, conn)
            except (OSError, ValueError, KeyError) as exc:
                internal_logger.warn("modify fd:%d failed: %s", conn.fd, exc)

    def _want_write(self, conn):
        self._set_interest(conn, _READ | _WRITE)

    def _stop_write_interest(self, conn):
        self._set_interest(conn, _READ)

    def _forget(self, conn):
        with self._lock:
            if conn._registered:
                conn._registered = False
                try:
                    self._selector.unregister(conn._sock)
                except (OSError, ValueError, KeyError) as exc:
                    internal_logger.error("unregister fd:%d error: %s", conn.fd, exc)
            if self._conns.get(conn.fd) is conn:
                del self._conns[conn.fd]
        try:
            conn._sock.close()
        except OSError as exc:
            internal_logger.error("conn close error: %s", exc)

    def _run_lambda(self):
        with self._lambda_lock:
            running, self._pending = self._pending, []
        for fn in running:
            if self._is_shutdown:
                return
            fn()

    def _loop(self):
        timeout = 0
        while not self._is_shutdown:
            try:
                events = self._selector.select(timeout)
            except (OSError, ValueError) as exc:
                if not self._is_shutdown:
                    internal_logger.error("epoll wait error %s", exc)
                return
            if not events:
                timeout = _IDLE_TIMEOUT
                self._run_lambda()
                continue
            timeout = 0
            with self._lock:
                for key, mask in events:
                    if key.data is None:
                        self._drain_wakeup()
                    else:
                        key.data._handle_event(mask)
            self._run_lambda()


def get_conn_dup_fd(conn):
    """Return a duplicate of the socket behind conn."""
    dup = getattr(conn, "dup", None)
    if dup is None:
        raise TypeError("conn has no method dup() returning a socket")
    return dup()


_default = None
_default_lock = threading.Lock()


def default_dispatcher():
    """Return the process-wide dispatcher, starting its loop on first use."""
    global _default
    with _default_lock:
        if _default is None:
            dispatcher = Dispatcher()
            dispatcher.run_loop()
            _default = dispatcher
        return _default