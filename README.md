# plugshm

Building blocks for plugin-to-host IPC with shared-memory style buffers.

## Modules

- `plugshm.bufferslice`: `BufferSlice`, `BufferHeader` and `SliceList`.
  A `BufferSlice` is a fixed-capacity window over a `bytearray` (or other
  writable buffer) with `append`, `reserve`, `read`, `peek` and `skip`;
  reads and reservations return `memoryview`s, so nothing is copied.
  `BufferHeader` is a view over the 20-byte header (capacity, size, start
  offset, next-slice offset, flags) that `BufferSlice.update` and
  `BufferSlice.reset` keep in sync. `SliceList` is a singly linked list of
  slices with a write cursor and `split_from_write`.
  `count_buffer_list_mem_size` gives the bytes needed for a list of buffers.
- `plugshm.buffer`: `LinkedBuffer`, a chain of slices that is both a
  `BufferWriter` (`write_byte`, `write_bytes`, `write_string`, `reserve`)
  and a `BufferReader` (`read_byte`, `read_bytes`, `read_string`,
  `readinto`, `peek`, `discard`, `release_previous_read`). When more data
  is needed than is buffered, it asks the bound stream (anything with the
  `StreamLink` methods `flush`, `read_more` and `count_alloc_fallback`);
  with no stream bound it raises `NotEnoughDataError`.
- `plugshm.config`: the protocol constants, `MemMapType`, `SessionState`,
  `SizePercentPair`, the `Config` dataclass, `default_config()` and
  `verify_config()`, which raises `ValueError` for unusable settings and
  `OSNonSupportedError` / `ArchNonSupportedError` off Linux on
  x86-64/ARM64.
- `plugshm.block_io`: `read_full` and `write_full` on file descriptors,
  and `send_oob` / `recv_oob` for ancillary data (for example passed file
  descriptors) over Unix sockets.
- `plugshm.event_dispatcher`: `Dispatcher`, which runs a `selectors` loop
  on a background thread, and `Connection`, which hands incoming data to an
  `EventConnCallback` and offers blocking `write` / `writev` on
  non-blocking sockets. `default_dispatcher()` returns a process-wide,
  already running dispatcher; `get_conn_dup_fd()` duplicates a socket.
- `plugshm.idl`: `Request` and `Response` messages (big-endian id,
  length-prefixed name and payload), with `serialize` / `deserialize` and
  `read_from_shm` / `write_to_shm` for buffer readers and writers, plus
  `must_write` to send a whole message on a socket.
- `plugshm.log`: a levelled, coloured `Logger`; set the level with
  `set_log_level()` or the `SHMIPC_LOG_LEVEL` environment variable.
- `plugshm.errors`: one exception class per failure, all derived from
  `ShmipcError`.

## Installation

```
pip install .
```

## Example

```python
from plugshm.buffer import LinkedBuffer
from plugshm.idl import Request

buf = LinkedBuffer(None)
Request(id=7, name="xxx", key=b"\x01\x02").write_to_shm(buf)

req = Request()
req.read_from_shm(buf)
assert req.id == 7 and req.name == "xxx" and req.key == b"\x01\x02"
```

Validating a configuration:

```python
from plugshm.config import default_config, verify_config

config = default_config()
config.share_memory_buffer_cap = 1
verify_config(config)  # raises ValueError: share memory size is too small
```

## What this package does not do

There are no sessions, streams, listeners or session managers here, and no
hot restart. Nothing maps shared memory: `LinkedBuffer` allocates its
slices as ordinary `bytearray`s, and `BufferHeader` only interprets bytes
you hand it. There is no command-line program. The out-of-band socket
helpers and the dispatcher need a Unix system, and `verify_config` accepts
only Linux.

## Running the tests

```
pip install .[test]
pytest
```