"""IPC building blocks: buffer slices, linked buffers, configuration, socket I/O, dispatch and sample messages."""

__version__ = "0.1.0"

__all__ = [
    "block_io",
    "buffer",
    "bufferslice",
    "config",
    "errors",
    "event_dispatcher",
    "idl",
    "log",
]