"""Protocol constants and the session configuration with its sanity checks."""

import platform
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Optional, TextIO

from .bufferslice import BUFFER_HEADER_SIZE
from .errors import ArchNonSupportedError, OSNonSupportedError

PROTO_VERSION = 2
MAX_SUPPORT_PROTO_VERSION = 3
MAGIC_NUMBER = 0x7758

MEMFD_CREATE_NAME = "shmipc"
MEMFD_DATA_LEN = 4
MEMFD_COUNT = 2

BUFFER_PATH_SUFFIX = "_buffer"
UNIX_NETWORK = "unix"

HOT_RESTART_CHECK_TIMEOUT = 2.0
HOT_RESTART_CHECK_INTERVAL = 0.1
SESSION_REBUILD_INTERVAL = 60.0

EPOCH_ID_LEN = 8
FILE_NAME_MAX_LEN = 255
# "_epoch_" + max uint64 digits + "_" + max uint64 digits
EPOCH_INFO_MAX_LEN = 7 + 20 + 1 + 20
# "_queue_" + session id digits
QUEUE_INFO_MAX_LEN = 7 + 20

DEFAULT_QUEUE_CAP = 8192
DEFAULT_SHARE_MEMORY_CAP = 32 * 1024 * 1024
DEFAULT_SINGLE_BUFFER_SIZE = 4096
QUEUE_ELEMENT_LEN = 12
QUEUE_COUNT = 2

SIZE_OF_LENGTH = 4
SIZE_OF_MAGIC = 2
SIZE_OF_VERSION = 1
SIZE_OF_TYPE = 1
HEADER_SIZE = SIZE_OF_LENGTH + SIZE_OF_MAGIC + SIZE_OF_VERSION + SIZE_OF_TYPE

MIN_SHARE_MEMORY_CAP = 1 << 20

_ARM_MACHINES = frozenset({"aarch64", "arm64"})
_SUPPORTED_MACHINES = frozenset({"x86_64", "amd64"}) | _ARM_MACHINES


class MemMapType(IntEnum):
    """How shared memory is mapped."""

    DEV_SHM_FILE = 0  # a file under /dev/shm (tmpfs)
    MEM_FD = 1  # an anonymous memfd


class SessionState(IntEnum):
    DEFAULT = 0
    # server: sent hot restart event; client: received it
    HOT_RESTART = 1
    # server: received hot restart ack; client: sent it
    HOT_RESTART_DONE = 2


@dataclass
class SizePercentPair:
    """Share of the buffer memory given to slices of a given size."""

    size: int
    percent: int


def _default_slice_sizes():
    return [
        SizePercentPair(8192 - BUFFER_HEADER_SIZE, 50),
        SizePercentPair(32 * 1024 - BUFFER_HEADER_SIZE, 30),
        SizePercentPair(128 * 1024 - BUFFER_HEADER_SIZE, 20),
    ]


@dataclass
class Config:
    """Tuning knobs of a session; timeouts and intervals are in seconds."""

    connection_write_timeout: float = 10.0
    initialize_timeout: float = 1.0
    queue_cap: int = DEFAULT_QUEUE_CAP
    queue_path: str = "/dev/shm/shmipc_queue"
    share_memory_buffer_cap: int = DEFAULT_SHARE_MEMORY_CAP
    share_memory_path_prefix: str = "/dev/shm/shmipc"
    log_output: Optional[TextIO] = field(default_factory=lambda: sys.stdout)
    buffer_slice_sizes: List[SizePercentPair] = field(
        default_factory=_default_slice_sizes
    )
    listen_callback: Any = None
    mem_map_type: MemMapType = MemMapType.DEV_SHM_FILE
    monitor: Any = None
    rebuild_interval: float = SESSION_REBUILD_INTERVAL


def default_config():
    """Return a new configuration holding the default values."""
    return Config()


def is_arm_arch():
    """True when running on a 64-bit ARM machine."""
    return platform.machine().lower() in _ARM_MACHINES


def verify_config(config):
    """Raise if the configuration cannot work; return None otherwise."""
    if config.share_memory_buffer_cap < MIN_SHARE_MEMORY_CAP:
        raise ValueError(
            f"share memory size is too small:{config.share_memory_buffer_cap}, "
            f"must greater than {MIN_SHARE_MEMORY_CAP}"
        )
    if not config.buffer_slice_sizes:
        raise ValueError("BufferSliceSizes could not be nil")

    arm = is_arm_arch()
    total = 0
    for pair in config.buffer_slice_sizes:
        total += pair.percent
        if pair.size > config.share_memory_buffer_cap:
            raise ValueError(
                f"BufferSliceSizes's Size:{pair.size} couldn't greater than "
                f"ShareMemoryBufferCap:{config.share_memory_buffer_cap}"
            )
        if arm and pair.size % 4 != 0:
            raise ValueError("the SizePercentPair.Size must be a multiple of 4")
    if total != 100:
        raise ValueError("the sum of BufferSliceSizes's Percent should be 100")

    if arm and config.queue_cap % 8 != 0:
        raise ValueError("the QueueCap must be a multiple of 8")

    if not config.share_memory_path_prefix or not config.queue_path:
        raise ValueError("buffer path or queue path could not be nil")

    if not sys.platform.startswith("linux"):
        raise OSNonSupportedError()

    if platform.machine().lower() not in _SUPPORTED_MACHINES:
        raise ArchNonSupportedError()