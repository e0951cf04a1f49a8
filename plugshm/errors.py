"""Exceptions raised by the shared-memory IPC layer."""


class ShmipcError(Exception):
    """Base class of every error raised by this package."""

    default_message = "shmipc error"

    def __init__(self, message=None):
        super().__init__(self.default_message if message is None else message)


class InvalidVersionError(ShmipcError):
    """A message arrived with an unsupported protocol version."""

    default_message = "invalid protocol version"


class InvalidMsgTypeError(ShmipcError):
    """A message arrived with an unknown message type."""

    default_message = "invalid msg type"


class SessionShutdownError(ShmipcError):
    """The session has been shut down."""

    default_message = "session shutdown"


class StreamsExhaustedError(ShmipcError):
    """Stream ids ran out; some streams may have leaked."""

    default_message = "streams exhausted"


class DeadlineReachedError(ShmipcError):
    """An I/O deadline was reached."""

    default_message = "i/o deadline reached"


class StreamClosedError(ShmipcError):
    """A closed stream was used."""

    default_message = "stream closed"


class ConnectionWriteTimeoutError(ShmipcError):
    """A write on the underlying connection timed out."""

    default_message = "connection write timeout"


class EndOfStreamError(ShmipcError):
    """The stream has ended and must not be read from."""

    default_message = "end of stream"


class SessionUnhealthyError(ShmipcError):
    """The session is overloaded; retry later."""

    default_message = "now the session is unhealthy, please retry later"


class NotEnoughDataError(ShmipcError):
    """Fewer bytes are available than were asked for."""

    default_message = "current buffer is not enough data to read"


class NoMoreBufferError(ShmipcError):
    """Shared memory is busy and no buffer can be allocated."""

    default_message = "share memory not more buffer"


class ShareMemoryHadNotLeftSpaceError(ShmipcError):
    """The file system backing shared memory is full."""

    default_message = "share memory had not left space"


class StreamCallbackHadExistedError(ShmipcError):
    """Callbacks were already set on the stream."""

    default_message = "stream callbacks had existed"


class OSNonSupportedError(ShmipcError):
    """The current operating system is not supported."""

    default_message = "shmipc just support linux OS now"


class ArchNonSupportedError(ShmipcError):
    """The current CPU architecture is not supported."""

    default_message = "shmipc just support amd64 or arm64 arch"


class HotRestartInProgressError(ShmipcError):
    """A hot restart is already running."""

    default_message = "hot restart in progress, try again later"


class InHandshakeStageError(ShmipcError):
    """A hot restart was asked for before the handshake finished."""

    default_message = "session in handshake stage, try again later"


class FileNameTooLongError(ShmipcError):
    """The shared memory path prefix exceeds the OS limit."""

    default_message = "share memory path prefix too long"


class QueueFullError(ShmipcError):
    """The I/O queue is full."""

    default_message = "the io queue is full"