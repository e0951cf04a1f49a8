"""Small coloured logger with a process-wide level."""

import os
import sys
from datetime import datetime
from enum import IntEnum


class LogLevel(IntEnum):
    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    NO_PRINT = 5


RESET = "\x1b[0m"

_COLORS = {
    LogLevel.TRACE: "\x1b[95m",
    LogLevel.DEBUG: "\x1b[92m",
    LogLevel.INFO: "\x1b[94m",
    LogLevel.WARN: "\x1b[93m",
    LogLevel.ERROR: "\x1b[91m",
}

_NAMES = {
    LogLevel.TRACE: "Trace",
    LogLevel.DEBUG: "Debug",
    LogLevel.INFO: "Info",
    LogLevel.WARN: "Warn",
    LogLevel.ERROR: "Error",
}


def _initial_level():
    raw = os.environ.get("SHMIPC_LOG_LEVEL", "")
    if raw:
        try:
            value = int(raw)
        except ValueError:
            return int(LogLevel.WARN)
        if value <= LogLevel.NO_PRINT:
            return value
    return int(LogLevel.WARN)


_level = _initial_level()
DEBUG_MODE = bool(os.environ.get("SHMIPC_DEBUG_MODE", ""))


def set_log_level(level):
    """Change the process-wide log level; values above NO_PRINT are ignored."""
    global _level
    if int(level) <= LogLevel.NO_PRINT:
        _level = int(level)


def get_log_level():
    """Return the current process-wide log level."""
    return _level


def _location():
    frame = sys._getframe(1)
    while frame is not None and frame.f_code.co_filename == _HERE:
        frame = frame.f_back
    if frame is None:
        return "???:0"
    return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


_HERE = _location.__code__.co_filename


def _timestamp():
    now = datetime.now()
    frac = f"{now.microsecond:06d}".rstrip("0")
    stamp = now.strftime("%Y-%m-%d %H:%M:%S")
    return f"{stamp}.{frac}" if frac else stamp


class Logger:
    """Writes coloured, level-filtered lines to a text stream."""

    def __init__(self, name, out=None):
        self.name = name
        self._out = out

    @property
    def out(self):
        return self._out if self._out is not None else sys.stdout

    def _emit(self, level, msg, args):
        if _level > level:
            return
        text = msg % args if args else str(msg)
        try:
            self.out.write(self.prefix(level) + text + RESET + "\n")
        except (OSError, ValueError) as exc:
            sys.stderr.write(f"logger write failed: {exc}\n")

    def error(self, msg, *args):
        self._emit(LogLevel.ERROR, msg, args)

    def warn(self, msg, *args):
        self._emit(LogLevel.WARN, msg, args)

    def info(self, msg, *args):
        self._emit(LogLevel.INFO, msg, args)

    def debug(self, msg, *args):
        self._emit(LogLevel.DEBUG, msg, args)

    def trace(self, msg, *args):
        self._emit(LogLevel.TRACE, msg, args)

    def prefix(self, level):
        """Return the colour, level name, time, caller location and logger name."""
        level = LogLevel(level)
        return (
            f"{_COLORS[level]}{_NAMES[level]} {_timestamp()} "
            f"{_location()} {self.name} "
        )


internal_logger = Logger("")
protocol_logger = Logger("protocol trace")