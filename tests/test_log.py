import io
import re

import pytest

from plugshm import log
from plugshm.log import RESET, Logger, LogLevel, get_log_level, set_log_level


@pytest.fixture(autouse=True)
def restore_level():
    saved = get_log_level()
    yield
    set_log_level(saved)


def test_log_color_all_levels():
    set_log_level(LogLevel.TRACE)
    out = io.StringIO()
    logger = Logger("", out)
    logger.trace("this is tracef %s", "hello world")
    logger.trace("trace message")
    logger.info("this is infof %s", "hello world")
    logger.info("this is info")
    logger.debug("this is debugf %s", "hello world")
    logger.debug("debug message")
    logger.warn("this is warnf %s", "hello world")
    logger.warn("warn message")
    logger.error("this is errorf %s", "hello world")
    logger.error("this is error")
    lines = out.getvalue().splitlines()
    assert len(lines) == 10
    assert lines[0].startswith("\x1b[95mTrace ")
    assert lines[0].endswith("this is tracef hello world" + RESET)
    assert lines[2].startswith("\x1b[94mInfo ")
    assert lines[4].startswith("\x1b[92mDebug ")
    assert lines[6].startswith("\x1b[93mWarn ")
    assert lines[8].startswith("\x1b[91mError ")
    assert lines[9].endswith("this is error" + RESET)


def test_level_filters_lower_messages():
    set_log_level(LogLevel.WARN)
    out = io.StringIO()
    logger = Logger("x", out)
    logger.info("hidden")
    logger.debug("hidden")
    logger.warn("shown")
    text = out.getvalue()
    assert "hidden" not in text
    assert "shown" in text


def test_no_print_silences_everything():
    set_log_level(LogLevel.NO_PRINT)
    out = io.StringIO()
    Logger("x", out).error("boom")
    assert out.getvalue() == ""


def test_set_log_level_ignores_too_large():
    set_log_level(LogLevel.INFO)
    set_log_level(6)
    assert get_log_level() == LogLevel.INFO


def test_prefix_contains_name_and_location():
    set_log_level(LogLevel.TRACE)
    out = io.StringIO()
    Logger("listener", out).error("msg")
    line = out.getvalue()
    parts = line.split(" ")
    assert parts[0] == "\x1b[91mError"
    assert len(parts[1]) == 10
    assert bool(re.fullmatch(r"\d{4}-\d{2}-\d{2}", parts[1])) is True
    assert bool(re.fullmatch(r"\d{2}:\d{2}:\d{2}(\.\d+)?", parts[2])) is True
    assert parts[3].startswith("test_log.py:")
    assert parts[3].split(":")[1].isdigit() is True
    assert parts[4] == "listener"
    assert parts[5].startswith("msg" + RESET)


def test_non_string_message():
    set_log_level(LogLevel.ERROR)
    out = io.StringIO()
    Logger("n", out).error(ValueError("bad value"))
    assert "bad value" in out.getvalue()


def test_module_loggers_names():
    internal_prefix = log.internal_logger.prefix(LogLevel.ERROR)
    protocol_prefix = log.protocol_logger.prefix(LogLevel.WARN)
    assert internal_prefix.startswith("\x1b[91mError ")
    assert internal_prefix.endswith("  ")
    assert protocol_prefix.startswith("\x1b[93mWarn ")
    assert protocol_prefix.endswith(" protocol trace ")