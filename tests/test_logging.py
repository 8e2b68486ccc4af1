"""
Logging tests: levels, thresholds and the per-request diagnostic line.
"""
import io

import pytest

from envreply.utils import logging
from envreply.utils.logging import LogLevel, LogThreshold, parseLevel


@pytest.fixture
def sink(monkeypatch) -> io.StringIO:
    stream = io.StringIO()
    monkeypatch.setattr(logging, "ERR", stream)
    previous = LogThreshold.level
    try:
        yield stream
    finally:
        LogThreshold.Set(previous)


def test_parse_level():
    assert parseLevel("DEBUG") is LogLevel.Debug
    assert parseLevel(" warning ") is LogLevel.Warning
    assert parseLevel("nonsense") is LogLevel.Info
    assert parseLevel(None, LogLevel.Error) is LogLevel.Error


def test_messages_carry_context(sink):
    LogThreshold.Set(LogLevel.Info)
    logging.info("Response value configured", Value="hello")

    line = sink.getvalue()
    assert "[envreply]" in line
    assert "Response value configured" in line
    assert "hello" in line


def test_events_are_timestamped(sink):
    LogThreshold.Set(LogLevel.Info)
    entry = logging.event("Request", "/anything", Method="GET")

    line = sink.getvalue()
    assert logging.formatTime(entry.time) in line
    assert "/anything" in line


def test_threshold_filters_lower_levels(sink):
    LogThreshold.Set("warning")
    logging.debug("hidden")
    logging.info("hidden too")
    logging.warning("shown")

    assert "hidden" not in sink.getvalue()
    assert "shown" in sink.getvalue()
    assert not logging.logged(logging.debug)
    assert logging.logged(logging.error)


def test_exception_writes_traceback(sink):
    try:
        raise ValueError("boom")
    except ValueError as e:
        assert logging.exception(e, "Handler failed") is e

    output = sink.getvalue()
    assert "[ValueError] boom" in output
    assert "test_exception_writes_traceback" in output


def test_format_data():
    assert logging.formatData(None) == "◌"
    assert logging.formatData(True) == "✓"
    assert logging.formatData(0.5) == "0.50"
    assert logging.formatData("two words") == "'two words'"
