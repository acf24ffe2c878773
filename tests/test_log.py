import logging

from shared.envelope import Packet
from shared.log import (
    CONSOLE_FORMAT,
    ColoredFormatter,
    GenericFormatter,
    _get_log_level,
    log_packet,
)


def make_record(msg="Sent packet", **extra):
    record = logging.LogRecord("bridge.session", logging.WARNING, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_prefix_is_not_stacked_across_handlers():
    record = make_record(cmd="Test.Cmd", echo=42)
    formatter = GenericFormatter(fmt="%(message)s")

    assert formatter.format(record) == "[cmd=Test.Cmd echo=42] Sent packet"
    assert formatter.format(record) == "[cmd=Test.Cmd echo=42] Sent packet"
    assert record.msg == "Sent packet"


def test_colored_level_does_not_leak_into_file_output():
    record = make_record(endpoint="ws://127.0.0.1:13000/ws")

    colored = ColoredFormatter(fmt=CONSOLE_FORMAT).format(record)
    plain = GenericFormatter(fmt="%(levelname)s %(message)s").format(record)

    assert "\033[33m" in colored
    assert "[ep=ws://127.0.0.1:13000/ws]" in colored
    assert plain == "WARNING [ep=ws://127.0.0.1:13000/ws] Sent packet"


def test_level_from_argument_then_environment(monkeypatch):
    monkeypatch.setenv("BRIDGE_LOG_LEVEL", "error")
    assert _get_log_level("debug") == logging.DEBUG
    assert _get_log_level() == logging.ERROR

    monkeypatch.delenv("BRIDGE_LOG_LEVEL")
    assert _get_log_level() == logging.INFO


def test_log_packet_attaches_command_and_echo(caplog):
    logger = logging.getLogger("bridge.test_log")
    logger.propagate = True

    with caplog.at_level(logging.DEBUG, logger="bridge.test_log"):
        log_packet(logger, "info", "Dispatching", packet=Packet(command="X", sequence=7), state="connected")

    record = caplog.records[-1]
    assert (record.cmd, record.echo, record.state) == ("X", 7, "connected")
