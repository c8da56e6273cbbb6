import io
import logging

from zwave_core import logging_setup as ls


def test_get_log_level_override():
    assert ls.get_log_level("debug") == logging.DEBUG
    assert ls.get_log_level("INFO") == logging.INFO
    assert ls.get_log_level("chatty") == logging.INFO


def test__get_log_level_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOGGING_LEVEL", raising=False)
    monkeypatch.setenv("ZWAVE_LOG_LEVEL", "WARNING")
    assert ls._get_log_level() == logging.WARNING
    monkeypatch.setenv("LOG_LEVEL", "error")
    assert ls._get_log_level() == logging.ERROR


def test_redact_masks_secrets():
    r = ls.redact("password=supersecret token=abcd1234 other=ok")
    assert "***REDACTED***" in r
    assert "supersecret" not in r
    assert "abcd1234" not in r
    assert "other=ok" in r


def _record(msg, args=()):
    return logging.LogRecord(
        name="zwave_core.bridge",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_json_redacting_handler_emits_json_lines():
    stream = io.StringIO()
    handler = ls.JsonRedactingHandler(stream)
    handler.emit(_record({"event": "mqtt_connect_attempt", "password": "secret"}))
    handler.emit(_record("plain %s", ("text",)))
    first, second = stream.getvalue().splitlines()
    assert '"event": "mqtt_connect_attempt"' in first
    assert '"logger": "zwave_core.bridge"' in first
    assert "secret" not in first
    assert second == "plain text"


def test_setup_logging_changes_level_and_file(tmp_path):
    log_file = tmp_path / "logs" / "bridge.log"
    try:
        assert ls.setup_logging("WARNING", str(log_file)) == logging.WARNING
        assert ls.logger.level == logging.WARNING
        assert ls.bridge_logger.getEffectiveLevel() == logging.WARNING
        assert any(isinstance(h, logging.FileHandler) for h in ls.logger.handlers)
        ls.bridge_logger.warning("to file")
        ls._flush_all_log_handlers()
        assert "to file" in log_file.read_text()
    finally:
        ls.setup_logging("INFO")
    assert not any(isinstance(h, logging.FileHandler) for h in ls.logger.handlers)
