import atexit
import json
import logging
import os
import pathlib
import re
import sys

# Expanded redaction pattern
REDACT = re.compile(
    r"(?i)[\"']?\b(pass(word)?|token|apikey|api_key|secret|bearer)\b[\"']?\s*[:=]\s*[\"']?([^\"',\s]+)[\"']?"
)


def redact(s: str) -> str:
    return REDACT.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)


class JsonRedactingHandler(logging.StreamHandler):
    """Render dict messages as JSON lines, with secrets masked."""

    def __init__(self, stream=None) -> None:
        super().__init__(stream)
        # Without an explicit stream, follow whatever sys.stdout currently is.
        self._follow_stdout = stream is None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = record.msg
            if isinstance(msg, dict):
                line = json.dumps(
                    {"level": record.levelname, "logger": record.name, **msg},
                    default=str,
                )
            else:
                line = record.getMessage()
            if record.exc_info:
                line = f"{line}\n{logging.Formatter().formatException(record.exc_info)}"
            stream = sys.stdout if self._follow_stdout else self.stream
            stream.write(redact(line) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


# Use module qualified logger names so records can be filtered per concern.
logger = logging.getLogger("zwave_core")
bridge_logger = logging.getLogger("zwave_core.bridge")
zwave_logger = logging.getLogger("zwave_core.zwave")

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Attach the redacting handler once; children propagate to it.
handler = JsonRedactingHandler()
logger.handlers.clear()
logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False


def _flush_all_log_handlers() -> None:
    """Flush every handler of the package loggers, skipping closed streams."""
    for log in (logger, bridge_logger, zwave_logger):
        for h in log.handlers:
            stream = getattr(h, "stream", None)
            if stream is not None and getattr(stream, "closed", False) is True:
                continue
            try:
                h.flush()
            except (OSError, ValueError):
                continue


atexit.register(_flush_all_log_handlers)


def _get_log_level(override: str | None = None) -> int:
    """Resolve log level from argument or environment and return numeric level.

    Checks, in order: the override, LOG_LEVEL, LOGGING_LEVEL, ZWAVE_LOG_LEVEL,
    and falls back to logging.INFO for invalid or missing values.
    """
    lvl = (
        override
        or os.environ.get("LOG_LEVEL")
        or os.environ.get("LOGGING_LEVEL")
        or os.environ.get("ZWAVE_LOG_LEVEL")
    )
    if not lvl:
        return logging.INFO
    return LOG_LEVEL_MAP.get(str(lvl).upper(), logging.INFO)


def get_log_level(override: str | None = None) -> int:
    return _get_log_level(override=override)


def _writable(path: str) -> bool:
    try:
        p = pathlib.Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "a"):
            pass
        return True
    except OSError:
        return False


def init_file_handler(path: str) -> logging.Handler | None:
    """Return a file handler for ``path``, or None (with a warning) if unwritable."""
    if not _writable(path):
        logger.warning({"event": "log_path_fallback", "target": "stdout", "path": path})
        return None
    fh = logging.FileHandler(path)
    fh.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s:%(name)s: %(message)s")
    )
    return fh


def setup_logging(level: str | None = None, log_path: str | None = None) -> int:
    """(Re)initialize the package loggers and return the numeric level."""
    numeric_level = get_log_level(level)
    logger.setLevel(numeric_level)
    if handler not in logger.handlers:
        logger.addHandler(handler)
    for h in list(logger.handlers):
        if isinstance(h, logging.FileHandler):
            logger.removeHandler(h)
            h.close()
    if log_path:
        fh = init_file_handler(log_path)
        if fh is not None:
            logger.addHandler(fh)
    return numeric_level


# Structured event emitters
def log_command_received(topic: str, payload: str, address) -> None:
    bridge_logger.info(
        {
            "event": "command_received",
            "topic": topic,
            "payload": payload,
            "address": str(address),
        }
    )


def log_state_published(topic: str, payload: str, address) -> None:
    bridge_logger.info(
        {
            "event": "state_published",
            "topic": topic,
            "payload": payload,
            "address": str(address),
        }
    )


def log_stale_value(address, observed, expected, retry_count: int) -> None:
    bridge_logger.info(
        {
            "event": "stale_value",
            "address": str(address),
            "observed": observed,
            "expected": expected,
            "retry_count": retry_count,
        }
    )


__all__ = [
    "LOG_LEVEL_MAP",
    "JsonRedactingHandler",
    "_flush_all_log_handlers",
    "_get_log_level",
    "bridge_logger",
    "get_log_level",
    "log_command_received",
    "log_stale_value",
    "log_state_published",
    "logger",
    "redact",
    "setup_logging",
    "zwave_logger",
]
