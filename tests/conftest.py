"""
Pytest configuration for zwave2mqtt tests.

- Ensures the repository root is on sys.path so imports like
  `from zwave_core import ...` and `from tests.helpers ...` resolve.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    """Prepend the repository root to sys.path."""
    repo_root = Path(__file__).resolve().parent.parent
    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_repo_root_on_syspath()


def pytest_configure(config):  # noqa: D401
    """Keep env-driven config deterministic for tests."""
    os.environ.setdefault("MQTT_HOST", "127.0.0.1")


SAUNA_DEVICES = [
    {"address": [2, 37, 3, 0], "name": "alavalot", "topic": "nest/zwave/sauna/alavalot"},
    {"address": [2, 37, 2, 0], "name": "terassivalo", "topic": "nest/zwave/sauna/terassivalo"},
]


@pytest.fixture
def device_config():
    return [dict(d, address=list(d["address"])) for d in SAUNA_DEVICES]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ("MQTT_HOST", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD",
                "ZWAVE_WS_URL", "LOG_LEVEL", "LOGGING_LEVEL", "ZWAVE_LOG_LEVEL",
                "CONFIG_PATH"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def bridge_caplog(caplog):
    """caplog wired to the package logger (which does not propagate)."""
    from zwave_core.logging_setup import logger

    logger.addHandler(caplog.handler)
    caplog.set_level("DEBUG", logger="zwave_core")
    yield caplog
    logger.removeHandler(caplog.handler)
