from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .core_types import DeviceAddress

logger = logging.getLogger(__name__)

# Public module-level handles; populated by init_config()
CONFIG: dict[str, Any] = {}
CONFIG_SOURCE: Path | None = None

DEFAULTS: dict[str, Any] = {
    "mqtt_host": "localhost",
    "mqtt_port": 1883,
    "mqtt_username": None,
    "mqtt_password": None,
    "mqtt_client_id": "zwave2mqtt",
    "mqtt_keepalive": 60,
    "mqtt_tls": False,
    "mqtt_qos": 1,
    "subscribe_topic": None,
    "status_topic": "zwave2mqtt/status",
    "zwave_ws_url": "ws://localhost:3000",
    "retry_limit": 6,
    "refresh_delay_ms": 400,
    "shutdown_grace_s": 1.0,
    "log_level": "INFO",
    "log_path": None,
}

# Environment variables that override file configuration.
ENV_OVERRIDES = {
    "MQTT_HOST": "mqtt_host",
    "MQTT_PORT": "mqtt_port",
    "MQTT_USERNAME": "mqtt_username",
    "MQTT_PASSWORD": "mqtt_password",
    "ZWAVE_WS_URL": "zwave_ws_url",
    "LOG_LEVEL": "log_level",
}


class ConfigError(ValueError):
    """Configuration is missing, malformed or inconsistent."""


def _candidate_paths() -> list[Path]:
    """Ordered YAML config locations (env first, then add-on, then local)."""
    env_path = os.environ.get("CONFIG_PATH")
    paths: list[Path] = []
    if env_path:
        paths.append(Path(env_path))
    paths.extend(
        [
            Path("/data/config.yaml"),  # HA add-on standard
            Path("/config/zwave2mqtt.yaml"),
            Path.cwd() / "config.yaml",
        ]
    )
    return paths


def _load_options_json(
    path: Path = Path("/data/options.json"),
) -> tuple[dict[str, Any], Path | None]:
    """Load Home Assistant add-on options (JSON). Returns (data, source_path)."""
    if not path.exists():
        logger.debug("[CONFIG] options.json not found: %s", path)
        return {}, None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse options.json {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read options.json {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"options.json root not a mapping: {path}")
    logger.info("[CONFIG] Loaded options from: %s", path)
    return data, path


def _load_yaml_cfg(
    paths: list[Path] | None = None,
) -> tuple[dict[str, Any], Path | None]:
    """Load YAML config from the first existing candidate path.

    A file that exists but cannot be parsed is an error: silently falling
    through to the next candidate would bridge the wrong devices.
    """
    candidates = paths if paths is not None else _candidate_paths()
    for pth in candidates:
        if not pth.exists():
            logger.debug("[CONFIG] Path not found: %s", pth)
            continue
        try:
            with pth.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse YAML {pth}: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"Failed to read YAML {pth}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"YAML root not a mapping: {pth}")
        logger.info("[CONFIG] Loaded YAML config from: %s", pth)
        return data, pth
    return {}, None


def _apply_env(cfg: dict[str, Any]) -> dict[str, Any]:
    for env_key, cfg_key in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val:
            cfg[cfg_key] = val
    return cfg


def init_config(
    yaml_paths: list[Path] | None = None,
    options_path: Path = Path("/data/options.json"),
) -> tuple[dict[str, Any], Path | None]:
    """Populate module-level CONFIG & CONFIG_SOURCE and return them.

    Precedence: defaults < YAML < options.json < environment.
    """
    global CONFIG_SOURCE
    yml, yml_src = _load_yaml_cfg(yaml_paths)
    opts, opts_src = _load_options_json(options_path)

    merged: dict[str, Any] = dict(DEFAULTS)
    merged.update(yml)
    merged.update(opts)
    _apply_env(merged)

    CONFIG.clear()
    CONFIG.update(merged)
    CONFIG_SOURCE = opts_src or yml_src
    if CONFIG_SOURCE is None:
        logger.warning("[CONFIG] No configuration file found; using defaults + env.")
    else:
        logger.debug("[CONFIG] Active source: %s", CONFIG_SOURCE)
    return CONFIG, CONFIG_SOURCE


def load_config(
    force: bool = False, **kwargs: Any
) -> tuple[dict[str, Any], Path | None]:
    """Return the effective configuration, loading it on first use."""
    if CONFIG and not force:
        return CONFIG, CONFIG_SOURCE
    return init_config(**kwargs)


# ---------------------------
# Device table
# ---------------------------
@dataclass(frozen=True)
class DeviceSpec:
    """One configured device entry, validated but not yet registered."""

    address: DeviceAddress
    name: str
    topic: str


def _parse_address(raw: Any, where: str) -> DeviceAddress:
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        raise ConfigError(
            f"{where}: address must be [node_id, command_class, instance, index]"
        )
    node_id, command_class, instance, index = raw
    for label, part in (
        ("node_id", node_id),
        ("command_class", command_class),
        ("instance", instance),
    ):
        if isinstance(part, bool) or not isinstance(part, int):
            raise ConfigError(f"{where}: {label} must be an integer, got {part!r}")
    if isinstance(index, bool) or not isinstance(index, (int, str)) or index == "":
        raise ConfigError(f"{where}: index must be an integer or property name")
    return DeviceAddress(node_id, command_class, instance, index)


def parse_devices(raw: Any) -> list[DeviceSpec]:
    """Validate the ``devices`` list; raise ConfigError on the first problem."""
    if not isinstance(raw, list) or not raw:
        raise ConfigError("devices must be a non-empty list")
    specs: list[DeviceSpec] = []
    seen_addresses: dict[DeviceAddress, str] = {}
    seen_topics: dict[str, str] = {}
    for i, entry in enumerate(raw):
        where = f"devices[{i}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where}: entry must be a mapping")
        for key in ("address", "name", "topic"):
            if key not in entry:
                raise ConfigError(f"{where}: missing field '{key}'")
        name, topic = entry["name"], entry["topic"]
        if not isinstance(name, str) or not name:
            raise ConfigError(f"{where}: name must be a non-empty string")
        if not isinstance(topic, str) or not topic.strip("/"):
            raise ConfigError(f"{where}: topic must be a non-empty string")
        if "#" in topic or "+" in topic:
            raise ConfigError(f"{where}: topic must not contain MQTT wildcards")
        if topic.endswith("/"):
            topic = topic[:-1]
        if "//" in topic or topic.endswith("/"):
            raise ConfigError(f"{where}: topic must not contain empty levels")
        address = _parse_address(entry["address"], where)
        if address in seen_addresses:
            raise ConfigError(
                f"{where}: duplicate address {list(address)} "
                f"(already used by '{seen_addresses[address]}')"
            )
        if topic in seen_topics:
            raise ConfigError(
                f"{where}: duplicate topic '{topic}' "
                f"(already used by '{seen_topics[topic]}')"
            )
        seen_addresses[address] = name
        seen_topics[topic] = name
        specs.append(DeviceSpec(address=address, name=name, topic=topic))
    return specs


def umbrella_topic(topics: list[str]) -> str:
    """Wildcard covering every stem: common topic-level prefix + ``/#``."""
    split = [t.split("/") for t in topics]
    common: list[str] = []
    for levels in zip(*split):
        if len(set(levels)) != 1:
            break
        common.append(levels[0])
    return "/".join([*common, "#"])


@dataclass(frozen=True)
class BridgeSettings:
    """Resolved, typed runtime settings."""

    devices: tuple[DeviceSpec, ...]
    mqtt_host: str
    mqtt_port: int
    mqtt_username: str | None
    mqtt_password: str | None
    mqtt_client_id: str
    mqtt_keepalive: int
    mqtt_tls: bool
    mqtt_qos: int
    subscribe_topic: str
    status_topic: str
    zwave_ws_url: str
    retry_limit: int
    refresh_delay: float
    shutdown_grace: float
    log_level: str
    log_path: str | None

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> BridgeSettings:
        merged = {**DEFAULTS, **cfg}
        devices = parse_devices(merged.get("devices"))
        try:
            retry_limit = int(merged["retry_limit"])
            refresh_delay = float(merged["refresh_delay_ms"]) / 1000.0
            shutdown_grace = float(merged["shutdown_grace_s"])
            port = int(merged["mqtt_port"])
            keepalive = int(merged["mqtt_keepalive"])
            qos = int(merged["mqtt_qos"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric setting: {exc}") from exc
        if retry_limit < 0 or refresh_delay < 0 or shutdown_grace < 0:
            raise ConfigError(
                "retry_limit, refresh_delay_ms and shutdown_grace_s must be >= 0"
            )
        if qos not in (0, 1, 2):
            raise ConfigError(f"mqtt_qos must be 0, 1 or 2, got {qos}")
        subscribe = merged.get("subscribe_topic") or umbrella_topic(
            [d.topic for d in devices]
        )
        return cls(
            devices=tuple(devices),
            mqtt_host=str(merged["mqtt_host"]),
            mqtt_port=port,
            mqtt_username=merged.get("mqtt_username") or None,
            mqtt_password=merged.get("mqtt_password") or None,
            mqtt_client_id=str(merged["mqtt_client_id"]),
            mqtt_keepalive=keepalive,
            mqtt_tls=_as_bool(merged.get("mqtt_tls")),
            mqtt_qos=qos,
            subscribe_topic=subscribe,
            status_topic=str(merged["status_topic"]),
            zwave_ws_url=str(merged["zwave_ws_url"]),
            retry_limit=retry_limit,
            refresh_delay=refresh_delay,
            shutdown_grace=shutdown_grace,
            log_level=str(merged["log_level"]),
            log_path=merged.get("log_path") or None,
        )


def _as_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def load_settings(**kwargs: Any) -> BridgeSettings:
    """Load configuration from disk/env and resolve it into BridgeSettings."""
    cfg, _src = load_config(force=True, **kwargs)
    return BridgeSettings.from_config(cfg)


__all__ = [
    "CONFIG",
    "CONFIG_SOURCE",
    "DEFAULTS",
    "BridgeSettings",
    "ConfigError",
    "DeviceSpec",
    "_load_options_json",
    "_load_yaml_cfg",
    "init_config",
    "load_config",
    "load_settings",
    "parse_devices",
    "umbrella_topic",
]
