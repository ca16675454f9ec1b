from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence


@dataclass
class SerialConfig:
    port: str = "/dev/ttyUSB0"
    baudrate: int = 9600
    timeout: float = 0.5


@dataclass
class HostRuntime:
    queue_maxsize: int = 64
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0
    stats_log_interval: float = 60.0
    chunk_size: int = 64


@dataclass
class DeskConfig:
    serial: SerialConfig = field(default_factory=SerialConfig)
    host: HostRuntime = field(default_factory=HostRuntime)
    log_level: str = "INFO"

    def validate(self) -> None:
        if self.serial.baudrate <= 0:
            raise ValueError("serial.baudrate must be positive")
        if self.serial.timeout < 0:
            raise ValueError("serial.timeout may not be negative")
        if self.host.queue_maxsize <= 0:
            raise ValueError("host.queue_maxsize must be positive")
        if self.host.chunk_size <= 0:
            raise ValueError("host.chunk_size must be positive")
        if self.host.reconnect_initial_sec < 0:
            raise ValueError("host.reconnect_initial_sec may not be negative")
        if self.host.reconnect_max_sec < self.host.reconnect_initial_sec:
            raise ValueError("host.reconnect_max_sec must be >= host.reconnect_initial_sec")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log_level '{self.log_level}'")


_KNOWN_KEYS = {
    "serial": {"port", "baudrate", "timeout"},
    "host": {
        "queue_maxsize",
        "reconnect_initial_sec",
        "reconnect_max_sec",
        "stats_log_interval",
        "chunk_size",
    },
}


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> DeskConfig:
    """
    Load the desk host configuration from JSON and apply CLI-style overrides.

    Overrides are dotted `key=value` pairs, e.g.:
        ["serial.baudrate=19200", "host.chunk_size=32"]
    A missing `path` yields the built-in defaults.
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    _check_keys(merged)
    serial_data = merged.get("serial") or {}
    host_data = merged.get("host") or {}
    cfg = DeskConfig(
        serial=SerialConfig(
            port=str(serial_data.get("port", "/dev/ttyUSB0")),
            baudrate=int(serial_data.get("baudrate", 9600)),
            timeout=float(serial_data.get("timeout", 0.5)),
        ),
        host=HostRuntime(
            queue_maxsize=int(host_data.get("queue_maxsize", 64)),
            reconnect_initial_sec=float(host_data.get("reconnect_initial_sec", 0.5)),
            reconnect_max_sec=float(host_data.get("reconnect_max_sec", 5.0)),
            stats_log_interval=float(host_data.get("stats_log_interval", 60.0)),
            chunk_size=int(host_data.get("chunk_size", 64)),
        ),
        log_level=str(merged.get("log_level", "INFO")),
    )
    cfg.validate()
    return cfg


def _check_keys(data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if key == "log_level":
            continue
        if key not in _KNOWN_KEYS:
            raise ValueError(f"Unknown config key '{key}'")
        if not isinstance(value, dict):
            raise ValueError(f"Config section '{key}' must be an object")
        for name, item in value.items():
            if isinstance(item, (dict, list)):
                raise ValueError(f"Config value '{key}.{name}' must be a scalar")
        unknown = set(value) - _KNOWN_KEYS[key]
        if unknown:
            raise ValueError(f"Unknown keys in '{key}': {', '.join(sorted(unknown))}")


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
