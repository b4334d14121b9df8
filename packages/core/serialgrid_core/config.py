"""Persistent settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2
DEFAULT_PREFIX = "/serialgrid"


@dataclass
class DaemonConfig:
    host: str = "127.0.0.1"
    port: int = 12002


@dataclass
class SessionConfig:
    prefix: str = DEFAULT_PREFIX
    start_port: int = 10000
    handshake_timeout_s: float | None = 5.0


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


def config_path() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "SerialGrid" / "config.json"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "SerialGrid" / "config.json"
    return Path.home() / ".config" / "serialgrid" / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp_port(value: Any, default: int) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, min(65535, port))


def _normalize_daemon(cfg: AppConfig) -> None:
    cfg.daemon.port = _clamp_port(cfg.daemon.port, DaemonConfig.port)
    if not isinstance(cfg.daemon.host, str) or not cfg.daemon.host:
        cfg.daemon.host = DaemonConfig.host


def _normalize_session(cfg: AppConfig) -> None:
    prefix = cfg.session.prefix
    if not isinstance(prefix, str) or not prefix.strip("/"):
        cfg.session.prefix = DEFAULT_PREFIX
    elif not prefix.startswith("/"):
        cfg.session.prefix = "/" + prefix
    cfg.session.start_port = _clamp_port(cfg.session.start_port, SessionConfig.start_port)

    timeout = cfg.session.handshake_timeout_s
    if timeout is not None:
        try:
            cfg.session.handshake_timeout_s = max(0.1, float(timeout))
        except (TypeError, ValueError):
            cfg.session.handshake_timeout_s = SessionConfig.handshake_timeout_s


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 kept the daemon port and prefix at the top level.
        daemon = dict(data.get("daemon", {}) or {})
        session = dict(data.get("session", {}) or {})
        if "serialosc_port" in data:
            daemon.setdefault("port", data.pop("serialosc_port"))
        if "prefix" in data:
            session.setdefault("prefix", data.pop("prefix"))
        data["daemon"] = daemon
        data["session"] = session
        data.setdefault("diagnostics", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        daemon=_merge(DaemonConfig, data.get("daemon", {})),
        session=_merge(SessionConfig, data.get("session", {})),
        diagnostics=_merge(DiagnosticsConfig, data.get("diagnostics", {})),
    )

    _normalize_daemon(cfg)
    _normalize_session(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
