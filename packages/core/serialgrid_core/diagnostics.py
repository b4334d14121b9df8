"""Environment and device report for the ``doctor`` command."""

from __future__ import annotations

import platform
import re
from dataclasses import asdict
from datetime import datetime, timezone
from importlib import metadata
from typing import Any

from serialgrid_protocol import SerialGridError, enumerate_devices

from .config import AppConfig, config_path
from .logging_setup import get_logger, log_dir


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _library_version(name: str) -> str | None:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return None


def build_doctor_payload(cfg: AppConfig, timeout_ms: int | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "libraries": {name: _library_version(name) for name in ("serialgrid", "python-osc", "Pillow")},
        "config_path": str(config_path()),
        "log_dir": str(log_dir()),
        "config": redact(asdict(cfg)),
    }

    kwargs: dict[str, Any] = {"daemon_host": cfg.daemon.host, "start_port": cfg.session.start_port}
    if timeout_ms is not None:
        kwargs["timeout_ms"] = timeout_ms
    try:
        devices = enumerate_devices(cfg.daemon.port, **kwargs)
    except (OSError, SerialGridError) as exc:
        get_logger().warning("doctor discovery failed: %s", exc, extra={"event": "doctor_discovery_failed"})
        payload["error"] = str(exc)
        payload["device_count"] = 0
        payload["devices"] = []
        return payload

    payload["device_count"] = len(devices)
    payload["devices"] = [
        {
            "name": d.name,
            "type": d.type_name,
            "kind": d.kind.value,
            "port": d.port,
            "host": d.host,
        }
        for d in devices
    ]
    return payload
