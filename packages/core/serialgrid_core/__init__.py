"""Core app services for settings, logging, and diagnostics."""

from .config import AppConfig, DaemonConfig, DiagnosticsConfig, SessionConfig, load_config, save_config
from .diagnostics import build_doctor_payload

__all__ = [
    "AppConfig",
    "DaemonConfig",
    "DiagnosticsConfig",
    "SessionConfig",
    "build_doctor_payload",
    "load_config",
    "save_config",
]
