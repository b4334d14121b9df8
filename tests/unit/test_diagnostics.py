import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "protocol"))

from osc_peers import FakeDaemon
from serialgrid_core.config import AppConfig
from serialgrid_core.diagnostics import build_doctor_payload, redact


class DiagnosticsTests(unittest.TestCase):
    def test_doctor_lists_devices(self):
        daemon = FakeDaemon([(0.0, "/serialosc/device", ["arc 2", "monome arc 2", 15010])])
        daemon_port = daemon.port
        cfg = AppConfig()
        cfg.daemon.port = daemon_port
        cfg.session.start_port = 20000
        try:
            payload = build_doctor_payload(cfg, timeout_ms=200)
        finally:
            daemon.close()
        self.assertEqual(payload["device_count"], 1)
        self.assertEqual(payload["devices"][0]["kind"], "arc")
        self.assertEqual(payload["config"]["daemon"]["port"], daemon_port)
        self.assertIn("python-osc", payload["libraries"])

    def test_redact_nested_secrets(self):
        data = {"daemon": {"host": "h", "auth_token": "x"}, "items": [{"password": "y"}]}
        self.assertEqual(
            redact(data),
            {"daemon": {"host": "h", "auth_token": "***REDACTED***"}, "items": [{"password": "***REDACTED***"}]},
        )


if __name__ == "__main__":
    unittest.main()
