import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "protocol"))

from osc_peers import FakeDaemon, build, wait_until
from serialgrid_protocol.discovery import DeviceWatcher, enumerate_devices
from serialgrid_protocol.errors import ProtocolDecodeError
from serialgrid_protocol.models import DeviceAdded, DeviceKind, DeviceRemoved


class EnumerateDevicesTests(unittest.TestCase):
    def _enumerate(self, script, timeout_ms=300):
        daemon = FakeDaemon(script)
        try:
            devices = enumerate_devices(daemon.port, timeout_ms=timeout_ms, start_port=20000)
            return devices, daemon
        finally:
            daemon.close()

    def test_silence_yields_no_devices(self):
        devices, daemon = self._enumerate([], timeout_ms=100)
        self.assertEqual(devices, [])
        self.assertEqual(daemon.addresses(), ["/serialosc/list"])

    def test_each_announcement_is_collected(self):
        devices, _daemon = self._enumerate(
            [
                (0.0, "/serialosc/device", ["monome 128", "monome 128", 15001]),
                (0.05, "/serialosc/device", ["arc 4", "monome arc 4", 15002]),
                (0.10, "/serialosc/device", ["thing", "mystery", 15003]),
            ]
        )
        self.assertEqual([d.port for d in devices], [15001, 15002, 15003])
        self.assertEqual([d.kind for d in devices], [DeviceKind.GRID, DeviceKind.ARC, DeviceKind.UNKNOWN])
        self.assertEqual(str(devices[0]), "monome 128: grid (15001)")

    def test_stray_message_neither_counts_nor_extends_window(self):
        devices, _daemon = self._enumerate(
            [
                (0.0, "/serialosc/device", ["monome 64", "monome 64", 15001]),
                (0.20, "/sys/id", ["stray"]),
                (0.42, "/serialosc/device", ["late", "monome 64", 15002]),
            ]
        )
        self.assertEqual([d.name for d in devices], ["monome 64"])

    def test_malformed_announcement_is_skipped(self):
        devices, _daemon = self._enumerate(
            [
                (0.0, "/serialosc/device", ["broken", 15001]),
                (0.02, "/serialosc/device", ["ok", "monome 64", 15002]),
            ]
        )
        self.assertEqual([d.name for d in devices], ["ok"])

    def test_undecodable_reply_raises(self):
        with self.assertRaises(ProtocolDecodeError):
            self._enumerate(
                [
                    (0.0, "/serialosc/device", ["ok", "monome 64", 15002]),
                    (0.02, b"/\xff\xfe\x00", None),
                ]
            )


class DeviceWatcherTests(unittest.TestCase):
    def setUp(self):
        self.daemon = FakeDaemon()
        self.events = []
        self.watcher = DeviceWatcher(self.events.append, self.daemon.port, start_port=20000)

    def tearDown(self):
        self.watcher._endpoint.close()
        self.daemon.close()

    def test_registers_and_reports_changes(self):
        self.daemon.send(self.watcher.port, "/serialosc/add", ["m1000001"])
        self.watcher.run_once()
        self.assertTrue(wait_until(lambda: self.daemon.notify_ports == [self.watcher.port]))
        self.assertEqual(self.events, [DeviceAdded("m1000001")])
        self.assertTrue(self.watcher.needs_renotify)

        self.daemon.send(self.watcher.port, "/serialosc/remove", ["m1000001"])
        self.watcher.run_once()
        self.assertTrue(wait_until(lambda: len(self.daemon.notify_ports) == 2))
        self.assertEqual(self.events[-1], DeviceRemoved("m1000001"))

    def test_other_messages_do_not_trigger_renotify(self):
        self.daemon.send(self.watcher.port, "/sys/connect", ["m1000001"])
        self.watcher.run_once()
        self.assertEqual(self.events, [])
        self.assertFalse(self.watcher.needs_renotify)

    def test_callback_errors_do_not_stop_the_watcher(self):
        def _boom(_event):
            raise RuntimeError("callback failed")

        self.watcher.callback = _boom
        self.watcher.needs_renotify = False
        self.watcher._handle(build("/serialosc/add", ["m1"]))
        self.assertTrue(self.watcher.needs_renotify)

    def test_undecodable_notification_is_skipped(self):
        self.watcher.needs_renotify = False
        self.watcher._handle(b"/\xff\xfe\x00")
        self.watcher._handle(b"junk")
        self.assertEqual(self.events, [])
        self.assertFalse(self.watcher.needs_renotify)

    def test_run_once_survives_undecodable_notification(self):
        self.daemon.send_raw(self.watcher.port, b"/\xff\xfe\x00")
        self.watcher.run_once()
        self.daemon.send(self.watcher.port, "/serialosc/add", ["m1000002"])
        self.watcher.run_once()
        self.assertEqual(self.events, [DeviceAdded("m1000002")])


if __name__ == "__main__":
    unittest.main()
