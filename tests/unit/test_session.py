import gc
import sys
import time
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "protocol"))

from pythonosc.osc_message import OscMessage

from osc_peers import FakeDaemon, FakeDevice, build, build_bundle, wait_until
from serialgrid_protocol import NoDevicesError, Session
from serialgrid_protocol.errors import ProtocolViolationError
from serialgrid_protocol.models import DeviceDescriptor, DeviceKind, GridKey, KeyDirection, SessionDescriptor
from serialgrid_protocol.reactor import OUTBOUND_CAPACITY
from serialgrid_protocol.transport import UdpEndpoint


def _offline_session(kind=DeviceKind.GRID, size=(16, 8), device_port=15999):
    device = DeviceDescriptor(name="test device", type_name="monome test", kind=kind, port=device_port)
    endpoint = UdpEndpoint.bind_first_free(start_port=20000)
    descriptor = SessionDescriptor(
        port=endpoint.port,
        host="127.0.0.1",
        id="m0000042",
        prefix="/app",
        rotation=0,
        width=size[0],
        height=size[1],
    )
    return Session(device, descriptor, endpoint, start=False)


def _drain(session):
    frames = []
    while True:
        frame = session._outbound.try_get()
        if frame is None:
            return frames
        frames.append(OscMessage(frame))


class OfflineSessionTests(unittest.TestCase):
    def setUp(self):
        self.session = _offline_session()

    def tearDown(self):
        self.session.close()

    def test_poll_returns_immediately_when_idle(self):
        started = time.monotonic()
        self.assertIsNone(self.session.poll())
        self.assertLess(time.monotonic() - started, 0.05)

    def test_outbound_overflow_drops_without_raising(self):
        for x in range(OUTBOUND_CAPACITY + 4):
            self.session.set(x, 0, True)
        self.assertEqual(self.session.pending_outbound, OUTBOUND_CAPACITY)
        self.assertEqual(self.session.stats.outbound_dropped, 4)
        self.assertEqual(self.session.stats.frames_queued, OUTBOUND_CAPACITY)

        frames = _drain(self.session)
        self.assertEqual([m.params[0] for m in frames], list(range(OUTBOUND_CAPACITY)))
        self.assertEqual(frames[0].address, "/app/grid/led/set")

    def test_ring_command_on_grid_enqueues_nothing(self):
        self.session.ring_set(0, 5, 15)
        self.session.ring_map(0, [1] * 64)
        self.assertEqual(self.session.pending_outbound, 0)
        self.assertEqual(self.session.stats.capability_mismatches, 2)

    def test_set_all_sends_one_map_per_quadrant(self):
        leds = [(x + y) % 2 == 0 for y in range(8) for x in range(16)]
        self.session.set_all(leds)
        frames = _drain(self.session)
        self.assertEqual([m.address for m in frames], ["/app/grid/led/map"] * 2)
        self.assertEqual([tuple(m.params[:2]) for m in frames], [(0, 0), (8, 0)])

    def test_set_all_intensity(self):
        self.session.set_all_intensity([7] * 128)
        frames = _drain(self.session)
        self.assertEqual([m.address for m in frames], ["/app/grid/led/level/map"] * 2)
        self.assertEqual(frames[0].params[2:], [7] * 64)

    def test_set_all_rejects_wrong_length(self):
        with self.assertRaises(ValueError):
            self.session.set_all([True] * 64)

    def test_settings_update_descriptor(self):
        self.session.set_rotation(180)
        self.session.set_prefix("/other")
        self.session.tilt_all(True)
        self.assertEqual(self.session.rotation, 180)
        self.assertEqual(self.session.prefix, "/other")
        frames = _drain(self.session)
        self.assertEqual([m.address for m in frames], ["/sys/rotation", "/sys/prefix", "/other/tilt/set"])
        with self.assertRaises(ValueError):
            self.session.set_rotation(45)
        self.assertEqual(self.session.rotation, 180)

    def test_commands_after_close_are_dropped(self):
        self.session.close()
        self.session.all(True)
        self.assertEqual(self.session.stats.outbound_dropped, 1)

    def test_undecodable_frames_are_counted_and_skipped(self):
        self.session._inbound.try_put(b"/\xff\xfe\x00")
        self.session._inbound.try_put(b"junk")
        self.assertIsNone(self.session.poll())
        self.assertIsNone(self.session.poll())
        self.assertEqual(self.session.stats.decode_errors, 2)

    def test_inbound_bundle_is_a_protocol_violation(self):
        self.session._inbound.try_put(build_bundle("/app/grid/key", [0, 0, 1]))
        with self.assertRaises(ProtocolViolationError):
            self.session.poll()

    def test_poll_follows_new_prefix(self):
        self.session.set_prefix("/other")
        self.assertEqual([(m.address, m.params) for m in _drain(self.session)], [("/sys/prefix", ["/other"])])
        self.session._inbound.try_put(build("/app/grid/key", [1, 1, 1]))
        self.session._inbound.try_put(build("/other/grid/key", [1, 1, 1]))
        self.assertIsNone(self.session.poll())
        self.assertEqual(self.session.poll(), GridKey(1, 1, KeyDirection.DOWN))
        self.session.set(0, 0, True)
        self.assertEqual([m.address for m in _drain(self.session)], ["/other/grid/led/set"])

    def test_repr_describes_device(self):
        text = repr(self.session)
        self.assertIn("test device", text)
        self.assertIn("size: 16:8", text)


class PartialGridTests(unittest.TestCase):
    def test_set_all_is_ignored_for_partial_quadrants(self):
        session = _offline_session(size=(12, 8))
        try:
            session.set_all([False] * 96)
            self.assertEqual(session.pending_outbound, 0)
            self.assertEqual(session.stats.capability_mismatches, 1)
        finally:
            session.close()


class ArcSessionTests(unittest.TestCase):
    def test_grid_commands_on_arc_enqueue_nothing(self):
        session = _offline_session(kind=DeviceKind.ARC, size=(0, 0))
        try:
            session.set(0, 0, True)
            session.map(0, 0, [0] * 8)
            self.assertEqual(session.pending_outbound, 0)
            session.ring_all(1, 4)
            self.assertEqual([m.address for m in _drain(session)], ["/app/ring/all"])
        finally:
            session.close()


class LiveSessionTests(unittest.TestCase):
    def setUp(self):
        self.device = FakeDevice(device_id="m0000007", size=(8, 8))
        descriptor = DeviceDescriptor(name="monome 64", type_name="monome 64", kind=DeviceKind.GRID, port=self.device.port)
        self.session = Session.from_device(descriptor, "/live", start_port=20000, timeout_s=2.0)

    def tearDown(self):
        self.session.close()
        self.device.close()

    def test_commands_reach_device(self):
        self.assertTrue(self.session.running)
        self.assertEqual(self.session.size, (8, 8))
        self.session.set(1, 2, 9)
        self.assertTrue(wait_until(lambda: ("/live/grid/led/level/set", [1, 2, 9]) in self.device.received))

    def test_key_press_is_polled(self):
        self.device.send(self.session.descriptor.port, "/live/grid/key", [3, 4, 1])
        event = None
        deadline = time.monotonic() + 2.0
        while event is None and time.monotonic() < deadline:
            event = self.session.poll()
            time.sleep(0.005)
        self.assertEqual(event, GridKey(3, 4, KeyDirection.DOWN))
        self.assertGreaterEqual(self.session.stats.frames_received, 1)

    def test_close_stops_reactor(self):
        self.assertTrue(self.session.close(1.0))
        self.assertFalse(self.session.running)


class DroppedSessionTests(unittest.TestCase):
    def test_dropping_session_stops_reactor(self):
        device = FakeDevice(device_id="m0000008", size=(8, 8))
        try:
            descriptor = DeviceDescriptor(name="monome 64", type_name="monome 64", kind=DeviceKind.GRID, port=device.port)
            session = Session.from_device(descriptor, "/gone", start_port=20000, timeout_s=2.0)
            reactor = session._reactor
            self.assertTrue(reactor.running)
            del session
            gc.collect()
            self.assertTrue(reactor.join(1.0))
            self.assertFalse(reactor.running)
        finally:
            device.close()


class ConnectTests(unittest.TestCase):
    def test_connect_without_devices(self):
        daemon = FakeDaemon()
        try:
            with self.assertRaises(NoDevicesError):
                Session.connect("/app", daemon.port, start_port=20000, timeout_s=0.5)
        finally:
            daemon.close()

    def test_connect_sets_up_first_device(self):
        device = FakeDevice(device_id="m0000099")
        daemon = FakeDaemon([(0.0, "/serialosc/device", ["monome 128", "monome 128", device.port])])
        try:
            with Session.connect("/app", daemon.port, start_port=20000, timeout_s=2.0) as session:
                self.assertEqual(session.id, "m0000099")
                self.assertEqual(session.kind, DeviceKind.GRID)
                self.assertEqual(session.width, 16)
        finally:
            daemon.close()
            device.close()


if __name__ == "__main__":
    unittest.main()
