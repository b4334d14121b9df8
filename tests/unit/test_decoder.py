import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "protocol"))

from osc_peers import build, build_bundle
from serialgrid_protocol.decoder import decode
from serialgrid_protocol.errors import ProtocolViolationError
from serialgrid_protocol.models import EncoderDelta, EncoderKey, GridKey, KeyDirection, Tilt


class DecoderTests(unittest.TestCase):
    def test_grid_key_directions(self):
        self.assertEqual(decode(build("/app/grid/key", [3, 4, 1]), "/app"), GridKey(3, 4, KeyDirection.DOWN))
        self.assertEqual(decode(build("/app/grid/key", [3, 4, 0]), "/app"), GridKey(3, 4, KeyDirection.UP))

    def test_tilt(self):
        self.assertEqual(decode(build("/app/tilt", [0, 120, 130, 140]), "/app"), Tilt(0, 120, 130, 140))

    def test_encoder_events(self):
        self.assertEqual(decode(build("/app/enc/delta", [2, -3]), "/app"), EncoderDelta(2, -3))
        self.assertEqual(decode(build("/app/enc/key", [1, 1]), "/app"), EncoderKey(1, KeyDirection.DOWN))

    def test_wrong_arity_is_dropped(self):
        self.assertIsNone(decode(build("/app/grid/key", [3, 4]), "/app"))
        self.assertIsNone(decode(build("/app/enc/delta", [1, "x"]), "/app"))

    def test_unhandled_or_foreign_addresses(self):
        self.assertIsNone(decode(build("/app/grid/unknown", [1]), "/app"))
        self.assertIsNone(decode(build("/other/grid/key", [1, 1, 1]), "/app"))
        self.assertIsNone(decode(build("/serialosc/add", ["m1"]), "/app"))
        self.assertIsNone(decode(build("/sys/rotation", [90]), "/app"))

    def test_prefix_must_match_exactly(self):
        self.assertIsNone(decode(build("/application/grid/key", [0, 0, 1]), "/app"))

    def test_bundle_is_a_protocol_violation(self):
        with self.assertRaises(ProtocolViolationError):
            decode(build_bundle("/app/grid/key", [0, 0, 1]), "/app")

    def test_garbage_is_skipped(self):
        self.assertIsNone(decode(b"not osc at all", "/app"))
        self.assertIsNone(decode(b"/\xff\xfe\x00", "/app"))

    def test_prefixes_that_start_like_reserved_namespaces(self):
        self.assertEqual(decode(build("/system/grid/key", [0, 0, 1]), "/system"), GridKey(0, 0, KeyDirection.DOWN))
        self.assertEqual(decode(build("/sysex/enc/delta", [1, 4]), "/sysex"), EncoderDelta(1, 4))
        self.assertEqual(decode(build("/serialosctl/tilt", [0, 1, 2, 3]), "/serialosctl"), Tilt(0, 1, 2, 3))

    def test_reserved_namespaces_are_still_dropped(self):
        self.assertIsNone(decode(build("/sys", [1]), "/sys"))
        self.assertIsNone(decode(build("/sys/grid/key", [0, 0, 1]), "/sys"))
        self.assertIsNone(decode(build("/serialosc/device", ["a", "b", 1]), "/serialosc"))


if __name__ == "__main__":
    unittest.main()
