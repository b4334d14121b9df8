"""CLI entrypoints for device discovery, diagnostics, and grid/arc demos."""

from __future__ import annotations

import argparse
import json
import random
import time
from dataclasses import asdict

from serialgrid_core import AppConfig, build_doctor_payload, load_config
from serialgrid_core.logging_setup import configure_logging, get_logger, install_crash_hooks
from serialgrid_protocol import (
    DeviceChangeEvent,
    DeviceDescriptor,
    DeviceKind,
    GridKey,
    SerialGridError,
    Session,
    enumerate_devices,
    watch_device_changes,
)
from serialgrid_protocol.encoder import MAX_LEVEL, QUAD_LEDS, QUAD_SIZE, extract_quadrant, quadrant_origins
from serialgrid_renderer import PATTERNS, build_test_pattern, changed_quadrants, image_to_levels


DEMO_FRAME_S = 0.033
CYCLE_HOLD_S = 1.0
ARC_RINGS = 4


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str), flush=True)


def _print_line(data: object) -> None:
    print(json.dumps(data, sort_keys=True, default=str), flush=True)


def _daemon(args: argparse.Namespace, cfg: AppConfig) -> tuple[str, int]:
    return (args.daemon_host or cfg.daemon.host, args.daemon_port or cfg.daemon.port)


def _discover(args: argparse.Namespace, cfg: AppConfig) -> list[DeviceDescriptor]:
    host, port = _daemon(args, cfg)
    return enumerate_devices(port, daemon_host=host, start_port=cfg.session.start_port)


def _pick_device(args: argparse.Namespace, cfg: AppConfig) -> DeviceDescriptor | None:
    devices = _discover(args, cfg)
    if not devices:
        _print_json({"success": False, "error": "No devices detected"})
        return None
    if args.device is None:
        return devices[0]
    for idx, device in enumerate(devices):
        if args.device in (str(idx), device.name):
            return device
    _print_json({"success": False, "error": f"No device matches {args.device!r}", "devices": [d.name for d in devices]})
    return None


def _open_session(args: argparse.Namespace, cfg: AppConfig) -> Session | None:
    device = _pick_device(args, cfg)
    if device is None:
        return None
    timeout_s = args.timeout if args.timeout is not None else cfg.session.handshake_timeout_s
    return Session.from_device(
        device,
        args.prefix or cfg.session.prefix,
        start_port=cfg.session.start_port,
        timeout_s=timeout_s,
    )


def _descriptor_json(session: Session) -> dict[str, object]:
    payload = asdict(session.descriptor)
    payload.update({"name": session.name, "type": session.type_name, "kind": session.kind.value, "device_port": session.device_port})
    return payload


def cmd_list_devices(args: argparse.Namespace) -> int:
    cfg = load_config()
    _print_json(
        [
            {
                "name": d.name,
                "type": d.type_name,
                "kind": d.kind.value,
                "port": d.port,
                "host": d.host,
            }
            for d in _discover(args, cfg)
        ]
    )
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    cfg = load_config()
    host, port = _daemon(args, cfg)

    def _on_change(event: DeviceChangeEvent) -> None:
        _print_line({"event": type(event).__name__, "id": event.id, "ts": time.time()})

    watcher = watch_device_changes(_on_change, port, daemon_host=host, start_port=cfg.session.start_port)
    _print_line({"watching": f"{host}:{port}", "local_port": watcher.port})
    deadline = None if args.seconds is None else time.monotonic() + args.seconds
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.1)
    except KeyboardInterrupt:
        pass
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    cfg = load_config()
    session = _open_session(args, cfg)
    if session is None:
        return 2
    with session:
        _print_json({"success": True, "session": _descriptor_json(session)})
    return 0


def _show_levels(session: Session, levels: list[int], previous: list[int] | None) -> int:
    """Send only the quadrants that changed since ``previous``; returns how many were sent."""
    origins = changed_quadrants(previous, levels, session.width, session.height)
    for x, y in origins:
        session.map(x, y, extract_quadrant(levels, session.width, x, y))
    return len(origins)


def cmd_pattern(args: argparse.Namespace) -> int:
    cfg = load_config()
    session = _open_session(args, cfg)
    if session is None:
        return 2
    with session:
        if session.kind is not DeviceKind.GRID:
            _print_json({"success": False, "error": f"{session.name} is not a grid"})
            return 2
        names = list(PATTERNS) if args.cycle else [args.pattern]
        previous = None
        sent: dict[str, int] = {}
        for idx, name in enumerate(names):
            if idx:
                time.sleep(CYCLE_HOLD_S)
            levels = image_to_levels(build_test_pattern(name, session.width, session.height))
            sent[name] = _show_levels(session, levels, previous)
            previous = levels
        _print_json(
            {
                "success": True,
                "quadrants_sent": sent,
                "session": _descriptor_json(session),
                "stats": asdict(session.stats),
            }
        )
    return 0


def _random_quadrant(session: Session, x: int, y: int) -> None:
    if random.random() < 0.5:
        session.map(x, y, [random.randint(0, MAX_LEVEL) for _ in range(QUAD_LEDS)])
    else:
        session.map(x, y, [random.random() < 0.5 for _ in range(QUAD_LEDS)])


def _run_grid_demo(session: Session, deadline: float | None) -> int:
    origins = quadrant_origins(session.width, session.height)
    frames = 0
    while deadline is None or time.monotonic() < deadline:
        for x, y in origins:
            _random_quadrant(session, x, y)
        frames += 1
        event = session.poll()
        while event is not None:
            if isinstance(event, GridKey):
                _print_line({"key": [event.x, event.y], "direction": event.direction.value})
            event = session.poll()
        time.sleep(DEMO_FRAME_S)
    return frames


def _run_arc_demo(session: Session, deadline: float | None) -> int:
    frames = 0
    while deadline is None or time.monotonic() < deadline:
        for n in range(ARC_RINGS):
            session.ring_map(n, [random.randint(0, MAX_LEVEL) for _ in range(64)])
        frames += 1
        event = session.poll()
        while event is not None:
            _print_line({"event": type(event).__name__, **asdict(event)})
            event = session.poll()
        time.sleep(DEMO_FRAME_S)
    return frames


def cmd_demo(args: argparse.Namespace) -> int:
    cfg = load_config()
    session = _open_session(args, cfg)
    if session is None:
        return 2

    deadline = None if args.seconds is None else time.monotonic() + args.seconds
    with session:
        if session.kind is not DeviceKind.ARC and (session.width % QUAD_SIZE or session.height % QUAD_SIZE):
            _print_json({"success": False, "error": f"{session.name} is {session.width}x{session.height}, not whole 8x8 quadrants"})
            return 2
        _print_json(_descriptor_json(session))
        try:
            if session.kind is DeviceKind.ARC:
                frames = _run_arc_demo(session, deadline)
            else:
                frames = _run_grid_demo(session, deadline)
        except KeyboardInterrupt:
            frames = None
        if session.kind is DeviceKind.ARC:
            for n in range(ARC_RINGS):
                session.ring_all(n, 0)
        else:
            session.all(False)
        _print_json({"frames": frames, "stats": asdict(session.stats)})
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = load_config()
    _print_json(build_doctor_payload(cfg))
    return 0


def _add_daemon_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--daemon-host", default=None, help="serialosc host (default from config)")
    parser.add_argument("--daemon-port", type=int, default=None, help="serialosc port (default from config)")


def _add_session_options(parser: argparse.ArgumentParser) -> None:
    _add_daemon_options(parser)
    parser.add_argument("--device", default=None, help="Device index or name (default: first found)")
    parser.add_argument("--prefix", default=None, help="OSC prefix to claim (default from config)")
    parser.add_argument("--timeout", type=float, default=None, help="Handshake timeout in seconds")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="serialgrid", description="serialosc grid and arc tools")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list-devices", help="List devices known to serialosc")
    _add_daemon_options(list_cmd)
    list_cmd.set_defaults(func=cmd_list_devices)

    watch_cmd = sub.add_parser("watch", help="Print device add/remove notifications")
    _add_daemon_options(watch_cmd)
    watch_cmd.add_argument("--seconds", type=float, default=None, help="Stop after this long (default: until Ctrl+C)")
    watch_cmd.set_defaults(func=cmd_watch)

    info_cmd = sub.add_parser("info", help="Set up a device and print what it reports")
    _add_session_options(info_cmd)
    info_cmd.set_defaults(func=cmd_info)

    pat_cmd = sub.add_parser("pattern", help="Show a test pattern on a grid")
    _add_session_options(pat_cmd)
    pat_cmd.add_argument("--pattern", default="quadrants", choices=list(PATTERNS))
    pat_cmd.add_argument("--cycle", action="store_true", help="Step through every pattern, sending only changed quadrants")
    pat_cmd.set_defaults(func=cmd_pattern)

    demo_cmd = sub.add_parser("demo", help="Animate random quadrants and echo key presses")
    _add_session_options(demo_cmd)
    demo_cmd.add_argument("--seconds", type=float, default=None, help="Stop after this long (default: until Ctrl+C)")
    demo_cmd.set_defaults(func=cmd_demo)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and detected devices")
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    cfg = load_config()
    configure_logging(keep_files=cfg.diagnostics.keep_log_files, console=False)
    install_crash_hooks()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except SerialGridError as exc:
        get_logger().error("%s failed: %s", args.command, exc, extra={"event": "cli_error"})
        _print_json({"success": False, "error": str(exc), "error_type": type(exc).__name__})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
