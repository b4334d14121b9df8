"""Device enumeration and add/remove notifications through the serialosc daemon."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .codec import decode_packet, encode_message, first_str, is_bundle
from .errors import ProtocolDecodeError
from .models import LOCALHOST, DeviceAdded, DeviceChangeEvent, DeviceDescriptor, DeviceKind, DeviceRemoved
from .transport import SERIALOSC_PORT, START_PORT, UdpEndpoint


DISCOVERY_TIMEOUT_MS = 500

_log = logging.getLogger("serialgrid.discovery")


def _device_from_params(params: list, host: str) -> DeviceDescriptor | None:
    if len(params) != 3:
        return None
    name, type_name, port = params
    if not isinstance(name, str) or not isinstance(type_name, str):
        return None
    if isinstance(port, bool) or not isinstance(port, int):
        return None
    return DeviceDescriptor(
        name=name,
        type_name=type_name,
        kind=DeviceKind.from_type_name(type_name),
        port=port,
        host=host,
    )


def enumerate_devices(
    daemon_port: int = SERIALOSC_PORT,
    *,
    daemon_host: str = LOCALHOST,
    timeout_ms: int = DISCOVERY_TIMEOUT_MS,
    start_port: int = START_PORT,
) -> list[DeviceDescriptor]:
    """Ask serialosc for its device list.

    Collection stops once ``timeout_ms`` passes without a new device announcement.
    Other traffic arriving in the meantime is ignored and does not extend the window.
    Bytes that are not OSC raise ProtocolDecodeError.
    An empty list means nothing answered; deciding whether that is fatal is up to the caller.
    """
    devices: list[DeviceDescriptor] = []
    window_s = timeout_ms / 1000

    with UdpEndpoint.bind_first_free(start_port=start_port) as endpoint:
        local_host, local_port = endpoint.local_address
        endpoint.send_to(encode_message("/serialosc/list", [local_host, local_port]), daemon_port, daemon_host)

        deadline = time.monotonic() + window_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            data = endpoint.recv(remaining)
            if data is None:
                continue

            packet = decode_packet(data)
            if is_bundle(packet):
                _log.warning("unexpected bundle during enumeration", extra={"event": "discovery_bundle"})
                continue
            if packet.address != "/serialosc/device":
                _log.debug("ignoring %s during enumeration", packet.address)
                continue

            device = _device_from_params(packet.params, daemon_host)
            if device is None:
                _log.warning("malformed device announcement: %s", packet.params)
                continue
            devices.append(device)
            deadline = time.monotonic() + window_s

    _log.info("enumerated %d device(s)", len(devices), extra={"event": "discovery_done"})
    return devices


class DeviceWatcher:
    """Long-poll serialosc for device add/remove notifications on a background thread.

    serialosc only notifies once per registration, so the watcher re-registers after
    every add or remove. The loop runs for the lifetime of the process.
    """

    def __init__(
        self,
        callback: Callable[[DeviceChangeEvent], None],
        daemon_port: int = SERIALOSC_PORT,
        *,
        daemon_host: str = LOCALHOST,
        start_port: int = START_PORT,
    ) -> None:
        self.callback = callback
        self.daemon_port = daemon_port
        self.daemon_host = daemon_host
        self._endpoint = UdpEndpoint.bind_first_free(start_port=start_port)
        self._thread: threading.Thread | None = None
        self.needs_renotify = True

    @property
    def port(self) -> int:
        return self._endpoint.port

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> "DeviceWatcher":
        if self._thread is None:
            self._thread = threading.Thread(target=self.run, name="serialgrid-device-watcher", daemon=True)
            self._thread.start()
        return self

    def run(self) -> None:
        while True:
            self.run_once()

    def run_once(self) -> None:
        if self.needs_renotify:
            self._register()
        data = self._endpoint.recv(None)
        if data is not None:
            self._handle(data)

    def _register(self) -> None:
        local_host, local_port = self._endpoint.local_address
        payload = encode_message("/serialosc/notify", [local_host, local_port])
        self._endpoint.send_to(payload, self.daemon_port, self.daemon_host)
        self.needs_renotify = False
        _log.debug("registered for device notifications on port %d", local_port)

    def _handle(self, data: bytes) -> None:
        try:
            packet = decode_packet(data)
        except ProtocolDecodeError as exc:
            _log.warning("could not decode notification: %s", exc, extra={"event": "decode_error"})
            return
        if is_bundle(packet):
            _log.debug("ignoring bundle on notification socket")
            return

        device_id = first_str(packet.params)
        if packet.address == "/serialosc/add" and device_id is not None:
            event: DeviceChangeEvent = DeviceAdded(device_id)
        elif packet.address == "/serialosc/remove" and device_id is not None:
            event = DeviceRemoved(device_id)
        else:
            # Includes the undocumented /sys/connect and /sys/disconnect.
            _log.debug("unexpected message on notification socket: %s", packet.address)
            return

        self.needs_renotify = True
        _log.info("%s %s", packet.address, device_id, extra={"event": "device_change"})
        try:
            self.callback(event)
        except Exception:
            _log.exception("device change callback failed", extra={"event": "device_change_callback_error"})


def watch_device_changes(
    callback: Callable[[DeviceChangeEvent], None],
    daemon_port: int = SERIALOSC_PORT,
    *,
    daemon_host: str = LOCALHOST,
    start_port: int = START_PORT,
) -> DeviceWatcher:
    return DeviceWatcher(callback, daemon_port, daemon_host=daemon_host, start_port=start_port).start()
