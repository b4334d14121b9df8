"""UDP endpoint abstraction for talking to serialosc and its devices."""

from __future__ import annotations

import logging
import select
import socket

from .errors import PortExhaustedError
from .models import LOCALHOST


SERIALOSC_PORT = 12002
START_PORT = 10_000
MAX_PORT = 65_535
RECV_BUFFER_SIZE = 1024

_log = logging.getLogger("serialgrid.transport")


class UdpEndpoint:
    """Thin wrapper over a bound datagram socket with explicit blocking modes."""

    def __init__(self, sock: socket.socket) -> None:
        self._socket: socket.socket | None = sock

    @classmethod
    def bind_first_free(
        cls,
        host: str = LOCALHOST,
        start_port: int = START_PORT,
        max_port: int = MAX_PORT,
    ) -> "UdpEndpoint":
        """Bind to the first port at or above ``start_port`` that is not in use."""
        for port in range(start_port, max_port + 1):
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((host, port))
            except OSError as exc:
                sock.close()
                _log.debug("bind %s:%d failed: %s", host, port, exc)
                continue
            _log.debug("bound %s:%d", host, port, extra={"event": "socket_bound"})
            return cls(sock)
        raise PortExhaustedError(start_port, max_port)

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    @property
    def local_address(self) -> tuple[str, int]:
        host, port = self._require().getsockname()[:2]
        return str(host), int(port)

    @property
    def host(self) -> str:
        return self.local_address[0]

    @property
    def port(self) -> int:
        return self.local_address[1]

    def _require(self) -> socket.socket:
        if self._socket is None:
            raise RuntimeError("UDP endpoint is closed")
        return self._socket

    def send_to(self, payload: bytes, port: int, host: str = LOCALHOST) -> int:
        return int(self._require().sendto(payload, (host, port)))

    def try_recv(self, max_len: int = RECV_BUFFER_SIZE) -> bytes | None:
        """Return one pending datagram, or None immediately if nothing is queued."""
        sock = self._require()
        sock.settimeout(0.0)
        try:
            data, _addr = sock.recvfrom(max_len)
        except BlockingIOError:
            return None
        except (ConnectionResetError, ConnectionRefusedError):
            # Windows reports ICMP port-unreachable from an earlier send here.
            return None
        return bytes(data)

    def recv(self, timeout_s: float | None = None, max_len: int = RECV_BUFFER_SIZE) -> bytes | None:
        """Block for one datagram. None means the timeout elapsed first."""
        sock = self._require()
        if timeout_s is not None and timeout_s <= 0:
            return self.try_recv(max_len)
        sock.settimeout(timeout_s)
        try:
            data, _addr = sock.recvfrom(max_len)
        except socket.timeout:
            return None
        except (ConnectionResetError, ConnectionRefusedError):
            return None
        return bytes(data)

    def wait_readable(self, timeout_s: float) -> bool:
        readable, _, _ = select.select([self._require()], [], [], max(timeout_s, 0.0))
        return bool(readable)

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def __enter__(self) -> "UdpEndpoint":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
