"""Background reactor moving frames between the session queues and the device socket."""

from __future__ import annotations

import logging
import queue
import threading

from .errors import ChannelClosed, ChannelFull
from .models import LOCALHOST, TransportStats
from .transport import UdpEndpoint


OUTBOUND_CAPACITY = 16
INBOUND_CAPACITY = 32
IDLE_WAIT_S = 0.002

_log = logging.getLogger("serialgrid.reactor")


class FrameChannel:
    """Bounded FIFO of encoded frames. Never blocks; overflow is the caller's problem."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("Channel capacity must be positive")
        self.capacity = capacity
        self._queue: queue.Queue[bytes] = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __len__(self) -> int:
        return self._queue.qsize()

    def try_put(self, frame: bytes) -> None:
        # Checked and queued under the lock so no frame lands after close() returns.
        with self._lock:
            if self._closed.is_set():
                raise ChannelClosed("channel is closed")
            try:
                self._queue.put_nowait(frame)
            except queue.Full:
                raise ChannelFull(f"channel is full ({self.capacity} frames pending)") from None

    def try_get(self) -> bytes | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        with self._lock:
            self._closed.set()


class Reactor:
    """Drains the outbound channel to the device and the socket into the inbound channel.

    Exits only once the outbound channel is closed and empty, then releases the socket.
    """

    def __init__(
        self,
        endpoint: UdpEndpoint,
        device_port: int,
        outbound: FrameChannel,
        inbound: FrameChannel,
        stats: TransportStats | None = None,
        device_host: str = LOCALHOST,
        idle_s: float = IDLE_WAIT_S,
    ) -> None:
        self._endpoint = endpoint
        self.device_port = device_port
        self.device_host = device_host
        self._outbound = outbound
        self._inbound = inbound
        self.stats = stats or TransportStats()
        self.idle_s = idle_s
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("Reactor already started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"serialgrid-reactor-{self.device_port}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def join(self, timeout_s: float | None = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout_s)
        return not self._thread.is_alive()

    def shutdown(self, timeout_s: float | None = None) -> bool:
        """Close the outbound channel and wait for the loop to flush and exit."""
        self._outbound.close()
        if self._thread is None:
            self._endpoint.close()
            return True
        return self.join(timeout_s)

    def run(self) -> None:
        _log.debug("reactor started for port %d", self.device_port, extra={"event": "reactor_start"})
        try:
            while self.run_once():
                self._endpoint.wait_readable(self.idle_s)
        except OSError:
            _log.exception("reactor socket error", extra={"event": "reactor_error"})
        finally:
            self._endpoint.close()
            _log.debug("reactor stopped for port %d", self.device_port, extra={"event": "reactor_stop"})

    def run_once(self) -> bool:
        """One reactor iteration. Returns False when the reactor should exit."""
        if not self._drain_outbound():
            return False
        self._drain_inbound()
        return True

    def _drain_outbound(self) -> bool:
        while True:
            # Read the flag before the queue so a frame put right before close() is never lost.
            closed = self._outbound.closed
            frame = self._outbound.try_get()
            if frame is None:
                return not closed
            try:
                self._endpoint.send_to(frame, self.device_port, self.device_host)
                self.stats.frames_sent += 1
            except OSError as exc:
                self.stats.send_errors += 1
                _log.error("send to device failed: %s", exc, extra={"event": "send_error"})

    def _drain_inbound(self) -> None:
        while True:
            data = self._endpoint.try_recv()
            if data is None:
                return
            self.stats.frames_received += 1
            try:
                self._inbound.try_put(data)
            except ChannelFull:
                self.stats.inbound_dropped += 1
                _log.warning(
                    "inbound queue full, dropping %d byte frame",
                    len(data),
                    extra={"event": "inbound_dropped"},
                )
