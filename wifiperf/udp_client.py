"""UDP client that sends a greeting to a server on a fixed period."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Iterator, Optional, Tuple

log = logging.getLogger("udp_client")
timer_log = logging.getLogger("TIMER")

TIMER_PERIOD_S = 120
RX_BUFFER_SIZE = 256
GREETING = "Hello from NORA-W4"


class UdpMessageClient:
    """Connected UDP socket for exchanging short text messages with a server."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def local_address(self) -> Tuple[str, int]:
        if self._sock is None:
            raise ConnectionError("Socket not connected")
        return self._sock.getsockname()

    def connect(self) -> None:
        """Create the socket and fix its peer to the server."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        log.info("Socket created, connecting to %s:%d", self.host, self.port)
        try:
            sock.connect((self.host, self.port))
        except OSError as exc:
            log.error("Socket unable to connect: errno %s", exc.errno)
            sock.close()
            raise ConnectionError(f"unable to connect to {self.host}:{self.port}") from exc
        log.info("Successfully connected")
        self._sock = sock

    def send(self, message: str) -> int:
        """Send ``message`` to the server; return the number of bytes sent."""
        if self._sock is None:
            log.error("Socket not connected")
            raise ConnectionError("Socket not connected")
        try:
            sent = self._sock.send(message.encode())
        except OSError as exc:
            log.error("Error occurred during sending: errno %s", exc.errno)
            raise
        log.info("Message was sent successfully!")
        return sent

    def receive(self) -> Iterator[Tuple[bytes, Tuple[str, int]]]:
        """Yield ``(data, sender)`` pairs until receiving fails, then close the socket."""
        sock = self._sock
        if sock is None:
            raise ConnectionError("Socket not connected")
        try:
            while True:
                try:
                    data, sender = sock.recvfrom(RX_BUFFER_SIZE - 1)
                except OSError:
                    log.error("Receive failed")
                    break
                log.info(
                    "Received message from %s:%d - %s",
                    sender[0],
                    sender[1],
                    data.decode(errors="replace"),
                )
                yield data, sender
        finally:
            self.close()

    def close(self) -> None:
        """Close the socket, if open."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()


class PeriodicSender:
    """Sends a message through a client once every period from a background thread."""

    def __init__(
        self,
        client: UdpMessageClient,
        message: str = GREETING,
        period: float = TIMER_PERIOD_S,
    ) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.client = client
        self.message = message
        self.period = period
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start sending; the first message goes out after one period."""
        if self.running:
            raise RuntimeError("sender already started")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="Periodic TIMER", daemon=True)
        self._thread.start()
        timer_log.info("Started timers, period: %s s", self.period)

    def stop(self) -> None:
        """Stop sending and wait for the background thread to end."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join()

    def _run(self) -> None:
        while not self._stop.wait(self.period):
            try:
                self.client.send(self.message)
            except OSError:
                break