"""TCP client that sends a small or a large payload on a fixed schedule."""

from __future__ import annotations

import logging
import socket
import time as _time
from typing import Iterator, Optional

log = logging.getLogger("TCP Client")
timer_log = logging.getLogger("TIMER")

TIMER_PERIOD_S = 30
RX_BUFFER_SIZE = 4000
LARGE_PAYLOAD_FROM = 10

PAYLOAD_300B = (
    "****** 300 Bytes message from the device to TCP sever - u-blox! ***** u-blox"
    + " u-blox" * 32
)

PAYLOAD_2KB = (
    "****** 2 KBytes message from the device to TCP sever - u-blox! ***** u-blox u-blox"
    + " u-blox" * (17 * 16)
    + " u-blox u-blox"
)


class PayloadSchedule:
    """Counts timer ticks and picks which payload the next tick sends.

    Ticks 1 to 9 select the small payload; every tenth tick selects the large one,
    after which the count starts again at 1.
    """

    def __init__(self, period: float = TIMER_PERIOD_S) -> None:
        self.period = period
        self.selected = 0

    @property
    def is_large(self) -> bool:
        return self.selected >= LARGE_PAYLOAD_FROM

    def advance(self) -> int:
        """Move to the next tick and return its payload selector."""
        if self.selected < LARGE_PAYLOAD_FROM:
            self.selected += 1
        else:
            self.selected = 1
        timer_log.info("Selected_payload: %d", self.selected)
        return self.selected


class PayloadClient:
    """TCP connection to a server that receives the scheduled payloads."""

    def __init__(
        self,
        host: str,
        port: int,
        family: int = socket.AF_INET,
        max_attempts: Optional[int] = None,
        retry_delay: float = 0.0,
    ) -> None:
        self.host = host
        self.port = port
        self.family = family
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sock: Optional[socket.socket] = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """Connect to the server, retrying until it succeeds or attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            sock = socket.socket(self.family, socket.SOCK_STREAM)
            log.info("Socket created, connecting to %s:%d", self.host, self.port)
            try:
                sock.connect((self.host, self.port))
            except OSError as exc:
                sock.close()
                log.error("Socket unable to connect: errno %s", exc.errno)
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise ConnectionError(
                        f"unable to connect to {self.host}:{self.port}"
                    ) from exc
                if self.retry_delay:
                    _time.sleep(self.retry_delay)
                continue
            log.info("Successfully connected")
            self._sock = sock
            return

    @staticmethod
    def _payload_for(selected_payload: int) -> bytes:
        if selected_payload < LARGE_PAYLOAD_FROM:
            return PAYLOAD_300B.encode()
        # The large payload goes out cut to the small payload's length.
        return PAYLOAD_2KB.encode()[: len(PAYLOAD_300B)]

    def send(self, selected_payload: int) -> int:
        """Send the payload for ``selected_payload``, reconnecting on failure; return bytes sent."""
        payload = self._payload_for(selected_payload)
        while True:
            if self._sock is None:
                self.connect()
            assert self._sock is not None
            try:
                sent = self._sock.send(payload)
            except OSError as exc:
                log.error("Error occurred during sending: errno %s", exc.errno)
                self.disconnect()
                self.connect()
                continue
            if selected_payload < LARGE_PAYLOAD_FROM:
                log.info("300 Bytes payload was sent successfully!")
            else:
                log.info("2k Bytes payload  was sent successfully!")
            return sent

    def disconnect(self) -> None:
        """Shut down and close the connection, if any."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        log.error("Shutting down socket and restarting...")
        try:
            sock.shutdown(socket.SHUT_RD)
        except OSError:
            pass
        sock.close()

    def receive(self) -> Iterator[bytes]:
        """Yield data from the server until the connection fails or closes, then disconnect."""
        sock = self._sock
        if sock is None:
            raise ConnectionError("Socket not connected")
        try:
            while True:
                try:
                    data = sock.recv(RX_BUFFER_SIZE - 1)
                except OSError as exc:
                    log.error("recv failed: errno %s", exc.errno)
                    break
                if not data:
                    break
                log.info("Received %d bytes from %s:", len(data), self.host)
                log.info("%s", data.decode(errors="replace"))
                yield data
        finally:
            self.disconnect()