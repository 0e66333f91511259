"""Traffic engine: runs one TCP/UDP client or server session at a time."""

from __future__ import annotations

import errno
import logging
import socket
import threading
import time as _time
from typing import Callable, Optional

from wifiperf.config import (
    SOCKET_RX_TIMEOUT,
    SOCKET_TCP_TX_TIMEOUT,
    IperfConfig,
    IperfStatus,
    IpType,
    TrafficType,
    TransportType,
)
from wifiperf.report import BandwidthReporter

log = logging.getLogger("iperf")

HookFunc = Callable[[TrafficType, IperfStatus], None]

_STOP_ATTEMPTS = 10
_STOP_POLL = 0.4
_QUIET_SEND_ERRORS = (errno.ENOMEM, errno.ENOBUFS)


class IperfError(Exception):
    """A traffic run could not be started or set up."""


def send_period_us(buffer_len: int, bw_lim: int) -> int:
    """Microseconds between sends of ``buffer_len`` bytes at ``bw_lim`` Mbit/s; -1 if unlimited."""
    if bw_lim > 0:
        return buffer_len * 8 // bw_lim
    return -1


def _close(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RD)
    except OSError:
        pass
    sock.close()


class Iperf:
    """Runs bandwidth tests in a background thread, one at a time."""

    def __init__(
        self,
        out: Callable[[str], None] = print,
        rx_timeout: float = SOCKET_RX_TIMEOUT,
        tx_timeout: float = SOCKET_TCP_TX_TIMEOUT,
    ) -> None:
        self._out = out
        self.rx_timeout = rx_timeout
        self.tx_timeout = tx_timeout
        self._hook: Optional[HookFunc] = None
        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._report_thread: Optional[threading.Thread] = None
        self._listen_socket: Optional[socket.socket] = None
        self._config: Optional[IperfConfig] = None
        self._reporter: Optional[BandwidthReporter] = None
        self._buffer: Optional[bytearray] = None
        self.last_error: Optional[IperfError] = None

    # -- public interface -------------------------------------------------

    def register_hook(self, func: Optional[HookFunc]) -> None:
        """Set the function told when a session starts and stops; None removes it."""
        self._hook = func

    def is_running(self) -> bool:
        return not self._idle.is_set()

    def start(self, config: Optional[IperfConfig]) -> None:
        """Start a traffic run in the background."""
        if config is None:
            raise IperfError("no configuration given")
        with self._lock:
            if self.is_running():
                log.warning("iperf is running")
                raise IperfError("iperf is running")
            reporter = BandwidthReporter(config.interval, config.time, config.format, self._out)
            self._config = config
            self._reporter = reporter
            self._finished = threading.Event()
            self._report_thread = None
            self._buffer = bytearray(config.buffer_length())
            self.last_error = None
            self._idle.clear()
            thread = threading.Thread(target=self._traffic, name="iperf_traffic", daemon=True)
            try:
                thread.start()
            except RuntimeError as exc:
                log.error("create task iperf_traffic failed")
                self._buffer = None
                self._idle.set()
                raise IperfError("create task iperf_traffic failed") from exc
            self._thread = thread

    def stop(self) -> None:
        """Ask the current run to end and wait a while for it to do so."""
        listener = self._listen_socket
        if listener is not None:
            self._listen_socket = None
            _close(listener)
            log.debug("TCP listen socket is closed.")
        if self.is_running():
            self._finished.set()
        for _ in range(_STOP_ATTEMPTS):
            if not self.is_running():
                break
            log.info("wait current iperf to stop ...")
            self._idle.wait(_STOP_POLL)
        if self.is_running():
            log.error("DONE.IPERF_STOP,FAIL.")
        else:
            log.info("DONE.IPERF_STOP,OK.")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current run to end; return True if nothing is running."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return not self.is_running()

    # -- session plumbing -------------------------------------------------

    def _call_hook(self, kind: TrafficType, status: IperfStatus) -> None:
        if self._hook is not None:
            self._hook(kind, status)

    def _traffic(self) -> None:
        cfg = self._config
        assert cfg is not None
        kind = cfg.traffic_type()
        openers = {
            TrafficType.UDP_CLIENT: self._open_udp_client,
            TrafficType.UDP_SERVER: self._open_udp_server,
            TrafficType.TCP_CLIENT: self._open_tcp_client,
            TrafficType.TCP_SERVER: self._open_tcp_server,
        }
        try:
            self._session(kind, openers[kind])
        finally:
            report = self._report_thread
            if report is not None:
                report.join(timeout=1.0)
            self._buffer = None
            log.info("iperf exit")
            self._idle.set()

    def _session(self, kind: TrafficType, opener) -> None:
        sockets: list[socket.socket] = []
        try:
            try:
                action = opener(sockets)
            except OSError as exc:
                log.error("%s setup failed: %s", kind.name, exc)
                self.last_error = IperfError(f"{kind.name} setup failed: {exc}")
                return
            self._call_hook(kind, IperfStatus.STARTED)
            action()
        finally:
            for sock in reversed(sockets):
                _close(sock)
            if self._listen_socket is not None and self._listen_socket in sockets:
                self._listen_socket = None
            log.info("%s socket is closed.", kind.name)
            self._call_hook(kind, IperfStatus.STOPPED)
            self._finished.set()

    def _family(self) -> int:
        cfg = self._config
        assert cfg is not None
        return socket.AF_INET6 if cfg.ip_type is IpType.IPV6 else socket.AF_INET

    def _address(self, host: str, port: int) -> tuple:
        if self._family() == socket.AF_INET6:
            return (host, port, 0, 0)
        return (host, port)

    def _open_tcp_server(self, sockets: list[socket.socket]):
        cfg = self._config
        assert cfg is not None
        family = self._family()
        listener = socket.socket(family, socket.SOCK_STREAM)
        sockets.append(listener)
        self._listen_socket = listener
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if family == socket.AF_INET6:
            listener.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            listener.bind(self._address("::", cfg.sport))
            listener.listen(1)
        else:
            listener.bind(self._address(cfg.source, cfg.sport))
            listener.listen(5)
        log.info("Socket created")
        listener.settimeout(self.rx_timeout)
        client, remote = listener.accept()
        sockets.append(client)
        log.info("accept: %s,%d", remote[0], remote[1])
        client.settimeout(self.rx_timeout)
        return lambda: self._recv_loop(client, TransportType.TCP)

    def _open_tcp_client(self, sockets: list[socket.socket]):
        cfg = self._config
        assert cfg is not None
        client = socket.socket(self._family(), socket.SOCK_STREAM)
        sockets.append(client)
        client.connect(self._address(cfg.destination or "", cfg.dport))
        log.info("Successfully connected")
        client.settimeout(self.tx_timeout)
        return lambda: self._send_loop(client.send, TransportType.TCP)

    def _open_udp_server(self, sockets: list[socket.socket]):
        cfg = self._config
        assert cfg is not None
        family = self._family()
        listener = socket.socket(family, socket.SOCK_DGRAM)
        sockets.append(listener)
        log.info("Socket created")
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        host = "::" if family == socket.AF_INET6 else cfg.source
        listener.bind(self._address(host, cfg.sport))
        log.info("Socket bound, port %d", cfg.sport)
        listener.settimeout(self.rx_timeout)
        return lambda: self._recv_loop(listener, TransportType.UDP)

    def _open_udp_client(self, sockets: list[socket.socket]):
        cfg = self._config
        assert cfg is not None
        dest = self._address(cfg.destination or "", cfg.dport)
        client = socket.socket(self._family(), socket.SOCK_DGRAM)
        sockets.append(client)
        log.info("Socket created, sending to %s:%d", cfg.destination, cfg.dport)
        client.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return lambda: self._send_loop(lambda data: client.sendto(data, dest), TransportType.UDP)

    # -- data loops -------------------------------------------------------

    def _start_report(self) -> None:
        reporter = self._reporter
        assert reporter is not None
        thread = threading.Thread(
            target=reporter.run,
            args=(self._finished, self._finished.wait),
            name="iperf_report",
            daemon=True,
        )
        thread.start()
        self._report_thread = thread

    def _recv_loop(self, sock: socket.socket, transport: TransportType) -> None:
        buffer = self._buffer
        reporter = self._reporter
        assert buffer is not None and reporter is not None
        label = "tcp server recv" if transport is TransportType.TCP else "udp server recv"
        started = False
        while not self._finished.is_set():
            try:
                received = sock.recv_into(buffer)
            except OSError as exc:
                log.warning("%s error, error code: %s, reason: %s", label, exc.errno, exc)
                self._finished.set()
                break
            if received == 0 and transport is TransportType.TCP:
                log.info("%s: peer closed the connection", label)
                self._finished.set()
                break
            if not started:
                self._start_report()
                started = True
            reporter.record(received)

    def _send_loop(self, send: Callable[[bytearray], int], transport: TransportType) -> None:
        cfg = self._config
        buffer = self._buffer
        reporter = self._reporter
        assert cfg is not None and buffer is not None and reporter is not None
        label = "tcp client send" if transport is TransportType.TCP else "udp client send"
        want = len(buffer)
        id_len = min(4, want)
        self._start_report()
        period = send_period_us(want, cfg.bw_lim)
        packet = 0
        actual = 0
        delay = 0
        prev = 0
        while not self._finished.is_set():
            if period > 0:
                now = _time.monotonic_ns() // 1000
                if actual > 0:
                    # Correct the next delay by how far the last loop was off the ideal period.
                    delay += period + (prev - now)
                else:
                    # A failed send means the link is saturated: start timing afresh.
                    delay = 0
                prev = now
            buffer[:id_len] = (packet & 0xFFFFFFFF).to_bytes(4, "big")[:id_len]
            packet += 1
            error: Optional[OSError] = None
            try:
                actual = send(buffer)
            except OSError as exc:
                actual = -1
                error = exc
            if actual != want:
                code = error.errno if error is not None else None
                if transport is TransportType.UDP:
                    if code not in _QUIET_SEND_ERRORS:
                        log.warning("%s error, error code: %s, reason: %s", label, code, error)
                else:
                    log.warning("%s error, error code: %s, reason: %s", label, code, error)
                    break
            else:
                reporter.record(actual)
            if delay > 0:
                _time.sleep(delay / 1_000_000)