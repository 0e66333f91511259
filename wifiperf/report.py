"""Periodic bandwidth reporting for a traffic run."""

from __future__ import annotations

import threading
import time as _time
from typing import Callable

from wifiperf.config import OutputFormat

HEADER = "\nInterval       Bandwidth"


def bandwidth(nbytes: int, interval: float, fmt: OutputFormat) -> float:
    """Bandwidth of ``nbytes`` moved in ``interval`` seconds, in Kbit/s or Mbit/s."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    kbits = nbytes / 1024.0 * 8
    if OutputFormat(fmt) is OutputFormat.KBITS_PER_SEC:
        return kbits / interval
    return kbits / 1024.0 / interval


def format_line(start: int, end: int, value: float, unit: str) -> str:
    """One report line, e.g. `` 0.0- 3.0 sec  1.50 Mbits/sec``."""
    return f"{start:2d}.0-{end:2d}.0 sec  {value:.2f} {unit}bits/sec"


class BandwidthReporter:
    """Accumulates transferred bytes and prints one line per interval plus a summary."""

    def __init__(
        self,
        interval: int,
        time: int,
        fmt: OutputFormat = OutputFormat.MBITS_PER_SEC,
        out: Callable[[str], None] = print,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.time = time
        self.format = OutputFormat(fmt)
        self._out = out
        self._lock = threading.Lock()
        self._pending = 0
        self.elapsed = 0
        self.average = 0.0
        self._count = 0

    @property
    def pending(self) -> int:
        """Bytes recorded since the last interval report."""
        with self._lock:
            return self._pending

    def record(self, nbytes: int) -> None:
        """Add bytes moved since the last report."""
        with self._lock:
            self._pending += nbytes

    def report_interval(self) -> bool:
        """Report the interval just ended; return True once the run time is covered."""
        with self._lock:
            nbytes, self._pending = self._pending, 0
        unit = self.format.unit
        value = bandwidth(nbytes, self.interval, self.format)
        self._out(format_line(self.elapsed, self.elapsed + self.interval, value, unit))
        self.elapsed += self.interval
        self._count += 1
        k = self._count
        self.average = self.average * (k - 1) / k + value / k
        if self.elapsed >= self.time:
            self._out(format_line(0, self.time, self.average, unit))
            return True
        return False

    def run(
        self,
        finished: threading.Event,
        sleep: Callable[[float], None] = _time.sleep,
    ) -> None:
        """Report every interval until the run time passes or ``finished`` is set."""
        self._out(HEADER)
        while not finished.is_set():
            sleep(self.interval)
            if self.report_interval():
                break
        finished.set()