"""Traffic configuration and the enumerations shared by the iperf engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass

DEFAULT_PORT = 5001
DEFAULT_INTERVAL = 3
DEFAULT_TIME = 30
NO_BW_LIMIT = -1

DEFAULT_IPV4_UDP_TX_LEN = 1470
DEFAULT_IPV6_UDP_TX_LEN = 1450
DEFAULT_UDP_RX_LEN = 16 << 10
DEFAULT_TCP_TX_LEN = 16 << 10
DEFAULT_TCP_RX_LEN = 16 << 10

SOCKET_RX_TIMEOUT = 10
SOCKET_TCP_TX_TIMEOUT = 10
SOCKET_ACCEPT_TIMEOUT = 5

_UINT16_MAX = 0xFFFF


class IperfFlag(enum.IntFlag):
    """Role and transport bits of a traffic run."""

    CLIENT = 1
    SERVER = 1 << 1
    TCP = 1 << 2
    UDP = 1 << 3


class IpType(enum.IntEnum):
    """Address family used for the run."""

    IPV4 = 0
    IPV6 = 1


class TransportType(enum.IntEnum):
    """Transport protocol carried by a socket loop."""

    TCP = 0
    UDP = 1


class OutputFormat(enum.IntEnum):
    """Unit used in bandwidth reports."""

    MBITS_PER_SEC = 0
    KBITS_PER_SEC = 1

    @property
    def unit(self) -> str:
        return "K" if self is OutputFormat.KBITS_PER_SEC else "M"


class TrafficType(enum.IntEnum):
    """The four kinds of traffic run."""

    TCP_SERVER = 0
    TCP_CLIENT = 1
    UDP_SERVER = 2
    UDP_CLIENT = 3


class IperfStatus(enum.IntEnum):
    """Status passed to a start/stop hook."""

    STARTED = 0
    STOPPED = 1


@dataclass
class IperfConfig:
    """Settings of one traffic run."""

    flag: IperfFlag = IperfFlag(0)
    destination: str | None = None
    source: str = ""
    ip_type: IpType = IpType.IPV4
    format: OutputFormat = OutputFormat.MBITS_PER_SEC
    dport: int = DEFAULT_PORT
    sport: int = DEFAULT_PORT
    interval: int = DEFAULT_INTERVAL
    time: int = DEFAULT_TIME
    len_send_buf: int = 0
    bw_lim: int = NO_BW_LIMIT

    def __post_init__(self) -> None:
        self.flag = IperfFlag(self.flag)
        self.ip_type = IpType(self.ip_type)
        self.format = OutputFormat(self.format)
        for name in ("dport", "sport", "len_send_buf"):
            value = getattr(self, name)
            if not 0 <= value <= _UINT16_MAX:
                raise ValueError(f"{name} out of range: {value}")
        if self.interval < 0 or self.time < 0:
            raise ValueError("interval and time must not be negative")

    @property
    def is_client(self) -> bool:
        return bool(self.flag & IperfFlag.CLIENT)

    @property
    def is_server(self) -> bool:
        return bool(self.flag & IperfFlag.SERVER)

    @property
    def is_udp(self) -> bool:
        return bool(self.flag & IperfFlag.UDP)

    @property
    def is_tcp(self) -> bool:
        return bool(self.flag & IperfFlag.TCP)

    def traffic_type(self) -> TrafficType:
        """Kind of run selected by the flags; anything unrecognised is a TCP server."""
        if self.is_client and self.is_udp:
            return TrafficType.UDP_CLIENT
        if self.is_server and self.is_udp:
            return TrafficType.UDP_SERVER
        if self.is_client and self.is_tcp:
            return TrafficType.TCP_CLIENT
        return TrafficType.TCP_SERVER

    def buffer_length(self) -> int:
        """Size of the send or receive buffer for this run."""
        kind = self.traffic_type()
        if kind is TrafficType.UDP_CLIENT:
            if self.len_send_buf:
                return self.len_send_buf
            if self.ip_type is IpType.IPV6:
                return DEFAULT_IPV6_UDP_TX_LEN
            return DEFAULT_IPV4_UDP_TX_LEN
        if kind is TrafficType.UDP_SERVER:
            return DEFAULT_UDP_RX_LEN
        if kind is TrafficType.TCP_CLIENT:
            return self.len_send_buf or DEFAULT_TCP_TX_LEN
        return DEFAULT_TCP_RX_LEN