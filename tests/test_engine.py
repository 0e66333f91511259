import re
import socket
import threading
import time

import pytest

from wifiperf.config import (
    DEFAULT_IPV4_UDP_TX_LEN,
    IperfConfig,
    IperfFlag,
    IperfStatus,
    TrafficType,
)
from wifiperf.engine import Iperf, IperfError, send_period_us
from wifiperf.report import HEADER


def _free_port(kind=socket.SOCK_STREAM):
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _engine(**kwargs):
    out = []
    hooks = []
    engine = Iperf(out=out.append, **kwargs)
    engine.register_hook(lambda kind, status: hooks.append((kind, status)))
    return engine, out, hooks


def _values(lines):
    found = []
    for line in lines:
        match = re.search(r"sec\s+([\d.]+) Mbits/sec", line)
        if match:
            found.append(float(match.group(1)))
    return found


@pytest.mark.parametrize("size", [1, 1470, 16384])
def test_send_period_at_eight_mbits_equals_size(size):
    assert send_period_us(size, 8) == size


@pytest.mark.parametrize("limit", [-1, 0])
def test_send_period_unlimited(limit):
    assert send_period_us(1470, limit) == -1


def test_send_period_shrinks_as_limit_grows():
    assert send_period_us(1470, 20) < send_period_us(1470, 10)


def test_start_without_config_raises():
    engine = Iperf(out=lambda line: None)
    with pytest.raises(IperfError):
        engine.start(None)
    assert not engine.is_running()


def test_start_with_zero_interval_is_rejected():
    engine = Iperf(out=lambda line: None)
    cfg = IperfConfig(flag=IperfFlag.SERVER | IperfFlag.TCP, interval=0)
    with pytest.raises(ValueError):
        engine.start(cfg)
    assert not engine.is_running()


def test_udp_client_numbers_datagrams():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(0.5)
    port = receiver.getsockname()[1]
    engine, out, hooks = _engine()
    cfg = IperfConfig(
        flag=IperfFlag.CLIENT | IperfFlag.UDP,
        destination="127.0.0.1",
        dport=port,
        interval=1,
        time=1,
        bw_lim=1,
    )
    engine.start(cfg)
    packets = []
    deadline = time.monotonic() + 0.6
    while time.monotonic() < deadline:
        try:
            packets.append(receiver.recv(65536))
        except socket.timeout:
            break
    assert engine.wait(5)
    receiver.close()

    assert packets
    assert all(len(p) == DEFAULT_IPV4_UDP_TX_LEN for p in packets)
    ids = [int.from_bytes(p[:4], "big") for p in packets]
    assert ids == list(range(len(ids)))
    assert hooks == [
        (TrafficType.UDP_CLIENT, IperfStatus.STARTED),
        (TrafficType.UDP_CLIENT, IperfStatus.STOPPED),
    ]
    assert out[0] == HEADER
    assert len(_values(out)) >= 2


def test_tcp_client_stream_carries_packet_ids():
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]
    received = bytearray()

    def serve():
        conn, _ = listener.accept()
        with conn:
            while True:
                chunk = conn.recv(65536)
                if not chunk:
                    break
                received.extend(chunk)

    server = threading.Thread(target=serve, daemon=True)
    server.start()
    engine, out, hooks = _engine()
    cfg = IperfConfig(
        flag=IperfFlag.CLIENT | IperfFlag.TCP,
        destination="127.0.0.1",
        dport=port,
        len_send_buf=1000,
        interval=1,
        time=1,
        bw_lim=1,
    )
    engine.start(cfg)
    assert engine.wait(5)
    server.join(5)
    listener.close()

    assert len(received) >= 2000
    assert len(received) % 1000 == 0
    assert received[:4] == (0).to_bytes(4, "big")
    assert received[1000:1004] == (1).to_bytes(4, "big")
    assert hooks == [
        (TrafficType.TCP_CLIENT, IperfStatus.STARTED),
        (TrafficType.TCP_CLIENT, IperfStatus.STOPPED),
    ]
    assert out[0] == HEADER


def test_tcp_client_connect_failure_reports_stop_only():
    port = _free_port()
    engine, out, hooks = _engine()
    cfg = IperfConfig(
        flag=IperfFlag.CLIENT | IperfFlag.TCP,
        destination="127.0.0.1",
        dport=port,
        interval=1,
        time=1,
    )
    engine.start(cfg)
    assert engine.wait(5)
    assert hooks == [(TrafficType.TCP_CLIENT, IperfStatus.STOPPED)]
    assert isinstance(engine.last_error, IperfError)
    assert out == []


def test_tcp_server_measures_incoming_traffic():
    port = _free_port()
    engine, out, hooks = _engine(rx_timeout=2)
    cfg = IperfConfig(
        flag=IperfFlag.SERVER | IperfFlag.TCP,
        source="127.0.0.1",
        sport=port,
        interval=1,
        time=1,
    )
    engine.start(cfg)

    client = None
    deadline = time.monotonic() + 3
    while client is None and time.monotonic() < deadline:
        try:
            client = socket.create_connection(("127.0.0.1", port), timeout=1)
        except ConnectionRefusedError:
            time.sleep(0.05)
    assert client is not None

    chunk = bytes(65536)
    deadline = time.monotonic() + 4
    with client:
        while engine.is_running() and time.monotonic() < deadline:
            try:
                client.sendall(chunk)
            except OSError:
                break
    assert engine.wait(5)

    values = _values(out)
    assert out[0] == HEADER
    assert values and values[0] > 0
    assert hooks == [
        (TrafficType.TCP_SERVER, IperfStatus.STARTED),
        (TrafficType.TCP_SERVER, IperfStatus.STOPPED),
    ]


def test_second_start_raises_and_stop_ends_waiting_server():
    port = _free_port()
    engine, out, hooks = _engine(rx_timeout=2)
    cfg = IperfConfig(
        flag=IperfFlag.SERVER | IperfFlag.TCP,
        source="127.0.0.1",
        sport=port,
        interval=1,
        time=1,
    )
    engine.start(cfg)
    assert engine.is_running()
    with pytest.raises(IperfError):
        engine.start(cfg)
    engine.stop()
    assert engine.wait(5)
    assert not engine.is_running()
    assert hooks == [(TrafficType.TCP_SERVER, IperfStatus.STOPPED)]


def test_udp_server_without_traffic_times_out():
    port = _free_port(socket.SOCK_DGRAM)
    engine, out, hooks = _engine(rx_timeout=0.3)
    cfg = IperfConfig(
        flag=IperfFlag.SERVER | IperfFlag.UDP,
        source="127.0.0.1",
        sport=port,
        interval=1,
        time=1,
    )
    engine.start(cfg)
    assert engine.wait(5)
    assert hooks == [
        (TrafficType.UDP_SERVER, IperfStatus.STARTED),
        (TrafficType.UDP_SERVER, IperfStatus.STOPPED),
    ]
    assert out == []