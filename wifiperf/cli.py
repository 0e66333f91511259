"""Command line for running iperf bandwidth tests, one-shot or from a prompt."""

from __future__ import annotations

import argparse
import logging
import shlex
import socket
import sys
from typing import List, Optional, Sequence

from wifiperf.config import (
    DEFAULT_INTERVAL,
    DEFAULT_PORT,
    DEFAULT_TIME,
    NO_BW_LIMIT,
    IperfConfig,
    IperfFlag,
    IpType,
)
from wifiperf.engine import Iperf, IperfError

log = logging.getLogger("cmd_wifi")

PROMPT = "iperf>"

BANNER = "\n".join(
    [
        "",
        " ==================================================",
        " |       Steps to test WiFi throughput            |",
        " |                                                |",
        " |  1. Print 'help' to gain overview of commands  |",
        " |  2. Configure device to station or soft-AP     |",
        " |  3. Setup WiFi connection                      |",
        " |  4. Run iperf to test UDP/TCP RX/TX throughput |",
        " |                                                |",
        " =================================================",
        "",
    ]
)

_ANY_ADDRESS = "0.0.0.0"


def build_parser() -> argparse.ArgumentParser:
    """Argument parser of the ``iperf`` command."""
    parser = argparse.ArgumentParser(prog="iperf", description="iperf command")
    parser.add_argument(
        "-c", "--client", dest="ip", metavar="<ip>",
        help="run in client mode, connecting to <host>",
    )
    parser.add_argument(
        "-s", "--server", action="store_true", help="run in server mode"
    )
    parser.add_argument(
        "-u", "--udp", action="store_true", help="use UDP rather than TCP"
    )
    parser.add_argument(
        "-V", "--ipv6_domain", dest="version", action="store_true",
        help="use IPV6 address rather than IPV4",
    )
    parser.add_argument(
        "-p", "--port", type=int, metavar="<port>",
        help="server port to listen on/connect to",
    )
    parser.add_argument(
        "-l", "--len", dest="length", type=int, metavar="<length>",
        help="Set read/write buffer size",
    )
    parser.add_argument(
        "-i", "--interval", type=int, metavar="<interval>",
        help="seconds between periodic bandwidth reports",
    )
    parser.add_argument(
        "-t", "--time", type=int, metavar="<time>",
        help="time in seconds to transmit for (default 10 secs)",
    )
    parser.add_argument(
        "-b", "--bandwidth", dest="bw_limit", type=int, metavar="<bandwidth>",
        help="bandwidth to send at in Mbits/sec",
    )
    parser.add_argument(
        "-a", "--abort", action="store_true", help="abort running iperf"
    )
    return parser


def config_from_args(args: argparse.Namespace, local_ip: str) -> IperfConfig:
    """Build the run configuration from parsed ``iperf`` arguments.

    Raises ValueError when neither or both of client and server mode are
    requested, when there is no local address, or when a value is out of range.
    """
    if (args.ip is not None) == bool(args.server):
        raise ValueError("should specific client/server mode")

    if args.ip is None:
        flag = IperfFlag.SERVER
        destination = None
    else:
        flag = IperfFlag.CLIENT
        destination = args.ip

    if not local_ip:
        raise ValueError("sta has no IP")

    flag |= IperfFlag.UDP if args.udp else IperfFlag.TCP

    length = args.length if args.length is not None else 0

    if args.port is None:
        sport = dport = DEFAULT_PORT
    elif flag & IperfFlag.SERVER:
        sport, dport = args.port, DEFAULT_PORT
    else:
        sport, dport = DEFAULT_PORT, args.port

    interval = DEFAULT_INTERVAL
    if args.interval is not None and args.interval > 0:
        interval = args.interval

    run_time = DEFAULT_TIME
    if args.time is not None:
        run_time = args.time if args.time > interval else interval

    bw_lim = NO_BW_LIMIT
    if args.bw_limit is not None and args.bw_limit > 0:
        bw_lim = args.bw_limit

    # Only IPv4 addresses are supported by the command.
    return IperfConfig(
        flag=flag,
        destination=destination,
        source=local_ip,
        ip_type=IpType.IPV4,
        dport=dport,
        sport=sport,
        interval=interval,
        time=run_time,
        len_send_buf=length,
        bw_lim=bw_lim,
    )


def _local_ip(destination: Optional[str], port: int) -> str:
    """Local address used to reach ``destination``; the wildcard for a server."""
    if destination is None:
        return _ANY_ADDRESS
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect((destination, port))
            return probe.getsockname()[0]
    except (OSError, OverflowError):
        return ""


def _run_iperf(engine: Iperf, argv: Sequence[str], wait: bool) -> int:
    args = build_parser().parse_args(list(argv))

    if args.abort:
        engine.stop()
        return 0

    port = args.port if args.port is not None and args.ip is not None else DEFAULT_PORT
    try:
        cfg = config_from_args(args, _local_ip(args.ip, port))
    except ValueError as exc:
        log.error("%s", exc)
        return 1

    log.info(
        "mode=%s-%s sip=%s:%d, dip=%s:%d, interval=%d, time=%d",
        "tcp" if cfg.is_tcp else "udp",
        "server" if cfg.is_server else "client",
        cfg.source,
        cfg.sport,
        cfg.destination or _ANY_ADDRESS,
        cfg.dport,
        cfg.interval,
        cfg.time,
    )

    try:
        engine.start(cfg)
    except IperfError as exc:
        log.error("%s", exc)
        return 1

    if not wait:
        return 0
    try:
        while not engine.wait(0.5):
            pass
    except KeyboardInterrupt:
        engine.stop()
    return 1 if engine.last_error is not None else 0


def _print_help() -> None:
    print("help")
    print("  Print the list of registered commands")
    print()
    print("quit")
    print("  Stop any running test and leave the prompt")
    print()
    print(build_parser().format_help())


def _repl(engine: Iperf) -> int:
    print(BANNER)
    while True:
        try:
            line = input(PROMPT)
        except EOFError:
            print()
            break
        try:
            words = shlex.split(line)
        except ValueError as exc:
            print(f"Invalid command line: {exc}")
            continue
        if not words:
            continue
        name, rest = words[0], words[1:]
        if name in ("quit", "exit"):
            break
        if name == "help":
            _print_help()
        elif name == "iperf":
            try:
                _run_iperf(engine, rest, wait=False)
            except SystemExit:
                pass
        else:
            print(f"Unrecognized command: {name}")
    if engine.is_running():
        engine.stop()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one iperf command from ``argv``, or an interactive prompt if there is none."""
    arguments: List[str] = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname).1s (%(name)s) %(message)s")
    engine = Iperf()
    if not arguments:
        return _repl(engine)
    return _run_iperf(engine, arguments, wait=True)


if __name__ == "__main__":
    sys.exit(main())