# wifiperf

An iperf-style tool for measuring TCP and UDP throughput. It runs as a client
or a server, prints a bandwidth figure at fixed intervals, and gives the
average over the whole run when it finishes. Two small helpers come with it: a
TCP client that sends fixed payloads on a schedule, and a UDP client that sends
a short message at a set period.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Command line

Start a server in one terminal:

```
wifiperf -s
```

Then run a client against it from another:

```
wifiperf -c 192.168.1.10
```

With arguments, `wifiperf` runs one test and waits for it to finish (Ctrl-C
stops it early). The exit status is 1 if the arguments are inconsistent or the
sockets could not be set up, 0 otherwise.

Options:

| Option | Meaning |
| --- | --- |
| `-c`, `--client <ip>` | run in client mode and connect to `<ip>` |
| `-s`, `--server` | run in server mode |
| `-u`, `--udp` | use UDP instead of TCP |
| `-p`, `--port <port>` | port the server listens on or the client connects to (default 5001) |
| `-l`, `--len <length>` | size of the read/write buffer |
| `-i`, `--interval <secs>` | seconds between bandwidth reports (default 3; values of 0 or less mean the default) |
| `-t`, `--time <secs>` | length of the test in seconds (default 30; never shorter than one interval) |
| `-b`, `--bandwidth <Mbit/s>` | limit the sending rate (0 or less means no limit) |
| `-a`, `--abort` | stop a running test |
| `-V`, `--ipv6_domain` | accepted, but the command always uses IPv4 |

Exactly one of `-c` and `-s` must be given. Default buffer sizes are 1470 bytes
for a UDP client, 16 KiB for a TCP client and for both servers. Output looks
like this:

```
Interval       Bandwidth
 0.0- 3.0 sec  93.41 Mbits/sec
 3.0- 6.0 sec  94.02 Mbits/sec
...
 0.0-30.0 sec  93.77 Mbits/sec
```

Run `wifiperf` with no arguments to get an interactive `iperf>` prompt. It
understands `iperf <options>` (the test runs in the background, so
`iperf -a` can stop it), `help`, and `quit` or `exit`.

## Library use

```python
from wifiperf.config import IperfConfig, IperfFlag
from wifiperf.engine import Iperf

config = IperfConfig(
    flag=IperfFlag.CLIENT | IperfFlag.UDP,
    destination="192.168.1.10",
    time=10,
)
runner = Iperf()
runner.register_hook(lambda traffic, status: print(traffic, status))
runner.start(config)
runner.wait(timeout=15)
```

- `wifiperf.config.IperfConfig` holds the settings of one run: role and
  transport flags (`IperfFlag`), `destination`, `source`, `ip_type`
  (`IpType.IPV4` or `IpType.IPV6`), report `format` (`OutputFormat`), ports,
  `interval`, `time`, `len_send_buf` and `bw_lim`. `traffic_type()` and
  `buffer_length()` tell which kind of run it is and what buffer it uses.
- `wifiperf.engine.Iperf` runs one session at a time in a background thread.
  `start()` raises `IperfError` when given no configuration or when a run is
  already going; `stop()` ends a run early; `wait()` returns True once nothing
  is running; `is_running()` reports the state; a hook registered with
  `register_hook()` is called with `IperfStatus.STARTED` and `STOPPED`. If the
  sockets cannot be set up, the run ends and `last_error` holds an
  `IperfError`.
- `wifiperf.engine.send_period_us()` gives the pause between sends for a
  bandwidth limit.
- `wifiperf.report.bandwidth()` converts a byte count over an interval into
  Kbit/s or Mbit/s, `format_line()` formats one report line, and
  `BandwidthReporter` keeps the interval counts and the running average.

## Periodic clients

`wifiperf.tcp_payload.PayloadClient` connects to a TCP server (retrying until it
succeeds, or up to `max_attempts`), sends a payload with `send()`, reconnecting
and retrying if sending fails, and yields replies from `receive()`.
`PayloadSchedule.advance()` counts timer ticks: ticks 1 to 9 select the
300-byte payload and every tenth selects the large one, which is sent cut to
the 300-byte payload's length.

`wifiperf.udp_client.UdpMessageClient` opens a connected UDP socket, sends text
with `send()` and yields `(data, sender)` pairs from `receive()`.
`PeriodicSender` sends a message (by default `"Hello from NORA-W4"`) through
such a client once every period (default 120 seconds), the first one after one
period, until `stop()` is called or sending fails.

Neither helper has a command of its own; they are used from Python.

## What it does not do

wifiperf works over whatever network the machine is already on. It does not
join, scan for or set up wireless networks, and it has no commands for
querying or configuring a network interface. The command line only runs IPv4
tests and always reports in Mbit/s; IPv6 runs and Kbit/s reports are available
through `IperfConfig` only.