import threading

import pytest

from wifiperf.config import OutputFormat
from wifiperf.report import HEADER, BandwidthReporter, bandwidth, format_line


def test_format_line_layout():
    assert format_line(0, 3, 1.5, "M") == " 0.0- 3.0 sec  1.50 Mbits/sec"


def test_format_line_wide_numbers_not_truncated():
    line = format_line(100, 103, 12.345, "K")
    assert line.startswith("100.0-103.0 sec")
    assert line.endswith("Kbits/sec")


def test_kbits_is_1024_times_mbits():
    m = bandwidth(500_000, 2, OutputFormat.MBITS_PER_SEC)
    k = bandwidth(500_000, 2, OutputFormat.KBITS_PER_SEC)
    assert k == pytest.approx(m * 1024)


def test_bandwidth_scales_inversely_with_interval():
    one = bandwidth(1 << 20, 1, OutputFormat.MBITS_PER_SEC)
    four = bandwidth(1 << 20, 4, OutputFormat.MBITS_PER_SEC)
    assert one == pytest.approx(four * 4)


def test_bandwidth_zero_bytes():
    assert bandwidth(0, 3, OutputFormat.KBITS_PER_SEC) == 0.0


def test_bandwidth_rejects_zero_interval():
    with pytest.raises(ValueError):
        bandwidth(10, 0, OutputFormat.MBITS_PER_SEC)


def test_reporter_rejects_zero_interval():
    with pytest.raises(ValueError):
        BandwidthReporter(0, 10)


def test_report_interval_resets_pending_and_advances():
    lines = []
    rep = BandwidthReporter(2, 10, out=lines.append)
    rep.record(1000)
    rep.record(24)
    assert rep.pending == 1024
    done = rep.report_interval()
    assert done is False
    assert rep.pending == 0
    assert rep.elapsed == 2
    assert lines == [format_line(0, 2, bandwidth(1024, 2, OutputFormat.MBITS_PER_SEC), "M")]


def test_run_emits_intervals_and_summary():
    lines = []
    rep = BandwidthReporter(1, 3, OutputFormat.KBITS_PER_SEC, out=lines.append)
    feeds = iter([1024, 2048, 3072])
    finished = threading.Event()

    def fake_sleep(seconds):
        assert seconds == 1
        rep.record(next(feeds))

    rep.run(finished, sleep=fake_sleep)

    values = [bandwidth(n, 1, OutputFormat.KBITS_PER_SEC) for n in (1024, 2048, 3072)]
    assert finished.is_set()
    assert lines[0] == HEADER
    assert lines[1:4] == [format_line(i, i + 1, v, "K") for i, v in enumerate(values)]
    assert rep.average == pytest.approx(sum(values) / 3)
    assert lines[4] == format_line(0, 3, rep.average, "K")
    assert len(lines) == 5


def test_run_stops_when_finished_already_set():
    lines = []
    rep = BandwidthReporter(1, 10, out=lines.append)
    finished = threading.Event()
    finished.set()
    calls = []
    rep.run(finished, sleep=calls.append)
    assert calls == []
    assert lines == [HEADER]


def test_run_stops_when_finished_set_midway():
    lines = []
    rep = BandwidthReporter(1, 10, out=lines.append)
    finished = threading.Event()

    def fake_sleep(_):
        if rep.elapsed == 2:
            finished.set()

    rep.run(finished, sleep=fake_sleep)
    # the interval that was in progress is still reported, with no summary
    assert rep.elapsed == 3
    assert len(lines) == 4


def test_time_shorter_than_interval_reports_once():
    lines = []
    rep = BandwidthReporter(5, 2, out=lines.append)
    assert rep.report_interval() is True
    assert len(lines) == 2
    assert lines[1] == format_line(0, 2, rep.average, "M")