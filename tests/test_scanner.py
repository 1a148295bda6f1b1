from __future__ import annotations

import random
import threading
import time
from collections import Counter

import pytest

from netscanner import scanner
from netscanner.scanner import ScanConfiguration


class CountingProbe:
    """
    Probe stub that records every call, tracks how many run at once, and
    reports a fixed set of ports as open.
    """

    def __init__(self, open_ports=(), latency=None):
        self.open_ports = set(open_ports)
        self.latency = latency
        self.calls = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def __call__(self, host, port, timeout):
        with self._lock:
            self.calls[port] += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                time.sleep(self.latency(port))
            return port in self.open_ports
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture(autouse=True)
def restore_concurrency():
    previous = scanner.get_concurrency()
    yield
    scanner.set_concurrency(previous)


def test_every_port_probed_exactly_once():
    stub = CountingProbe()
    scanner.scan_range("target", 1, 1500, config=ScanConfiguration(concurrency=7), probe=stub)
    assert set(stub.calls) == set(range(1, 1501))
    assert all(count == 1 for count in stub.calls.values())


def test_output_sorted_despite_shuffled_latencies():
    rng = random.Random(1234)
    delays = {port: rng.uniform(0, 0.004) for port in range(1, 301)}
    open_ports = set(rng.sample(range(1, 301), 40))
    stub = CountingProbe(open_ports, latency=delays.__getitem__)

    result = scanner.scan_range("target", 1, 300, config=ScanConfiguration(concurrency=16), probe=stub)

    assert result == sorted(open_ports)
    assert all(a < b for a, b in zip(result, result[1:]))


def test_repeated_scans_are_identical():
    stub = CountingProbe({21, 25, 80, 3306})
    config = ScanConfiguration(concurrency=5)
    first = scanner.scan_range("target", 1, 4000, config=config, probe=stub)
    second = scanner.scan_range("target", 1, 4000, config=config, probe=stub)
    assert first == second == [21, 25, 80, 3306]


@pytest.mark.parametrize("port,expected", [(443, [443]), (444, [])])
def test_single_port_range_matches_direct_probe(port, expected):
    stub = CountingProbe({443})
    result = scanner.scan_range("target", port, port, config=ScanConfiguration(concurrency=3), probe=stub)
    assert result == expected
    assert stub.calls == Counter({port: 1})


@pytest.mark.parametrize("concurrency", [1, 5, 100])
def test_in_flight_probes_never_exceed_concurrency(concurrency):
    stub = CountingProbe(latency=lambda port: 0.002)
    scanner.scan_range("target", 1, 400, config=ScanConfiguration(concurrency=concurrency), probe=stub)
    assert 1 <= stub.max_in_flight <= concurrency
    assert sum(stub.calls.values()) == 400


def test_stub_target_with_ssh_and_https_open():
    stub = CountingProbe({22, 443})
    scanner.set_concurrency(10)
    assert scanner.scan_range("stub.example", 1, 1000, probe=stub) == [22, 443]
    assert stub.max_in_flight <= 10


def test_non_positive_concurrency_keeps_previous_value():
    scanner.set_concurrency(4)
    scanner.set_concurrency(0)
    scanner.set_concurrency(-3)
    assert scanner.get_concurrency() == 4

    stub = CountingProbe({7}, latency=lambda port: 0.001)
    assert scanner.scan_range("target", 1, 200, probe=stub) == [7]
    assert stub.max_in_flight <= 4


def test_explicit_configuration_with_zero_workers_falls_back():
    scanner.set_concurrency(3)
    stub = CountingProbe({9})
    result = scanner.scan_range("target", 1, 50, config=ScanConfiguration(concurrency=0, timeout=0), probe=stub)
    assert result == [9]
    assert stub.max_in_flight <= 3


def test_configuration_normalized():
    config = ScanConfiguration(concurrency=-1, timeout=-5).normalized(12)
    assert config == ScanConfiguration(concurrency=12, timeout=scanner.DEFAULT_TIMEOUT)
    assert ScanConfiguration(concurrency=2, timeout=0.5).normalized(12) == ScanConfiguration(2, 0.5)


def test_timeout_is_passed_to_every_probe():
    seen = set()

    def probe(host, port, timeout):
        seen.add((host, timeout))
        return False

    scanner.scan_range("10.1.1.1", 1, 20, config=ScanConfiguration(concurrency=4, timeout=0.75), probe=probe)
    assert seen == {("10.1.1.1", 0.75)}


def test_reconfiguring_during_scan_does_not_resize_running_pool():
    scanner.set_concurrency(2)
    started = threading.Event()
    stub = CountingProbe(latency=lambda port: 0.001)

    def probe(host, port, timeout):
        started.set()
        return stub(host, port, timeout)

    worker = threading.Thread(target=scanner.scan_range, args=("target", 1, 200), kwargs={"probe": probe})
    worker.start()
    started.wait(5)
    scanner.set_concurrency(50)
    worker.join(10)

    assert not worker.is_alive()
    assert stub.max_in_flight <= 2
    assert scanner.get_concurrency() == 50


def test_large_range_with_single_worker_does_not_deadlock():
    stub = CountingProbe({65535})
    result = scanner.scan_range("target", 1, 65535, config=ScanConfiguration(concurrency=1), probe=stub)
    assert result == [65535]
    assert len(stub.calls) == 65535


def test_cancel_stops_workers_between_jobs():
    cancel = threading.Event()
    probed = []
    lock = threading.Lock()

    def probe(host, port, timeout):
        with lock:
            probed.append(port)
            if len(probed) == 10:
                cancel.set()
        return port % 2 == 0

    result = scanner.scan_range(
        "target", 1, 1000, config=ScanConfiguration(concurrency=2), probe=probe, cancel=cancel
    )

    assert len(probed) < 1000
    assert result == sorted(port for port in probed if port % 2 == 0)


def test_probe_errors_surface_after_barrier():
    def probe(host, port, timeout):
        if port == 5:
            raise ValueError("boom")
        return True

    with pytest.raises(ValueError):
        scanner.scan_range("target", 1, 10, config=ScanConfiguration(concurrency=1), probe=probe)


def test_scan_ports_deduplicates_explicit_list():
    stub = CountingProbe({80, 443})
    result = scanner.scan_ports("target", [443, 22, 80, 443, 22], config=ScanConfiguration(concurrency=2), probe=stub)
    assert result == [80, 443]
    assert stub.calls == Counter({443: 1, 22: 1, 80: 1})


def test_scan_ports_empty_list_returns_nothing():
    stub = CountingProbe()
    assert scanner.scan_ports("target", [], probe=stub) == []
    assert not stub.calls


def test_interrupt_sets_cancel_and_propagates(monkeypatch):
    cancel = threading.Event()
    first_probe = threading.Event()
    stub = CountingProbe(latency=lambda port: 0.001)

    def probe(host, port, timeout):
        first_probe.set()
        return stub(host, port, timeout)

    def interrupted_wait(futures):
        first_probe.wait(5)
        raise KeyboardInterrupt

    monkeypatch.setattr(scanner, "wait", interrupted_wait)
    with pytest.raises(KeyboardInterrupt):
        scanner.scan_range("target", 1, 5000, config=ScanConfiguration(concurrency=2), probe=probe, cancel=cancel)

    assert cancel.is_set()
    assert 1 <= sum(stub.calls.values()) < 5000
    assert stub.in_flight == 0


def test_worker_drains_queue_and_records_results():
    jobs = scanner.queue.Queue()
    for port in (3, 1, 2):
        jobs.put_nowait(scanner.ScanJob(host="target", port=port, timeout=1.0))
    aggregator = scanner.ResultAggregator()

    scanner._worker(jobs, aggregator, lambda host, port, timeout: port != 2, threading.Event())

    assert jobs.empty()
    assert aggregator.sorted_ports() == [1, 3]
