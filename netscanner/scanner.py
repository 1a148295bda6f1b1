"""
Bounded worker-pool scheduler that fans a port range out across probe workers.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .aggregator import ResultAggregator
from .probe import ProbeResult, probe_open

DEFAULT_CONCURRENCY = 20
DEFAULT_TIMEOUT = 2.0

ProbeFunc = Callable[[str, int, float], bool]


@dataclass(frozen=True)
class ScanConfiguration:
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT

    def normalized(self, fallback_concurrency: int = DEFAULT_CONCURRENCY) -> "ScanConfiguration":
        concurrency = self.concurrency if self.concurrency > 0 else fallback_concurrency
        timeout = self.timeout if self.timeout > 0 else DEFAULT_TIMEOUT
        return ScanConfiguration(concurrency=concurrency, timeout=timeout)


@dataclass(frozen=True)
class ScanJob:
    host: str
    port: int
    timeout: float


_concurrency_lock = threading.Lock()
_concurrency = DEFAULT_CONCURRENCY


def set_concurrency(workers: int) -> None:
    """
    Set the process-wide worker count used by scans that start afterwards.
    Non-positive values are ignored.
    """
    global _concurrency
    if workers > 0:
        with _concurrency_lock:
            _concurrency = workers


def get_concurrency() -> int:
    with _concurrency_lock:
        return _concurrency


def _resolve_config(config: Optional[ScanConfiguration]) -> ScanConfiguration:
    current = get_concurrency()
    if config is None:
        return ScanConfiguration(concurrency=current)
    return config.normalized(current)


def _worker(
    jobs: "queue.Queue[ScanJob]",
    aggregator: ResultAggregator,
    probe: ProbeFunc,
    cancel: threading.Event,
) -> None:
    while not cancel.is_set():
        try:
            job = jobs.get_nowait()
        except queue.Empty:
            break
        try:
            aggregator.add(ProbeResult(port=job.port, open=bool(probe(job.host, job.port, job.timeout))))
        finally:
            jobs.task_done()


def _run_jobs(
    host: str,
    ports: Iterable[int],
    config: Optional[ScanConfiguration],
    probe: Optional[ProbeFunc],
    cancel: Optional[threading.Event],
) -> List[int]:
    settings = _resolve_config(config)
    probe = probe or probe_open
    cancel = cancel or threading.Event()

    port_list = list(ports)
    # Sized to the whole range so filling it can never block.
    jobs: "queue.Queue[ScanJob]" = queue.Queue(maxsize=max(len(port_list), 1))
    for port in port_list:
        jobs.put_nowait(ScanJob(host=host, port=port, timeout=settings.timeout))

    aggregator = ResultAggregator()
    with ThreadPoolExecutor(max_workers=settings.concurrency, thread_name_prefix="netscanner") as executor:
        futures = [
            executor.submit(_worker, jobs, aggregator, probe, cancel)
            for _ in range(settings.concurrency)
        ]
        try:
            wait(futures)
        except KeyboardInterrupt:
            cancel.set()
            raise

    # Re-raise the first worker error, if any.
    for future in futures:
        future.result()
    return aggregator.sorted_ports()


def scan_range(
    host: str,
    start_port: int,
    end_port: int,
    config: Optional[ScanConfiguration] = None,
    probe: Optional[ProbeFunc] = None,
    cancel: Optional[threading.Event] = None,
) -> List[int]:
    """
    Probe every port in [start_port, end_port] on host and return the open
    ones in ascending order.

    The call returns only after every worker has drained the queue. Setting
    ``cancel`` stops workers from taking new jobs; ports already probed keep
    their results.
    """
    return _run_jobs(host, range(start_port, end_port + 1), config, probe, cancel)


def scan_ports(
    host: str,
    ports: Iterable[int],
    config: Optional[ScanConfiguration] = None,
    probe: Optional[ProbeFunc] = None,
    cancel: Optional[threading.Event] = None,
) -> List[int]:
    """
    Same as ``scan_range`` for an explicit port list; duplicates are probed once.
    """
    unique: List[int] = []
    seen = set()
    for port in ports:
        if port not in seen:
            seen.add(port)
            unique.append(port)
    return _run_jobs(host, unique, config, probe, cancel)
