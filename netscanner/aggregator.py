"""
Thread-safe collection of open ports reported by scan workers.
"""

from __future__ import annotations

import threading
from typing import List

from .probe import ProbeResult


class ResultAggregator:
    """
    Collects open ports from concurrent workers.

    Appends happen under a single lock in arrival order. Sorting happens once,
    in ``sorted_ports``, after every worker has finished; the aggregator is
    sealed at that point and rejects further writes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ports: List[int] = []
        self._sealed = False

    def add(self, result: ProbeResult) -> None:
        if not result.open:
            return
        with self._lock:
            if self._sealed:
                raise RuntimeError(f"Result for port {result.port} arrived after the scan completed.")
            self._ports.append(result.port)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ports)

    def sorted_ports(self) -> List[int]:
        with self._lock:
            self._sealed = True
            return sorted(set(self._ports))
