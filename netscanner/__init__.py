"""
TCP port scanner package: a bounded-concurrency scan engine with host
liveness checks, a command-line interface and service identification.
"""

__version__ = "1.0.0"

from .liveness import is_host_alive
from .probe import probe_open
from .scanner import ScanConfiguration, scan_ports, scan_range, set_concurrency
from .cli import main

__all__ = [
    "ScanConfiguration",
    "is_host_alive",
    "main",
    "probe_open",
    "scan_ports",
    "scan_range",
    "set_concurrency",
]
