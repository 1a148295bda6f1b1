"""
Single-port TCP connect probes.
"""

from __future__ import annotations

import enum
import socket
from dataclasses import dataclass


class ProbeOutcome(enum.Enum):
    OPEN = "open"
    REFUSED = "refused"
    TIMED_OUT = "timed-out"
    RESOLUTION_FAILED = "resolution-failed"
    UNREACHABLE = "unreachable"

    @property
    def is_open(self) -> bool:
        return self is ProbeOutcome.OPEN


@dataclass(frozen=True)
class ProbeResult:
    port: int
    open: bool


def probe_port(host: str, port: int, timeout: float) -> ProbeOutcome:
    """
    Attempt one TCP connection to host:port and report why it did or did not open.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return ProbeOutcome.OPEN
    except socket.gaierror:
        return ProbeOutcome.RESOLUTION_FAILED
    except socket.timeout:
        return ProbeOutcome.TIMED_OUT
    except ConnectionRefusedError:
        return ProbeOutcome.REFUSED
    except OSError:
        return ProbeOutcome.UNREACHABLE


def probe_open(host: str, port: int, timeout: float) -> bool:
    return probe_port(host, port, timeout).is_open
