"""
Host liveness checks: a few TCP probes against common ports, then an ICMP
echo fallback.

The echo fallback sends a raw ICMP packet through scapy, which needs root or
CAP_NET_RAW. Without that privilege the fallback reports
``EchoStatus.UNAVAILABLE`` and the host is treated as down.
"""

from __future__ import annotations

import enum
import errno
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from scapy.layers.inet import ICMP, IP
from scapy.sendrecv import sr1

from .probe import probe_open

LIVENESS_PORTS = (80, 443, 22)
LIVENESS_TIMEOUT = 1.0
ECHO_TIMEOUT = 1.0


class EchoStatus(enum.Enum):
    REPLIED = "replied"
    NO_REPLY = "no-reply"
    UNAVAILABLE = "unavailable"
    NOT_ATTEMPTED = "not-attempted"


@dataclass(frozen=True)
class LivenessReport:
    host: str
    alive: bool
    method: Optional[str] = None
    port: Optional[int] = None
    echo: EchoStatus = EchoStatus.NOT_ATTEMPTED
    detail: str = ""

    @property
    def reason(self) -> str:
        if self.method == "tcp":
            return f"tcp/{self.port}"
        if self.echo is EchoStatus.REPLIED:
            return "echo-reply"
        if self.echo is EchoStatus.UNAVAILABLE:
            return "echo-unavailable"
        return "no-response"


def echo_probe(host: str, timeout: float = ECHO_TIMEOUT) -> EchoStatus:
    try:
        reply = sr1(IP(dst=host) / ICMP(), timeout=timeout, verbose=0)
    except PermissionError:
        return EchoStatus.UNAVAILABLE
    except OSError as exc:
        if exc.errno in (errno.EPERM, errno.EACCES):
            return EchoStatus.UNAVAILABLE
        return EchoStatus.NO_REPLY
    if reply is not None and reply.haslayer(ICMP) and reply[ICMP].type == 0:
        return EchoStatus.REPLIED
    return EchoStatus.NO_REPLY


def check_host(
    host: str,
    ports: Sequence[int] = LIVENESS_PORTS,
    timeout: float = LIVENESS_TIMEOUT,
    probe: Optional[Callable[[str, int, float], bool]] = None,
    echo: Optional[Callable[[str, float], EchoStatus]] = None,
) -> LivenessReport:
    probe = probe or probe_open
    echo = echo or echo_probe
    for port in ports:
        if probe(host, port, timeout):
            return LivenessReport(host=host, alive=True, method="tcp", port=port)

    status = echo(host, ECHO_TIMEOUT)
    detail = ""
    if status is EchoStatus.UNAVAILABLE:
        detail = "ICMP echo fallback unavailable (raw sockets need root or CAP_NET_RAW)"
    return LivenessReport(
        host=host,
        alive=status is EchoStatus.REPLIED,
        method="icmp",
        echo=status,
        detail=detail,
    )


def is_host_alive(host: str) -> bool:
    return check_host(host).alive
