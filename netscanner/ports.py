"""
Parsing and validation of port specifications and probe timeouts.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

MIN_PORT = 1
MAX_PORT = 65535

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


@dataclass(frozen=True)
class PortSelection:
    """
    Ports requested by the caller: a contiguous range when the spec was a
    single ``start-end`` expression, otherwise an explicit sorted list.
    """

    ports: Tuple[int, ...]
    start_port: Optional[int] = None
    end_port: Optional[int] = None

    @property
    def is_range(self) -> bool:
        return self.start_port is not None and self.end_port is not None

    def __len__(self) -> int:
        return len(self.ports)


def _parse_port(value: str) -> int:
    try:
        port = int(value.strip())
    except ValueError:
        raise ValueError(f"Invalid port number '{value.strip()}'.")
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"Port number {port} out of range ({MIN_PORT}-{MAX_PORT}).")
    return port


def parse_port_range(port_range: str) -> Tuple[int, int]:
    if "-" in port_range:
        start_str, end_str = port_range.split("-", 1)
    else:
        start_str, end_str = port_range, port_range

    start_port = _parse_port(start_str)
    end_port = _parse_port(end_str)
    if start_port > end_port:
        raise ValueError("Start port cannot be greater than end port.")
    return start_port, end_port


def parse_ports(spec: str) -> PortSelection:
    """
    Parse ``1-1000``, ``22,80,443`` or a mix such as ``1-100,443``.
    """
    spec = (spec or "").strip()
    if not spec:
        raise ValueError("Empty port specification.")

    parts = [part.strip() for part in spec.split(",") if part.strip()]
    if not parts:
        raise ValueError("Empty port specification.")

    if len(parts) == 1 and "-" in parts[0]:
        start_port, end_port = parse_port_range(parts[0])
        return PortSelection(
            ports=tuple(range(start_port, end_port + 1)),
            start_port=start_port,
            end_port=end_port,
        )

    ports: List[int] = []
    for part in parts:
        if "-" in part:
            start_port, end_port = parse_port_range(part)
            ports.extend(range(start_port, end_port + 1))
        else:
            ports.append(_parse_port(part))
    return PortSelection(ports=tuple(sorted(set(ports))))


def parse_duration(value) -> float:
    """
    Convert ``500ms``, ``2s``, ``1m30s`` or a bare number of seconds into seconds.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Empty duration.")
        try:
            seconds = float(text)
        except ValueError:
            seconds = 0.0
            position = 0
            for match in _DURATION_PART.finditer(text):
                if match.start() != position:
                    raise ValueError(f"Invalid duration '{text}'.")
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                position = match.end()
            if position != len(text) or position == 0:
                raise ValueError(f"Invalid duration '{text}'.")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError("Duration must be positive.")
    return seconds
