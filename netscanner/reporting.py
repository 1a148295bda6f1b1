"""
Helpers for building, rendering and saving scan results.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .liveness import LivenessReport
from .service_intel import ServiceIdentity


def build_host_report(
    target: str,
    liveness: Optional[LivenessReport],
    open_ports: Sequence[int],
    services: Optional[Mapping[int, Optional[ServiceIdentity]]] = None,
) -> Dict:
    services = services or {}
    if liveness is None:
        state, reason = "up", "user-set"
    else:
        state = "up" if liveness.alive else "down"
        reason = liveness.reason

    ports: List[Dict] = []
    for port in open_ports:
        entry: Dict = {"port": port, "protocol": "tcp", "state": "open"}
        identity = services.get(port)
        if identity is not None:
            entry.update(identity.as_dict())
        ports.append(entry)

    report = {"target": target, "state": state, "reason": reason, "open_ports": ports}
    if liveness is not None and liveness.detail:
        report["notes"] = [liveness.detail]
    return report


def render_text_report(host_reports: Sequence[Dict]) -> str:
    """
    Build a human-readable report from host report dicts.
    """
    if not host_reports:
        return "[-] No host information found."

    lines: List[str] = []
    for host in host_reports:
        target = host.get("target")
        if host.get("state") == "up":
            lines.append(f"Host {target} is up")
        else:
            lines.append(f"Host {target} appears to be down")
            for note in host.get("notes") or []:
                lines.append(f"[!] {note}")
            lines.append("")
            continue

        open_ports = host.get("open_ports") or []
        if open_ports:
            lines.append("\nOpen ports:")
            for port in open_ports:
                line = f"  {port.get('port')}"
                if port.get("product"):
                    label = " ".join(part for part in (port.get("product"), port.get("version")) if part)
                    line += f"  {port.get('service')} ({label})"
                lines.append(line)
        else:
            lines.append("\nNo open ports found")

        intel_services = (host.get("intel") or {}).get("services") or []
        if intel_services:
            lines.append("\n[~] Service Intelligence Findings:")
            for entry in intel_services:
                location = f"{entry.get('protocol')}/{entry.get('port')}"
                risk = entry.get("risk")
                risk_text = f" [{risk.upper()}]" if risk else ""
                lines.append(f"    - {location}: {entry.get('summary')}{risk_text}")
                for obs in entry.get("observations") or []:
                    lines.append(f"      * {obs}")
                recs = entry.get("recommendations") or []
                if recs:
                    lines.append("      Recommended:")
                    for rec in recs:
                        lines.append(f"        - {rec}")

        lines.append("")

    return "\n".join(lines)


def summarize_reports(host_reports: Sequence[Dict]) -> Dict:
    host_states: Dict[str, int] = {}
    open_ports = 0
    for host in host_reports:
        state = host.get("state") or "unknown"
        host_states[state] = host_states.get(state, 0) + 1
        open_ports += len(host.get("open_ports") or [])
    return {"hosts": len(host_reports), "open_ports": open_ports, "host_states": host_states}


def render_summary_text(summary: Dict) -> str:
    lines = [
        "=== Scan Summary ===",
        f"Hosts analysed: {summary.get('hosts', 0)}",
        f"Open ports found: {summary.get('open_ports', 0)}",
    ]
    host_states = summary.get("host_states", {})
    if host_states:
        lines.append("Host states:")
        for state, count in sorted(host_states.items()):
            lines.append(f"  - {state}: {count}")
    return "\n".join(lines)


def save_text_report(path: str, text: str) -> None:
    Path(path).write_text(text, encoding="utf-8")


def save_json_report(path: str, data: Dict) -> None:
    Path(path).write_text(json.dumps(data, indent=2), encoding="utf-8")
