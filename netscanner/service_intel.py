"""Service identification and exposure intelligence for open ports."""

from __future__ import annotations

import re
import socket
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

BANNER_TIMEOUT = 2.0
BANNER_READ_TIMEOUT = 0.5
_NON_PRINTABLE = re.compile(r"[^\x09\x0a\x0d\x20-\x7e]")


@dataclass(frozen=True)
class ServiceSignature:
    pattern: str
    product: str
    version: str = r"\1"

    def match(self, protocol: str, banner: str) -> Optional["ServiceIdentity"]:
        found = re.search(self.pattern, banner)
        if not found:
            return None
        version = found.expand(self.version) if found.groups() else self.version
        return ServiceIdentity(protocol=protocol, product=self.product, version=version, banner=banner)


@dataclass(frozen=True)
class ServiceIdentity:
    protocol: str
    product: str
    version: str
    banner: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {
            "service": self.protocol,
            "product": self.product,
            "version": self.version,
            "banner": self.banner,
        }


SERVICE_SIGNATURES: Dict[str, List[ServiceSignature]] = {
    "http": [
        ServiceSignature(r"Server: Apache/(\d+\.\d+\.\d+)", "Apache"),
        ServiceSignature(r"Server: nginx/(\d+\.\d+\.\d+)", "Nginx"),
        ServiceSignature(r"Server: Microsoft-IIS/(\d+\.\d+)", "Microsoft IIS"),
    ],
    "ssh": [
        ServiceSignature(r"SSH-2\.0-OpenSSH_(\d+\.\d+)", "OpenSSH"),
        ServiceSignature(r"SSH-2\.0-dropbear_(\d+\.\d+)", "Dropbear"),
    ],
    "ftp": [
        ServiceSignature(r"220.*vsFTPd (\d+\.\d+\.\d+)", "vsftpd"),
        ServiceSignature(r"220.*ProFTPD (\d+\.\d+\.\d+)", "ProFTPD"),
    ],
    "smtp": [
        ServiceSignature(r"220.*ESMTP Postfix", "Postfix", ""),
        ServiceSignature(r"220.*Exim (\d+\.\d+)", "Exim"),
    ],
}


def _clean_banner(raw: bytes, max_len: int = 300) -> str:
    text = _NON_PRINTABLE.sub("", raw.decode(errors="ignore")).strip()
    return text[:max_len]


def grab_banner(host: str, port: int, timeout: float = BANNER_TIMEOUT) -> str:
    """
    Read the greeting a service sends on connect; services that wait for the
    client (HTTP) are sent a HEAD request instead.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            sock.settimeout(BANNER_READ_TIMEOUT)
            try:
                data = sock.recv(4096)
            except socket.timeout:
                data = b""
            if not data:
                request = f"HEAD / HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n"
                sock.sendall(request.encode())
                try:
                    data = sock.recv(4096)
                except socket.timeout:
                    data = b""
    except OSError:
        return ""
    return _clean_banner(data)


def match_banner(banner: str) -> Optional[ServiceIdentity]:
    if not banner:
        return None
    for protocol, signatures in SERVICE_SIGNATURES.items():
        for signature in signatures:
            identity = signature.match(protocol, banner)
            if identity:
                return identity
    return None


def identify_service(host: str, port: int, timeout: float = BANNER_TIMEOUT) -> Optional[ServiceIdentity]:
    return match_banner(grab_banner(host, port, timeout))


SERVICE_FAMILY_HINTS = {
    "http": {
        "recommendations": [
            "Enforce HTTPS and redirect clear-text traffic to TLS-protected endpoints.",
            "Review security headers (CSP, HSTS, X-Frame-Options, X-Content-Type-Options).",
        ],
        "references": [
            "https://owasp.org/www-project-top-ten/",
        ],
    },
    "ssh": {
        "recommendations": [
            "Disable legacy key exchange and ciphers; prefer ed25519 or rsa-sha2 host keys.",
            "Enforce multi-factor authentication and fail2ban-style brute-force protections.",
        ],
        "references": [
            "https://infosec.mozilla.org/guidelines/openssh",
        ],
    },
    "smtp": {
        "recommendations": [
            "Enable STARTTLS with strong ciphers and require authentication for outbound relay.",
            "Implement DMARC, SPF, and DKIM to prevent spoofing.",
        ],
        "references": [
            "https://dmarc.org/overview/",
        ],
    },
    "ftp": {
        "recommendations": [
            "Disable anonymous authentication unless explicitly required and write access is isolated.",
            "Migrate to SFTP/FTPS or another secure transfer protocol when possible.",
        ],
        "references": [
            "https://owasp.org/www-community/attacks/FTP_bounce_attack",
        ],
    },
}

FAMILY_RISK = {"http": "medium", "ssh": "medium", "smtp": "medium", "ftp": "high"}
RISK_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


def _build_finding(port: Dict, family: str, observations: Iterable[str]) -> Dict:
    hints = SERVICE_FAMILY_HINTS.get(family, {})
    finding = {
        "port": port.get("port"),
        "protocol": port.get("protocol", "tcp"),
        "service": family,
        "summary": f"{family.upper()} service exposed",
        "risk": FAMILY_RISK.get(family, "low"),
        "observations": [obs for obs in observations if obs],
        "recommendations": list(hints.get("recommendations", [])),
        "references": sorted(set(hints.get("references", []))),
    }
    if port.get("banner"):
        finding["banner"] = port["banner"]
    return finding


def _observations(port: Dict, family: str) -> List[str]:
    product = port.get("product")
    version = port.get("version")
    observations = []
    if product:
        observations.append(f"{family.upper()} server identified as {product} {version or ''}".strip())
    else:
        observations.append(f"{family.upper()} service responded on port {port.get('port')}.")
    if family == "http" and port.get("port") in {80, 8080}:
        observations.append("Clear-text HTTP is reachable; credentials may cross the wire unencrypted.")
    if family == "ftp":
        observations.append("FTP transmits credentials in clear text.")
    return observations


def analyze_host(host: Dict) -> List[Dict]:
    findings: List[Dict] = []
    target = host.get("target")
    for port in host.get("open_ports") or []:
        family = (port.get("service") or "").lower()
        if family not in SERVICE_FAMILY_HINTS:
            continue
        finding = _build_finding(port, family, _observations(port, family))
        if target:
            finding["target"] = target
        findings.append(finding)
    return findings


def enrich_hosts(host_reports: Sequence[Dict]) -> None:
    for host in host_reports:
        findings = analyze_host(host)
        if findings:
            host.setdefault("intel", {})
            host["intel"]["services"] = findings


def summarize(host_reports: Sequence[Dict]) -> Dict:
    all_findings: List[Dict] = []
    for host in host_reports:
        all_findings.extend((host.get("intel") or {}).get("services") or [])
    if not all_findings:
        return {}

    risk_counter = Counter(finding.get("risk") or "unknown" for finding in all_findings)
    targets = Counter(finding.get("target") or "unknown" for finding in all_findings)
    sorted_findings = sorted(
        all_findings,
        key=lambda item: (RISK_ORDER.get(item.get("risk", ""), 0), item.get("target") or "", item.get("port") or 0),
        reverse=True,
    )
    return {
        "metrics": {
            "total_findings": len(all_findings),
            "by_risk": dict(risk_counter),
            "affected_targets": len(targets),
        },
        "targets": dict(targets),
        "findings": sorted_findings,
    }


__all__ = [
    "SERVICE_SIGNATURES",
    "ServiceIdentity",
    "ServiceSignature",
    "analyze_host",
    "enrich_hosts",
    "grab_banner",
    "identify_service",
    "match_banner",
    "summarize",
]
