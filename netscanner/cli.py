"""
Command-line interface for the scanner package.
"""

from __future__ import annotations

import argparse
import sys
from typing import Dict, List, Optional, Sequence

from . import __version__, config as config_module
from . import liveness, reporting, scanner, service_intel
from .config import ConfigLoadError
from .ports import PortSelection, parse_duration, parse_ports

DEFAULT_PORTS = "1-1024"
DEFAULT_TIMEOUT = "2s"


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(
        prog="netscanner",
        description="A fast TCP port scanner.",
        epilog=(
            "Examples:\n"
            "  netscanner --host 192.168.1.1 --ports 1-1000\n"
            "  netscanner --host example.com --ports 22,80,443,8080\n"
            "  netscanner --host 192.168.1.1 --ports 1-100 --timeout 5s --concurrent 50"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser_obj.add_argument("--config", help="Load defaults from a JSON configuration file.")
    parser_obj.add_argument("--host", help="Target host to scan (required).")
    parser_obj.add_argument(
        "-p",
        "--ports",
        help=f"Ports to scan, e.g. '80,443' or '1-1000' (default: {DEFAULT_PORTS}).",
    )
    parser_obj.add_argument(
        "-t",
        "--timeout",
        help=f"Timeout for each port probe, e.g. '500ms' or '2s' (default: {DEFAULT_TIMEOUT}).",
    )
    parser_obj.add_argument(
        "-c",
        "--concurrent",
        type=int,
        help=f"Number of concurrent probes (default: {scanner.DEFAULT_CONCURRENCY}).",
    )
    parser_obj.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output.")
    parser_obj.add_argument(
        "--skip-liveness",
        action="store_true",
        help="Scan even if the host does not answer the liveness check.",
    )
    parser_obj.add_argument(
        "--identify",
        action="store_true",
        help="Grab banners from open ports and match them against known service signatures.",
    )
    parser_obj.add_argument(
        "--intel",
        action="store_true",
        help="Add service exposure findings for identified services (implies --identify).",
    )
    parser_obj.add_argument("--output-json", help="Write the structured report to PATH as JSON.")
    parser_obj.add_argument("--save-report", help="Write the text report to PATH.")
    parser_obj.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser_obj


def _merge_config(args: argparse.Namespace, parser_obj: argparse.ArgumentParser) -> Dict:
    config_data: Dict = {}
    if not args.config:
        return config_data

    try:
        config_data = config_module.load_config(args.config)
    except ConfigLoadError as exc:
        parser_obj.error(str(exc))
    return config_data


def _resolve_ports(
    args: argparse.Namespace,
    config_data: Dict,
    parser_obj: argparse.ArgumentParser,
) -> PortSelection:
    spec = args.ports or config_data.get("ports") or DEFAULT_PORTS
    try:
        return parse_ports(str(spec))
    except ValueError as exc:
        parser_obj.error(f"Error parsing ports: {exc}")
    raise AssertionError("unreachable")  # pragma: no cover


def _resolve_timeout(
    args: argparse.Namespace,
    config_data: Dict,
    parser_obj: argparse.ArgumentParser,
) -> float:
    value = args.timeout if args.timeout is not None else config_data.get("timeout", DEFAULT_TIMEOUT)
    try:
        return parse_duration(value)
    except ValueError as exc:
        parser_obj.error(f"Error parsing timeout: {exc}")
    raise AssertionError("unreachable")  # pragma: no cover


def _resolve_concurrency(
    args: argparse.Namespace,
    config_data: Dict,
    parser_obj: argparse.ArgumentParser,
) -> int:
    if args.concurrent is not None:
        return args.concurrent
    value = config_data.get("concurrency", scanner.DEFAULT_CONCURRENCY)
    try:
        return int(value)
    except (TypeError, ValueError):
        parser_obj.error(f"Invalid concurrency value in config: {value!r}")
    raise AssertionError("unreachable")  # pragma: no cover


def _resolve_flag(args: argparse.Namespace, config_data: Dict, name: str) -> bool:
    return bool(getattr(args, name) or config_data.get(name))


def _identify_services(
    host: str,
    open_ports: Sequence[int],
    timeout: float,
    verbose: bool,
) -> Dict[int, Optional[service_intel.ServiceIdentity]]:
    services: Dict[int, Optional[service_intel.ServiceIdentity]] = {}
    for port in open_ports:
        identity = service_intel.identify_service(host, port, timeout)
        services[port] = identity
        if verbose:
            if identity:
                print(f"[+] Port {port}: {identity.product} {identity.version}".rstrip())
            else:
                print(f"[-] Port {port}: no matching service signature")
    return services


def _save_outputs(
    host_reports: List[Dict],
    output_json: Optional[str],
    save_report: Optional[str],
    settings: Dict,
) -> None:
    if save_report:
        reporting.save_text_report(save_report, reporting.render_text_report(host_reports))
        print(f"[+] Text report saved to {save_report}")
    if output_json:
        combined = {
            "hosts": host_reports,
            "summary": reporting.summarize_reports(host_reports),
            "settings": settings,
        }
        intel = service_intel.summarize(host_reports)
        if intel:
            combined["service-intel"] = intel
        reporting.save_json_report(output_json, combined)
        print(f"[+] Structured report saved to {output_json}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)

    config_data = _merge_config(args, parser_obj)
    host = (args.host or config_data.get("host") or "").strip()
    if not host:
        parser_obj.error("host is required")

    selection = _resolve_ports(args, config_data, parser_obj)
    timeout = _resolve_timeout(args, config_data, parser_obj)
    concurrency = _resolve_concurrency(args, config_data, parser_obj)
    verbose = _resolve_flag(args, config_data, "verbose")
    skip_liveness = _resolve_flag(args, config_data, "skip_liveness")
    intel_enabled = _resolve_flag(args, config_data, "intel")
    identify = intel_enabled or _resolve_flag(args, config_data, "identify")
    output_json = args.output_json or config_data.get("output_json")
    save_report = args.save_report or config_data.get("save_report")

    scanner.set_concurrency(concurrency)
    scan_config = scanner.ScanConfiguration(concurrency=scanner.get_concurrency(), timeout=timeout)
    settings = {
        "ports": list(selection.ports) if not selection.is_range else f"{selection.start_port}-{selection.end_port}",
        "timeout": timeout,
        "concurrency": scan_config.concurrency,
        "skip_liveness": skip_liveness,
        "identify": identify,
        "intel": intel_enabled,
    }

    liveness_report = None
    if not skip_liveness:
        if verbose:
            print(f"[*] Checking if host {host} is alive...")
        liveness_report = liveness.check_host(host)
        if not liveness_report.alive:
            host_report = reporting.build_host_report(host, liveness_report, [])
            print(reporting.render_text_report([host_report]))
            _save_outputs([host_report], output_json, save_report, settings)
            sys.exit(1)
        if verbose:
            print(f"[+] Host {host} responded ({liveness_report.reason})")

    if verbose:
        if selection.is_range:
            print(
                f"[*] Scanning port range {selection.start_port}-{selection.end_port} on {host} "
                f"with {scan_config.concurrency} concurrent scanners"
            )
        else:
            print(f"[*] Scanning {len(selection)} individual ports on {host}")

    try:
        if selection.is_range:
            open_ports = scanner.scan_range(host, selection.start_port, selection.end_port, config=scan_config)
        else:
            open_ports = scanner.scan_ports(host, selection.ports, config=scan_config)
    except KeyboardInterrupt:
        print("\n[!] Scan interrupted.", file=sys.stderr)
        sys.exit(130)

    services = _identify_services(host, open_ports, timeout, verbose) if identify else {}
    host_report = reporting.build_host_report(host, liveness_report, open_ports, services)
    host_reports = [host_report]
    if intel_enabled:
        service_intel.enrich_hosts(host_reports)

    print(reporting.render_text_report(host_reports))
    if verbose:
        print(reporting.render_summary_text(reporting.summarize_reports(host_reports)))
    _save_outputs(host_reports, output_json, save_report, settings)
