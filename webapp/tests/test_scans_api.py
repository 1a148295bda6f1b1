from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from netscanner.liveness import EchoStatus, LivenessReport
from netscanner.service_intel import ServiceIdentity
from webapp import jobs, main
from webapp.jobs import JobManager
from webapp.models import ScanRequest, ScanResult


@pytest.fixture()
def test_client(monkeypatch):
    state = {"alive": True, "open": [22, 443], "calls": []}

    def check_host(host):
        if state["alive"]:
            return LivenessReport(host=host, alive=True, method="tcp", port=80)
        return LivenessReport(
            host=host,
            alive=False,
            method="icmp",
            echo=EchoStatus.UNAVAILABLE,
            detail="ICMP echo fallback unavailable (raw sockets need root or CAP_NET_RAW)",
        )

    def scan_range(host, start_port, end_port, config=None, cancel=None):
        state["calls"].append(("range", host, start_port, end_port, config))
        return [port for port in state["open"] if start_port <= port <= end_port]

    def scan_ports(host, ports, config=None, cancel=None):
        state["calls"].append(("ports", host, tuple(ports), config))
        return [port for port in state["open"] if port in ports]

    monkeypatch.setattr(jobs.liveness, "check_host", check_host)
    monkeypatch.setattr(main.liveness, "check_host", check_host)
    monkeypatch.setattr(jobs.scanner, "scan_range", scan_range)
    monkeypatch.setattr(jobs.scanner, "scan_ports", scan_ports)
    monkeypatch.setattr(
        jobs.service_intel,
        "identify_service",
        lambda host, port, timeout: ServiceIdentity("ssh", "OpenSSH", "9.6") if port == 22 else None,
    )

    job_manager = JobManager()
    main.job_manager = job_manager

    client = TestClient(main.app)
    try:
        yield client, job_manager, state
    finally:
        client.close()


def test_health(test_client):
    client, _, _ = test_client
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["concurrency"] >= 1


def test_create_scan_runs_in_background(test_client):
    client, _, state = test_client
    response = client.post("/scans", json={"host": "10.0.0.5", "ports": "1-1000", "concurrency": 10})
    assert response.status_code == 200
    job_id = response.json()["job_id"]

    result = client.get(f"/scans/{job_id}").json()
    assert result["status"] == "completed"
    assert result["alive"] is True
    assert result["liveness_reason"] == "tcp/80"
    assert result["open_ports"] == [22, 443]
    kind, host, start, end, config = state["calls"][0]
    assert (kind, host, start, end) == ("range", "10.0.0.5", 1, 1000)
    assert config.concurrency == 10
    assert config.timeout == 2.0


def test_port_list_and_identification(test_client):
    client, _, state = test_client
    response = client.post(
        "/scans",
        json={"host": "h", "ports": "22,80,443", "timeout": "500ms", "identify": True, "skip_liveness": True},
    )
    job_id = response.json()["job_id"]

    result = client.get(f"/scans/{job_id}").json()
    assert result["liveness_reason"] == "user-set"
    assert result["open_ports"] == [22, 443]
    assert result["services"] == [
        {"port": 22, "service": "ssh", "product": "OpenSSH", "version": "9.6", "banner": ""}
    ]
    assert state["calls"][0][2] == (22, 80, 443)


def test_down_host_completes_without_scanning(test_client):
    client, _, state = test_client
    state["alive"] = False
    job_id = client.post("/scans", json={"host": "dark"}).json()["job_id"]

    result = client.get(f"/scans/{job_id}").json()
    assert result["status"] == "completed"
    assert result["alive"] is False
    assert "CAP_NET_RAW" in result["message"]
    assert state["calls"] == []


@pytest.mark.parametrize("body", [{"host": "h", "ports": "0-5"}, {"host": "h", "timeout": "later"}])
def test_invalid_input_rejected(test_client, body):
    client, job_manager, _ = test_client
    response = client.post("/scans", json=body)
    assert response.status_code == 400
    assert job_manager.list_jobs() == []


def test_empty_host_rejected(test_client):
    client, _, _ = test_client
    assert client.post("/scans", json={"host": ""}).status_code == 422


def test_list_and_unknown_scan(test_client):
    client, _, _ = test_client
    client.post("/scans", json={"host": "a", "ports": "22"})
    client.post("/scans", json={"host": "b", "ports": "22"})
    assert len(client.get("/scans").json()) == 2
    assert client.get(f"/scans/{uuid.uuid4()}").status_code == 404


def test_cancel_pending_job(test_client):
    client, job_manager, _ = test_client
    job_id = uuid.uuid4()
    job_manager.jobs[job_id] = ScanResult(job_id=job_id, status="pending", request=ScanRequest(host="h"))
    job_manager._cancel_events[job_id] = jobs.threading.Event()

    response = client.post(f"/scans/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert job_manager._cancel_events[job_id].is_set()
    assert client.post(f"/scans/{uuid.uuid4()}/cancel").status_code == 404


def test_liveness_endpoint(test_client):
    client, _, state = test_client
    state["alive"] = False
    payload = client.get("/liveness/dark").json()
    assert payload["alive"] is False
    assert payload["echo"] == "unavailable"
    assert payload["method"] == "icmp"


def test_finished_job_releases_cancel_event(test_client):
    client, job_manager, _ = test_client
    job_id = client.post("/scans", json={"host": "h", "ports": "22"}).json()["job_id"]

    assert client.get(f"/scans/{job_id}").json()["status"] == "completed"
    assert job_manager._cancel_events == {}

    response = client.post(f"/scans/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_oldest_finished_jobs_are_evicted(test_client):
    client, _, _ = test_client
    main.job_manager = JobManager(max_jobs=2)

    job_ids = [client.post("/scans", json={"host": host, "ports": "22"}).json()["job_id"] for host in "abc"]

    assert len(client.get("/scans").json()) == 2
    assert client.get(f"/scans/{job_ids[0]}").status_code == 404
    assert client.get(f"/scans/{job_ids[2]}").json()["status"] == "completed"
