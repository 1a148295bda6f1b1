from __future__ import annotations

import asyncio
import threading
import traceback
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import BackgroundTasks

from netscanner import liveness, scanner, service_intel
from netscanner.ports import PortSelection, parse_duration, parse_ports
from .models import ScanRequest, ScanResult, ServiceInfo

MAX_RETAINED_JOBS = 500
FINISHED_STATES = ("completed", "cancelled", "failed")


class JobManager:
    """
    Keeps scan jobs in memory. Once more than ``max_jobs`` are held, the
    oldest finished jobs are dropped.
    """

    def __init__(self, max_jobs: int = MAX_RETAINED_JOBS) -> None:
        self.max_jobs = max_jobs
        self.jobs: Dict[uuid.UUID, ScanResult] = {}
        self._cancel_events: Dict[uuid.UUID, threading.Event] = {}
        self._lock = threading.Lock()

    def list_jobs(self) -> List[ScanResult]:
        with self._lock:
            return list(self.jobs.values())

    def get_job(self, job_id: uuid.UUID) -> Optional[ScanResult]:
        with self._lock:
            return self.jobs.get(job_id)

    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(job.status for job in self.list_jobs()))

    def submit_job(self, req: ScanRequest, background: BackgroundTasks) -> ScanResult:
        # Validate up front so bad input is rejected before a job exists.
        selection = parse_ports(req.ports)
        timeout = parse_duration(req.timeout)

        job_id = uuid.uuid4()
        result = ScanResult(job_id=job_id, status="pending", request=req)
        with self._lock:
            self._evict_finished()
            self.jobs[job_id] = result
            self._cancel_events[job_id] = threading.Event()
        background.add_task(self._run_job, job_id, req, selection, timeout)
        return result

    def _evict_finished(self) -> None:
        # Caller holds self._lock. Dicts keep insertion order, so oldest go first.
        excess = len(self.jobs) - self.max_jobs + 1
        if excess <= 0:
            return
        finished = [job_id for job_id, job in self.jobs.items() if job.status in FINISHED_STATES]
        for job_id in finished[:excess]:
            del self.jobs[job_id]
            self._cancel_events.pop(job_id, None)

    def cancel_job(self, job_id: uuid.UUID) -> Optional[ScanResult]:
        with self._lock:
            result = self.jobs.get(job_id)
            event = self._cancel_events.get(job_id)
        if result is None:
            return None
        # Finished jobs no longer hold an event; cancelling them is a no-op.
        if event is not None:
            event.set()
            if result.status == "pending":
                result.status = "cancelled"
        return result

    def _scan(
        self,
        job_id: uuid.UUID,
        req: ScanRequest,
        selection: PortSelection,
        timeout: float,
        cancel: threading.Event,
    ) -> None:
        result = self.jobs[job_id]
        if not req.skip_liveness:
            report = liveness.check_host(req.host)
            result.alive = report.alive
            result.liveness_reason = report.reason
            if not report.alive:
                result.message = report.detail or f"Host {req.host} appears to be down"
                return
        else:
            result.liveness_reason = "user-set"

        concurrency = req.concurrency if req.concurrency is not None else scanner.get_concurrency()
        config = scanner.ScanConfiguration(concurrency=concurrency, timeout=timeout)
        if selection.is_range:
            open_ports = scanner.scan_range(
                req.host, selection.start_port, selection.end_port, config=config, cancel=cancel
            )
        else:
            open_ports = scanner.scan_ports(req.host, selection.ports, config=config, cancel=cancel)
        result.open_ports = open_ports

        if req.identify:
            for port in open_ports:
                if cancel.is_set():
                    break
                identity = service_intel.identify_service(req.host, port, timeout)
                if identity:
                    result.services.append(
                        ServiceInfo(
                            port=port,
                            service=identity.protocol,
                            product=identity.product,
                            version=identity.version,
                            banner=identity.banner,
                        )
                    )

    async def _run_job(
        self,
        job_id: uuid.UUID,
        req: ScanRequest,
        selection: PortSelection,
        timeout: float,
    ) -> None:
        result = self.jobs[job_id]
        cancel = self._cancel_events[job_id]
        if cancel.is_set():
            result.status = "cancelled"
            self._release(job_id)
            return
        result.status = "running"
        result.started_at = datetime.utcnow()
        try:
            await asyncio.to_thread(self._scan, job_id, req, selection, timeout, cancel)
            result.status = "cancelled" if cancel.is_set() else "completed"
        except Exception as exc:
            result.status = "failed"
            result.message = f"{exc}\n{traceback.format_exc()}"
        finally:
            result.finished_at = datetime.utcnow()
            self._release(job_id)

    def _release(self, job_id: uuid.UUID) -> None:
        with self._lock:
            self._cancel_events.pop(job_id, None)
