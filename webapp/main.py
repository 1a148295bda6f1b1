from __future__ import annotations

import uuid

from fastapi import BackgroundTasks, FastAPI, HTTPException

from netscanner import __version__, liveness, scanner
from .jobs import JobManager
from .models import HealthResponse, LivenessResponse, ScanRequest, ScanResponse, ScanResult


app = FastAPI(title="Port Scanner API", version=__version__)
job_manager = JobManager()


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        concurrency=scanner.get_concurrency(),
        jobs=job_manager.status_counts(),
    )


@app.post("/scans", response_model=ScanResponse)
def create_scan(request: ScanRequest, background: BackgroundTasks) -> ScanResponse:
    try:
        job = job_manager.submit_job(request, background)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ScanResponse(job_id=job.job_id, status=job.status)


@app.get("/scans", response_model=list[ScanResult])
def list_scans() -> list[ScanResult]:
    return job_manager.list_jobs()


@app.get("/scans/{job_id}", response_model=ScanResult)
def get_scan(job_id: uuid.UUID) -> ScanResult:
    job = job_manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.post("/scans/{job_id}/cancel", response_model=ScanResponse)
def cancel_scan(job_id: uuid.UUID) -> ScanResponse:
    job = job_manager.cancel_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return ScanResponse(job_id=job.job_id, status=job.status)


@app.get("/liveness/{host}", response_model=LivenessResponse)
def check_liveness(host: str) -> LivenessResponse:
    report = liveness.check_host(host)
    return LivenessResponse(
        host=report.host,
        alive=report.alive,
        method=report.method,
        port=report.port,
        echo=report.echo.value,
        detail=report.detail,
    )
