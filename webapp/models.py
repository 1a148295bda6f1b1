from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    host: str = Field(min_length=1)
    ports: str = "1-1024"
    timeout: str = "2s"
    concurrency: Optional[int] = None
    skip_liveness: bool = False
    identify: bool = False


class ScanResponse(BaseModel):
    job_id: uuid.UUID
    status: str


class ServiceInfo(BaseModel):
    port: int
    service: str
    product: str
    version: str
    banner: str = ""


class ScanResult(BaseModel):
    job_id: uuid.UUID
    status: str
    message: Optional[str] = None
    alive: Optional[bool] = None
    liveness_reason: Optional[str] = None
    open_ports: List[int] = Field(default_factory=list)
    services: List[ServiceInfo] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    request: ScanRequest


class LivenessResponse(BaseModel):
    host: str
    alive: bool
    method: Optional[str] = None
    port: Optional[int] = None
    echo: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str
    concurrency: int
    jobs: Dict[str, int] = Field(default_factory=dict)
