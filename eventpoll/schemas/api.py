from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class AdapterHealth(BaseModel):
    name: str
    running: bool
    cycles: int
    stop_reason: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "down"]
    adapters: list[AdapterHealth]


class SourceStatusOut(BaseModel):
    """Outcome of one source in the latest poll cycle."""

    key: str
    watermark: datetime
    admitted: int
    success: bool
    error: Optional[str] = None

    class Config:
        from_attributes = True


class CycleReportOut(BaseModel):
    adapter: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    shipped: int = 0
    sources: list[SourceStatusOut] = []
