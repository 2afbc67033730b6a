"""Source routes - Latest poll cycle outcome per adapter."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from eventpoll.api.deps import get_running_adapters
from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.schemas.api import CycleReportOut, SourceStatusOut

router = APIRouter(prefix="/sources", tags=["sources"])


def _report_out(adapter: PollingAdapter) -> CycleReportOut:
    report = adapter.last_report
    if report is None:
        return CycleReportOut(adapter=adapter.name)
    return CycleReportOut(
        adapter=adapter.name,
        started_at=report.started_at,
        finished_at=report.finished_at,
        shipped=report.shipped,
        sources=[SourceStatusOut.model_validate(outcome) for outcome in report.sources],
    )


@router.get("", response_model=list[CycleReportOut])
def list_reports(adapters: List[PollingAdapter] = Depends(get_running_adapters)):
    """Latest cycle report of every adapter (empty until its first cycle)."""
    return [_report_out(adapter) for adapter in adapters]


@router.get("/{adapter_name}", response_model=CycleReportOut)
def get_report(adapter_name: str, adapters: List[PollingAdapter] = Depends(get_running_adapters)):
    for adapter in adapters:
        if adapter.name == adapter_name:
            return _report_out(adapter)
    raise HTTPException(status_code=404, detail=f"Unknown adapter: {adapter_name}")
