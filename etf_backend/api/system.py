"""System API: health check, scheduler status, manual job trigger, sync logs."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from etf_backend.api.deps import get_price_store
from etf_backend.database import get_session
from etf_backend.models.sync_log import SyncLog
from etf_backend.services.change_feed import price_feed
from etf_backend.services.price_store import PriceStore
from etf_backend.utils.constants import SCHEDULED_JOBS

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check(store: PriceStore = Depends(get_price_store)):
    last_sync = store.latest_snapshot_time()
    return {
        "status": "ok",
        "last_price_update": last_sync.isoformat() if last_sync else None,
        "realtime_subscribers": price_feed.subscriber_count,
    }


@router.get("/scheduler")
def scheduler_status():
    """Current scheduler state with job details."""
    from etf_backend.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/trigger/{job}")
async def trigger_job(job: str):
    """Manually run one scheduled job now. Service errors map to their own status."""
    if job not in SCHEDULED_JOBS:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job}'")
    from etf_backend.engine.scheduler import run_job

    result = await run_job(job)
    return {"status": "ok", "job": job, "result": result.model_dump(mode="json")}


@router.get("/logs", response_model=list[SyncLog])
def sync_logs(
    job: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(SyncLog).order_by(SyncLog.timestamp.desc(), SyncLog.id.desc())
    if job is not None:
        stmt = stmt.where(SyncLog.job == job)
    if status is not None:
        stmt = stmt.where(SyncLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()
