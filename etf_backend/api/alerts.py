"""Price alerts API."""

import asyncio

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from etf_backend.database import engine, get_session
from etf_backend.models.price_alert import PriceAlert
from etf_backend.schemas.alert import EvaluateRequest, EvaluateResult, PriceAlertCreate, PriceAlertRead
from etf_backend.services.alerts import evaluate_alerts

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.post("/evaluate", response_model=EvaluateResult)
async def evaluate(body: EvaluateRequest | None = None):
    """Check active alerts against stored prices; ``dryRun`` writes nothing."""
    body = body or EvaluateRequest()
    return await asyncio.to_thread(
        evaluate_alerts, engine, user_id=body.user_id, dry_run=body.dry_run
    )


@router.post("", response_model=PriceAlertRead, status_code=201)
def create_alert(body: PriceAlertCreate, session: Session = Depends(get_session)):
    alert = PriceAlert(**body.model_dump())
    session.add(alert)
    session.commit()
    session.refresh(alert)
    return alert


@router.get("", response_model=list[PriceAlertRead])
def list_alerts(
    user_id: int | None = None,
    active: bool | None = None,
    session: Session = Depends(get_session),
):
    stmt = select(PriceAlert).order_by(PriceAlert.id)
    if user_id is not None:
        stmt = stmt.where(PriceAlert.user_id == user_id)
    if active is not None:
        stmt = stmt.where(PriceAlert.is_active == active)
    return session.exec(stmt).all()
