"""Scheduled alert check: evaluate every active alert against stored prices."""

import asyncio
import logging

from etf_backend.database import engine
from etf_backend.engine.price_sync import log_cycle
from etf_backend.schemas.alert import EvaluateResult
from etf_backend.services.alerts import evaluate_alerts
from etf_backend.services.telegram_notifier import notify

logger = logging.getLogger(__name__)


async def run_alert_check_cycle() -> EvaluateResult:
    try:
        result = await asyncio.to_thread(evaluate_alerts, engine)
    except Exception as e:
        logger.error(f"Alert check failed: {e}", exc_info=True)
        notify(f"[alert_check] ERROR: {e}")
        log_cycle(engine, "error", message=str(e), job="alert_check")
        raise

    log_cycle(
        engine,
        "success",
        message=f"Evaluated {result.evaluated}, triggered {result.triggered}",
        details=result.model_dump(),
        job="alert_check",
    )
    return result
