"""Price alert evaluation.

Reads active alerts, compares each against the stored price for its
symbol and writes one notification per hit. Prices come from the
durable store, never from any client-side cache.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from etf_backend.config import settings
from etf_backend.models.crypto_price import CryptoPrice
from etf_backend.models.notification import Notification
from etf_backend.models.price_alert import PriceAlert
from etf_backend.schemas.alert import EvaluateResult
from etf_backend.utils.constants import STATIC_ALERT_PRICES

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "price_alert"
NOTIFICATION_TITLE = "Price Alert Triggered"


def is_triggered(condition: str, price: float, target: float) -> bool:
    op = condition.lower()
    if op == "above":
        return price > target
    if op == "below":
        return price < target
    return False


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def alert_message(alert: PriceAlert, price: float) -> str:
    return (
        f"{alert.symbol} is {alert.condition.lower()} {_format_number(alert.target_price)} "
        f"(now {_format_number(price)})"
    )


def current_price(session: Session, symbol: str) -> float | None:
    """Stored price for a symbol, or the static fallback when enabled."""
    row = session.get(CryptoPrice, symbol)
    if row is not None:
        return float(row.price_usd)
    if settings.alert_price_fallback_enabled and symbol in STATIC_ALERT_PRICES:
        logger.warning(f"No stored price for {symbol}; using static fallback")
        return STATIC_ALERT_PRICES[symbol]
    return None


def evaluate_alerts(
    engine: Engine,
    user_id: int | None = None,
    dry_run: bool = False,
) -> EvaluateResult:
    """Evaluate active alerts, optionally for a single user.

    Each hit writes one notification and deactivates the alert so it does
    not fire again on the next run. ``dry_run`` counts hits but writes nothing.
    """
    with Session(engine) as session:
        stmt = select(PriceAlert).where(PriceAlert.is_active == True)  # noqa: E712
        if user_id is not None:
            stmt = stmt.where(PriceAlert.user_id == user_id)
        alerts = session.exec(stmt.order_by(PriceAlert.id)).all()

        triggered = 0
        now = datetime.now(timezone.utc)
        for alert in alerts:
            price = current_price(session, alert.symbol)
            if price is None:
                logger.info(f"No price data for {alert.symbol}; alert {alert.id} skipped")
                continue
            if not is_triggered(alert.condition, price, alert.target_price):
                continue

            triggered += 1
            logger.info(
                f"Alert {alert.id} hit: {alert.symbol} {alert.condition} "
                f"{alert.target_price} (now {price})"
            )
            if dry_run:
                continue
            session.add(Notification(
                user_id=alert.user_id,
                type=NOTIFICATION_TYPE,
                title=NOTIFICATION_TITLE,
                message=alert_message(alert, price),
            ))
            alert.is_active = False
            alert.triggered_at = now
            session.add(alert)

        if not dry_run:
            session.commit()

    logger.info(f"Checked {len(alerts)} alerts, triggered {triggered}")
    return EvaluateResult(evaluated=len(alerts), triggered=triggered)
