"""Portfolio revaluation after a price sync.

One task per active account; each account's outcome is collected rather
than raised, so a bad account never blocks the others. No retries here:
the next scheduled cycle recomputes everything anyway.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from etf_backend.errors import PersistenceError
from etf_backend.models.holding import Holding
from etf_backend.models.portfolio import Portfolio
from etf_backend.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class RevaluationResult:
    user_id: int
    success: bool
    total_value_usd: float | None = None
    error: str | None = None


class MissingPriceError(Exception):
    """A holding references a symbol with no stored price."""


def value_holdings(holdings: dict[str, float], prices: dict[str, float]) -> float:
    """Sum quantity * price over holdings. Zero quantities need no price."""
    missing = sorted(s for s, q in holdings.items() if q and s not in prices)
    if missing:
        raise MissingPriceError(f"No price for {', '.join(missing)}")
    return sum(q * prices[s] for s, q in holdings.items() if q)


def active_user_ids(engine: Engine) -> list[int]:
    with Session(engine) as session:
        return list(session.exec(select(User.id).where(User.is_active == True)).all())  # noqa: E712


def revalue_account(engine: Engine, user_id: int, prices: dict[str, float]) -> float:
    """Recompute and persist one account's valuation fields. Returns the new total."""
    with Session(engine) as session:
        rows = session.exec(select(Holding).where(Holding.user_id == user_id)).all()
        holdings = {h.symbol: h.quantity for h in rows}
        total = value_holdings(holdings, prices)

        portfolio = session.get(Portfolio, user_id)
        if portfolio is None:
            portfolio = Portfolio(user_id=user_id)
        portfolio.total_value_usd = round(total, 2)
        portfolio.all_time_profit_loss = round(
            total + portfolio.total_withdrawn_usd - portfolio.total_deposited_usd, 2
        )
        portfolio.updated_at = datetime.now(timezone.utc)
        session.add(portfolio)
        try:
            session.commit()
        except Exception as e:
            raise PersistenceError(f"Failed to save portfolio for user {user_id}: {e}") from e
        return portfolio.total_value_usd


async def revalue_active_portfolios(
    engine: Engine,
    prices: dict[str, float],
) -> list[RevaluationResult]:
    """Revalue every active account concurrently; never raises per-account errors."""
    user_ids = await asyncio.to_thread(active_user_ids, engine)
    if not user_ids:
        logger.info("Revaluation: no active accounts")
        return []

    outcomes = await asyncio.gather(
        *(asyncio.to_thread(revalue_account, engine, uid, prices) for uid in user_ids),
        return_exceptions=True,
    )

    results: list[RevaluationResult] = []
    for uid, outcome in zip(user_ids, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(f"Revaluation failed for user {uid}: {outcome}")
            results.append(RevaluationResult(user_id=uid, success=False, error=str(outcome)))
        else:
            results.append(RevaluationResult(user_id=uid, success=True, total_value_usd=outcome))

    failed = sum(1 for r in results if not r.success)
    logger.info(f"Revaluation: {len(results) - failed}/{len(results)} accounts updated")
    return results
