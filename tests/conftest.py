"""Shared fixtures: a throwaway SQLite database and a fresh change feed per test."""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="etf-tests-")

# Settings are read at import time, so these must be set before etf_backend loads
os.environ["ETF_DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["ETF_SCHEDULER_ENABLED"] = "false"
os.environ["ETF_REDIS_URL"] = ""
os.environ["ETF_TELEGRAM_BOT_TOKEN"] = ""

import pytest  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

import etf_backend.models  # noqa: E402,F401
from etf_backend.database import engine  # noqa: E402
from etf_backend.models.holding import Holding  # noqa: E402
from etf_backend.models.portfolio import Portfolio  # noqa: E402
from etf_backend.models.user import User  # noqa: E402
from etf_backend.services.change_feed import PriceChangeFeed  # noqa: E402
from etf_backend.services.price_store import PriceStore  # noqa: E402


@pytest.fixture(autouse=True)
def db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield engine


@pytest.fixture
def feed():
    return PriceChangeFeed()


@pytest.fixture
def store(db, feed):
    return PriceStore(db, feed)


@pytest.fixture
def make_user(db):
    """Create a user with optional holdings and portfolio cash-flow totals."""

    def _make(
        email: str,
        holdings: dict[str, float] | None = None,
        deposited: float = 0.0,
        withdrawn: float = 0.0,
        is_active: bool = True,
    ) -> int:
        with Session(db) as session:
            user = User(email=email, is_active=is_active)
            session.add(user)
            session.commit()
            session.refresh(user)
            for symbol, quantity in (holdings or {}).items():
                session.add(Holding(user_id=user.id, symbol=symbol, quantity=quantity))
            session.add(Portfolio(
                user_id=user.id,
                total_deposited_usd=deposited,
                total_withdrawn_usd=withdrawn,
            ))
            session.commit()
            return user.id

    return _make
