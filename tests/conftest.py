from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from trade_reconciler.config.settings import Settings
from trade_reconciler.db.models import Base, MatchedTrade
from trade_reconciler.errors import PersistenceError

WEALTHSIMPLE_HEADER = (
    "transaction_date,settlement_date,account_type,activity_type,activity_sub_type,"
    "direction,symbol,underlying symbol,name,currency,quantity,unit_price,commission,"
    "net_cash_amount"
)


@dataclass
class FakeGateway:
    """Records batches in memory; ``fail_on`` makes that batch number raise."""

    fail_on: int | None = None
    batches: list[list[MatchedTrade]] = field(default_factory=list)
    calls: int = 0

    def save_batch(
        self, trades: list[MatchedTrade], *, account_id: str, import_id: str | None = None
    ) -> int:
        self.calls += 1
        if self.fail_on is not None and self.calls == self.fail_on:
            raise PersistenceError("disk full")
        self.batches.append(list(trades))
        return len(trades)

    @property
    def saved(self) -> list[MatchedTrade]:
        return [trade for batch in self.batches for trade in batch]


@pytest.fixture
def engine() -> Engine:
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session_maker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@pytest.fixture
def db_session(session_maker: sessionmaker[Session]) -> Session:
    with session_maker() as session:
        yield session


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def import_settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite:///:memory:",
        import_batch_size=450,
        max_reported_errors=10,
        log_level="DEBUG",
    )


@pytest.fixture
def wealthsimple_csv() -> str:
    return "\n".join(
        [
            WEALTHSIMPLE_HEADER,
            "2025-01-02,2025-01-03,TFSA,Trade,BUY,LONG,AAPL,,Apple Inc,USD,30,10.00,1.00,-301.00",
            "2025-01-05,2025-01-06,TFSA,Trade,SELL,LONG,AAPL,,Apple Inc,USD,-10,12.00,0.50,119.50",
            "2025-01-07,2025-01-08,TFSA,Trade,SELL,LONG,AAPL,,Apple Inc,USD,-20,14.00,0.00,280.00",
            "2025-01-10,2025-01-10,TFSA,Dividend,,,AAPL,,Apple Inc,USD,0,0,0,4.20",
        ]
    )
