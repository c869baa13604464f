from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SqlEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class InstrumentType(str, Enum):
    STOCK = "Stock"
    ETF = "ETF"
    OPTION = "Option"
    FUTURE = "Future"
    CRYPTO = "Crypto"
    FOREX = "Forex"


class TradeSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class TradeStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class PositionDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OptionType(str, Enum):
    CALL = "Call"
    PUT = "Put"


@dataclass(frozen=True)
class MatchedTrade:
    """One round trip (or leftover open leg) produced by an import.

    ``quantity`` is the matched portion, not the size of the source row.
    """

    symbol: str
    instrument_type: InstrumentType
    side: TradeSide
    entry_date: datetime
    entry_price: float
    quantity: float
    status: TradeStatus
    fees: float = 0.0
    notes: str = ""
    exit_date: datetime | None = None
    exit_price: float | None = None
    pnl: float | None = None
    pnl_percent: float | None = None
    strike: float | None = None
    expiration: datetime | None = None
    option_type: OptionType | None = None
    legs: tuple[dict[str, Any], ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED


class TradeRecord(Base):
    __tablename__ = "trades"
    __table_args__ = (
        Index("ix_trades_account_entry_date", "account_id", "entry_date"),
        Index("ix_trades_account_symbol", "account_id", "symbol"),
        Index("ix_trades_import_id", "import_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    import_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    instrument_type: Mapped[InstrumentType] = mapped_column(
        SqlEnum(InstrumentType, native_enum=False), nullable=False
    )
    side: Mapped[TradeSide] = mapped_column(SqlEnum(TradeSide, native_enum=False), nullable=False)
    status: Mapped[TradeStatus] = mapped_column(
        SqlEnum(TradeStatus, native_enum=False), nullable=False, index=True
    )
    entry_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    exit_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    exit_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    fees: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pnl: Mapped[float | None] = mapped_column(Float, nullable=True)
    pnl_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    strike: Mapped[float | None] = mapped_column(Float, nullable=True)
    expiration: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    option_type: Mapped[OptionType | None] = mapped_column(
        SqlEnum(OptionType, native_enum=False), nullable=True
    )
    legs: Mapped[list | None] = mapped_column(JSON, nullable=True)
    extra: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
