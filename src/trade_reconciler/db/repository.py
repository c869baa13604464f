"""Persistence gateway for reconciled trades."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Protocol
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trade_reconciler.config.settings import DEFAULT_BATCH_SIZE
from trade_reconciler.db.models import MatchedTrade, TradeRecord
from trade_reconciler.errors import PersistenceError
from trade_reconciler.ingest.field_parsers import parse_iso_datetime
from trade_reconciler.utils.logging import get_logger

logger = get_logger(__name__)


class TradeGateway(Protocol):
    def save_batch(
        self, trades: list[MatchedTrade], *, account_id: str, import_id: str | None = None
    ) -> int: ...


def _json_safe(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


def _leg_from_json(leg: dict[str, Any]) -> dict[str, Any]:
    restored = dict(leg)
    if "expiration" in restored:
        restored["expiration"] = parse_iso_datetime(restored["expiration"])
    return restored


def to_record(
    trade: MatchedTrade, *, account_id: str, import_id: str | None = None
) -> TradeRecord:
    record = TradeRecord(
        account_id=account_id,
        import_id=import_id,
        symbol=trade.symbol,
        instrument_type=trade.instrument_type,
        side=trade.side,
        status=trade.status,
        entry_date=trade.entry_date,
        entry_price=trade.entry_price,
        exit_date=trade.exit_date,
        exit_price=trade.exit_price,
        quantity=trade.quantity,
        fees=trade.fees,
        pnl=trade.pnl,
        pnl_percent=trade.pnl_percent,
        notes=trade.notes,
        strike=trade.strike,
        expiration=trade.expiration,
        option_type=trade.option_type,
        legs=_json_safe(list(trade.legs)) if trade.legs else None,
        extra=_json_safe(trade.extra) if trade.extra else None,
    )
    if trade.created_at is not None:
        record.created_at = trade.created_at
    if trade.updated_at is not None:
        record.updated_at = trade.updated_at
    return record


def to_matched_trade(record: TradeRecord) -> MatchedTrade:
    return MatchedTrade(
        symbol=record.symbol,
        instrument_type=record.instrument_type,
        side=record.side,
        entry_date=record.entry_date,
        entry_price=float(record.entry_price),
        quantity=float(record.quantity),
        status=record.status,
        fees=float(record.fees or 0.0),
        notes=record.notes or "",
        exit_date=record.exit_date,
        exit_price=float(record.exit_price) if record.exit_price is not None else None,
        pnl=float(record.pnl) if record.pnl is not None else None,
        pnl_percent=float(record.pnl_percent) if record.pnl_percent is not None else None,
        strike=float(record.strike) if record.strike is not None else None,
        expiration=record.expiration,
        option_type=record.option_type,
        legs=tuple(_leg_from_json(leg) for leg in (record.legs or []) if isinstance(leg, dict)),
        extra=dict(record.extra or {}),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SqlTradeGateway:
    """Writes each batch in its own transaction; identity comes from the database."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def save_batch(
        self, trades: list[MatchedTrade], *, account_id: str, import_id: str | None = None
    ) -> int:
        if not trades:
            return 0
        try:
            with self._session_factory() as session, session.begin():
                session.add_all(
                    [to_record(trade, account_id=account_id, import_id=import_id) for trade in trades]
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Batch write failed: {exc}") from exc
        return len(trades)


def chunked(trades: list[MatchedTrade], batch_size: int) -> list[list[MatchedTrade]]:
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    return [trades[idx : idx + batch_size] for idx in range(0, len(trades), batch_size)]


def persist_in_chunks(
    gateway: TradeGateway,
    trades: list[MatchedTrade],
    *,
    account_id: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    import_id: str | None = None,
) -> int:
    """Commit ``trades`` in sequential chunks.

    A failing chunk stops the run: earlier chunks stay committed, later chunks
    are never attempted.
    """
    run_id = import_id or str(uuid4())
    chunks = chunked(trades, batch_size)
    saved = 0
    for number, chunk in enumerate(chunks, start=1):
        try:
            saved += gateway.save_batch(chunk, account_id=account_id, import_id=run_id)
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.exception(
                "Import %s: chunk %s/%s failed after %s committed chunks",
                run_id,
                number,
                len(chunks),
                number - 1,
            )
            raise PersistenceError(
                f"Failed to save trades (batch {number} of {len(chunks)}): {exc}",
                committed_batches=number - 1,
            ) from exc
        logger.info("Import %s: committed chunk %s/%s (%s trades)", run_id, number, len(chunks), len(chunk))
    return saved


def list_trades(session: Session, account_id: str | None = None) -> list[MatchedTrade]:
    stmt = select(TradeRecord)
    if account_id:
        stmt = stmt.where(TradeRecord.account_id == account_id)
    stmt = stmt.order_by(TradeRecord.entry_date, TradeRecord.id)
    return [to_matched_trade(record) for record in session.scalars(stmt).all()]


def count_trades(session: Session, account_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(TradeRecord)
    if account_id:
        stmt = stmt.where(TradeRecord.account_id == account_id)
    return int(session.scalar(stmt) or 0)
