"""FIFO round-trip matching for imported transactions."""

from __future__ import annotations

from dataclasses import dataclass, field

from trade_reconciler.analytics.calculations import calculate_pnl, calculate_pnl_percent
from trade_reconciler.db.models import (
    InstrumentType,
    MatchedTrade,
    PositionDirection,
    TradeSide,
    TradeStatus,
)
from trade_reconciler.ingest.field_parsers import parse_option_symbol
from trade_reconciler.ingest.normalizer import Transaction
from trade_reconciler.utils.logging import get_logger
from trade_reconciler.utils.money import QUANTITY_EPSILON, round_money, round_quantity

logger = get_logger(__name__)

MISSING_ENTRY_WARNING = (
    "WARNING: Entry transaction not found. This was an exit transaction - "
    "please update entry price and close the trade when ready."
)


@dataclass(slots=True)
class QueuedLot:
    transaction: Transaction
    remaining_quantity: float


@dataclass(frozen=True)
class MatchResult:
    trades: list[MatchedTrade]
    warnings: list[str] = field(default_factory=list)


def _side_for(direction: PositionDirection) -> TradeSide:
    return TradeSide.SELL if direction == PositionDirection.SHORT else TradeSide.BUY


def _trade_symbol(tx: Transaction) -> str:
    if tx.instrument_type == InstrumentType.OPTION:
        return tx.contract_symbol
    return tx.display_symbol


def _option_fields(tx: Transaction) -> dict:
    if tx.instrument_type != InstrumentType.OPTION:
        return {}
    contract = parse_option_symbol(tx.contract_symbol)
    if contract is None:
        return {}
    return {
        "strike": contract.strike,
        "expiration": contract.expiration,
        "option_type": contract.option_type,
    }


class FIFOMatcher:
    """Pairs the oldest open transaction with the oldest close, per match key.

    Queue heads are never mutated; each queued transaction carries its own
    remaining quantity and the queues are walked with index cursors.
    """

    def __init__(self) -> None:
        self.trades: list[MatchedTrade] = []
        self.warnings: list[str] = []

    @staticmethod
    def group_transactions(transactions: list[Transaction]) -> dict[str, list[Transaction]]:
        groups: dict[str, list[Transaction]] = {}
        for tx in transactions:
            groups.setdefault(tx.match_key, []).append(tx)
        return groups

    def match(self, transactions: list[Transaction]) -> MatchResult:
        for match_key, group in self.group_transactions(transactions).items():
            self._match_group(match_key, group)
        return MatchResult(trades=list(self.trades), warnings=list(self.warnings))

    def _match_group(self, match_key: str, group: list[Transaction]) -> None:
        # sorted() is stable, so same-timestamp rows keep file order.
        ordered = sorted(group, key=lambda tx: tx.date)
        entries = [QueuedLot(tx, tx.quantity) for tx in ordered if tx.is_entry]
        exits = [QueuedLot(tx, tx.quantity) for tx in ordered if not tx.is_entry]

        entry_cursor = 0
        exit_cursor = 0
        while entry_cursor < len(entries) and exit_cursor < len(exits):
            entry = entries[entry_cursor]
            exit_lot = exits[exit_cursor]
            matched_qty = min(entry.remaining_quantity, exit_lot.remaining_quantity)

            self.trades.append(self._closed_trade(entry.transaction, exit_lot.transaction, matched_qty))

            entry.remaining_quantity = round_quantity(entry.remaining_quantity - matched_qty)
            exit_lot.remaining_quantity = round_quantity(exit_lot.remaining_quantity - matched_qty)
            if entry.remaining_quantity <= QUANTITY_EPSILON:
                entry_cursor += 1
            if exit_lot.remaining_quantity <= QUANTITY_EPSILON:
                exit_cursor += 1

        for lot in entries[entry_cursor:]:
            if lot.remaining_quantity > QUANTITY_EPSILON:
                self.trades.append(self._open_entry_trade(lot))

        for lot in exits[exit_cursor:]:
            if lot.remaining_quantity > QUANTITY_EPSILON:
                self.trades.append(self._orphan_exit_trade(lot))
                self.warnings.append(
                    f"Row {lot.transaction.row_index}: Exit transaction without matching entry "
                    f"for {lot.transaction.display_symbol} - Created as OPEN trade "
                    "(entry price needs update)"
                )

        logger.debug(
            "Matched %s: %s entries, %s exits, %s open entries, %s orphan exits",
            match_key,
            len(entries),
            len(exits),
            len(entries) - entry_cursor,
            len(exits) - exit_cursor,
        )

    @staticmethod
    def _closed_trade(entry: Transaction, exit_tx: Transaction, quantity: float) -> MatchedTrade:
        side = _side_for(entry.position_direction)
        # Both legs' full fees ride on every match they take part in (not prorated).
        total_fees = entry.fees + exit_tx.fees
        pnl = calculate_pnl(entry.price, exit_tx.price, quantity, side) - total_fees
        notes = f"Matched trade: {entry.notes or ''} → {exit_tx.notes or ''}".strip()
        return MatchedTrade(
            symbol=_trade_symbol(entry),
            instrument_type=entry.instrument_type,
            side=side,
            entry_date=entry.date,
            entry_price=entry.price,
            exit_date=exit_tx.date,
            exit_price=exit_tx.price,
            quantity=round_quantity(quantity),
            status=TradeStatus.CLOSED,
            pnl=round_money(pnl),
            pnl_percent=round_money(calculate_pnl_percent(entry.price, exit_tx.price, side)),
            fees=round_money(total_fees),
            notes=notes,
            **_option_fields(entry),
        )

    @staticmethod
    def _open_entry_trade(lot: QueuedLot) -> MatchedTrade:
        entry = lot.transaction
        direction = "short" if entry.position_direction == PositionDirection.SHORT else "long"
        return MatchedTrade(
            symbol=_trade_symbol(entry),
            instrument_type=entry.instrument_type,
            side=_side_for(entry.position_direction),
            entry_date=entry.date,
            entry_price=entry.price,
            quantity=round_quantity(lot.remaining_quantity),
            status=TradeStatus.OPEN,
            fees=round_money(entry.fees),
            notes=entry.notes or f"Imported (open {direction} position)",
            **_option_fields(entry),
        )

    @staticmethod
    def _orphan_exit_trade(lot: QueuedLot) -> MatchedTrade:
        exit_tx = lot.transaction
        return MatchedTrade(
            symbol=_trade_symbol(exit_tx),
            instrument_type=exit_tx.instrument_type,
            side=_side_for(exit_tx.position_direction),
            entry_date=exit_tx.date,
            # Placeholder: no entry leg in this file.
            entry_price=exit_tx.price,
            quantity=round_quantity(lot.remaining_quantity),
            status=TradeStatus.OPEN,
            fees=round_money(exit_tx.fees),
            notes=f"{exit_tx.notes or 'Imported'} - {MISSING_ENTRY_WARNING}",
            **_option_fields(exit_tx),
        )


def match_transactions(transactions: list[Transaction]) -> MatchResult:
    return FIFOMatcher().match(transactions)
