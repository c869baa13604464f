from __future__ import annotations

from datetime import datetime

import pytest

from trade_reconciler.analytics.calculations import calculate_pnl, calculate_pnl_percent
from trade_reconciler.analytics.fifo_matcher import MISSING_ENTRY_WARNING, match_transactions
from trade_reconciler.db.models import (
    InstrumentType,
    OptionType,
    PositionDirection,
    TradeAction,
    TradeSide,
    TradeStatus,
)
from trade_reconciler.ingest.normalizer import Transaction


def _tx(
    row_index: int,
    day: int,
    symbol: str,
    action: TradeAction,
    quantity: float,
    price: float,
    *,
    direction: PositionDirection = PositionDirection.LONG,
    fees: float = 0.0,
    contract: str | None = None,
) -> Transaction:
    is_option = contract is not None
    return Transaction(
        row_index=row_index,
        date=datetime(2025, 1, day),
        display_symbol=symbol,
        match_key=contract if is_option else symbol,
        position_direction=direction,
        action=action,
        price=price,
        quantity=quantity,
        fees=fees,
        instrument_type=InstrumentType.OPTION if is_option else InstrumentType.STOCK,
        notes=f"row {row_index}",
        contract_symbol=contract or symbol,
    )


def test_partial_fill_splits_entry_across_two_exits():
    result = match_transactions(
        [
            _tx(2, 1, "AAPL", TradeAction.BUY, 30, 10.0),
            _tx(3, 2, "AAPL", TradeAction.SELL, 10, 12.0),
            _tx(4, 3, "AAPL", TradeAction.SELL, 20, 14.0),
        ]
    )

    assert result.warnings == []
    assert [(t.quantity, t.exit_price, t.pnl) for t in result.trades] == [
        (10, 12.0, 20.0),
        (20, 14.0, 80.0),
    ]
    assert all(t.status == TradeStatus.CLOSED for t in result.trades)
    assert result.trades[0].pnl_percent == 20.0
    assert result.trades[0].notes == "Matched trade: row 2 → row 3"


def test_unmatched_entry_stays_open():
    result = match_transactions([_tx(2, 1, "GOOG", TradeAction.BUY, 20, 100.0)])

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.status == TradeStatus.OPEN
    assert trade.quantity == 20
    assert trade.entry_price == 100.0
    assert trade.exit_price is None
    assert trade.pnl is None
    assert result.warnings == []


def test_unmatched_exit_becomes_open_placeholder_with_warning():
    result = match_transactions([_tx(7, 1, "XYZ", TradeAction.SELL, 5, 50.0)])

    trade = result.trades[0]
    assert trade.status == TradeStatus.OPEN
    assert trade.entry_price == 50.0
    assert trade.quantity == 5
    assert MISSING_ENTRY_WARNING in trade.notes
    assert result.warnings == [
        "Row 7: Exit transaction without matching entry for XYZ - Created as OPEN trade "
        "(entry price needs update)"
    ]


def test_oldest_entry_is_consumed_first_regardless_of_input_order():
    result = match_transactions(
        [
            _tx(4, 5, "MSFT", TradeAction.SELL, 5, 30.0),
            _tx(3, 3, "MSFT", TradeAction.BUY, 5, 20.0),
            _tx(2, 1, "MSFT", TradeAction.BUY, 5, 10.0),
        ]
    )

    closed = [t for t in result.trades if t.is_closed]
    still_open = [t for t in result.trades if not t.is_closed]
    assert len(closed) == 1
    assert closed[0].entry_price == 10.0
    assert len(still_open) == 1
    assert still_open[0].entry_price == 20.0


def test_quantity_is_conserved_across_matches():
    transactions = [
        _tx(2, 1, "TSLA", TradeAction.BUY, 7, 100.0),
        _tx(3, 2, "TSLA", TradeAction.BUY, 3.5, 101.0),
        _tx(4, 3, "TSLA", TradeAction.SELL, 4, 110.0),
        _tx(5, 4, "TSLA", TradeAction.SELL, 8, 90.0),
    ]
    result = match_transactions(transactions)

    entry_total = sum(t.quantity for t in result.trades if t.is_closed or "WARNING" not in t.notes)
    exit_total = sum(t.quantity for t in result.trades if t.is_closed or "WARNING" in t.notes)
    assert entry_total == pytest.approx(10.5)
    assert exit_total == pytest.approx(12)
    assert len(result.warnings) == 1


def test_short_round_trip_profits_when_price_falls():
    result = match_transactions(
        [
            _tx(2, 1, "AMC", TradeAction.SELL, 10, 20.0, direction=PositionDirection.SHORT),
            _tx(3, 2, "AMC", TradeAction.BUY, 10, 15.0, direction=PositionDirection.SHORT),
        ]
    )
    trade = result.trades[0]
    assert trade.side == TradeSide.SELL
    assert trade.pnl == 50.0
    assert trade.pnl_percent == 25.0


def test_fees_from_both_legs_apply_to_every_match():
    result = match_transactions(
        [
            _tx(2, 1, "IBM", TradeAction.BUY, 10, 10.0, fees=1.0),
            _tx(3, 2, "IBM", TradeAction.SELL, 4, 11.0, fees=0.5),
            _tx(4, 3, "IBM", TradeAction.SELL, 6, 11.0, fees=0.5),
        ]
    )
    assert [t.fees for t in result.trades] == [1.5, 1.5]
    assert [t.pnl for t in result.trades] == [2.5, 4.5]


def test_distinct_option_contracts_never_cross_match():
    call = "AAPL 250117C00150000"
    put = "AAPL 250117P00150000"
    result = match_transactions(
        [
            _tx(2, 1, "AAPL", TradeAction.BUY, 1, 5.0, contract=call),
            _tx(3, 2, "AAPL", TradeAction.SELL, 1, 7.0, contract=put),
        ]
    )

    assert all(t.status == TradeStatus.OPEN for t in result.trades)
    by_symbol = {t.symbol: t for t in result.trades}
    assert by_symbol[call].option_type == OptionType.CALL
    assert by_symbol[call].strike == 150.0
    assert by_symbol[put].option_type == OptionType.PUT
    assert len(result.warnings) == 1


def test_pnl_percent_with_zero_entry_is_zero():
    assert calculate_pnl_percent(0, 10, TradeSide.BUY) == 0.0
    assert calculate_pnl(10, 8, 2, TradeSide.SELL) == 4


def test_same_timestamp_entries_are_consumed_in_file_order():
    result = match_transactions(
        [
            _tx(2, 1, "NVDA", TradeAction.BUY, 5, 100.0),
            _tx(3, 1, "NVDA", TradeAction.BUY, 5, 90.0),
            _tx(4, 2, "NVDA", TradeAction.SELL, 5, 110.0),
        ]
    )

    closed = [t for t in result.trades if t.is_closed]
    still_open = [t for t in result.trades if not t.is_closed]
    assert [t.entry_price for t in closed] == [100.0]
    assert [t.entry_price for t in still_open] == [90.0]


def test_same_timestamp_exits_are_consumed_in_file_order():
    result = match_transactions(
        [
            _tx(2, 1, "NVDA", TradeAction.BUY, 5, 100.0),
            _tx(3, 2, "NVDA", TradeAction.SELL, 5, 120.0),
            _tx(4, 2, "NVDA", TradeAction.SELL, 5, 80.0),
        ]
    )

    assert [t.exit_price for t in result.trades if t.is_closed] == [120.0]
    assert result.warnings[0].startswith("Row 4:")
