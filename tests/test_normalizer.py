from __future__ import annotations

from datetime import datetime

import pytest

from trade_reconciler.db.models import InstrumentType, PositionDirection, TradeAction
from trade_reconciler.errors import RowParseError
from trade_reconciler.ingest.adapters import GenericAdapter, TransactionFragment
from trade_reconciler.ingest.import_result import ImportResultAggregator
from trade_reconciler.ingest.normalizer import normalize_fragment, normalize_rows, parse_direction
from trade_reconciler.ingest.row_filter import filter_rows, is_meaningful_row, spreadsheet_row_number


def _fragment(**overrides) -> TransactionFragment:
    values = {
        "date": datetime(2025, 1, 2),
        "symbol": "aapl",
        "side": TradeAction.BUY,
        "entry_price": 10.0,
        "quantity": 5.0,
        "fees": -1.0,
    }
    values.update(overrides)
    return TransactionFragment(**values)


@pytest.mark.parametrize(
    ("direction", "action", "is_entry"),
    [
        ("LONG", TradeAction.BUY, True),
        ("LONG", TradeAction.SELL, False),
        ("SHORT", TradeAction.SELL, True),
        ("SHORT", TradeAction.BUY, False),
        ("", TradeAction.BUY, True),
    ],
)
def test_entry_exit_truth_table(direction, action, is_entry):
    tx = normalize_fragment(_fragment(side=action), {"direction": direction}, row_index=2)
    assert tx.is_entry is is_entry


def test_parse_direction_defaults_long_and_rejects_unknown():
    assert parse_direction(None) == PositionDirection.LONG
    assert parse_direction(" short ") == PositionDirection.SHORT
    with pytest.raises(RowParseError, match="Invalid direction: SIDEWAYS"):
        parse_direction("sideways")


def test_missing_fields_listed_in_order():
    fragment = _fragment(date=None, entry_price=0.0, quantity=None)
    with pytest.raises(RowParseError) as excinfo:
        normalize_fragment(fragment, {}, row_index=4)
    assert str(excinfo.value) == "Missing required fields: date, entryPrice, quantity"


def test_normalize_fragment_uppercases_and_uses_contract_key_for_options():
    stock = normalize_fragment(_fragment(), {}, row_index=2)
    assert stock.display_symbol == "AAPL"
    assert stock.match_key == "AAPL"
    assert stock.fees == 1.0

    option = normalize_fragment(
        _fragment(
            instrument_type=InstrumentType.OPTION,
            contract_symbol="aapl 250117c00150000",
        ),
        {},
        row_index=3,
    )
    assert option.display_symbol == "AAPL"
    assert option.match_key == "AAPL 250117C00150000"


def test_row_filter_drops_blank_and_footer_rows_but_keeps_positions():
    rows = [
        {"Date": "2025-01-02", "Symbol": "AAPL"},
        {"Date": "", "Symbol": "  "},
        {"Date": "2025-01-03", "Symbol": "MSFT"},
        {"Date": "As of 2025-01-31", "Symbol": ""},
        {"Date": "Generated by broker", "Symbol": ""},
    ]
    kept = filter_rows(rows)
    assert [position for position, _ in kept] == [0, 2]
    assert not is_meaningful_row({"a": None, "b": ""})
    assert spreadsheet_row_number(0) == 2


def test_normalize_rows_reports_spreadsheet_row_numbers():
    rows = [
        {"Date": "2025-01-02", "Symbol": "AAPL", "Side": "Buy", "Quantity": "5", "Price": "10"},
        {"Date": "", "Symbol": "", "Side": "", "Quantity": "", "Price": ""},
        {"Date": "2025-01-03", "Symbol": "AAPL", "Side": "Sell", "Quantity": "5", "Price": ""},
        {
            "Date": "2025-01-04",
            "Symbol": "AAPL",
            "Side": "Buy",
            "Quantity": "1",
            "Price": "1",
            "Direction": "UP",
        },
    ]
    aggregator = ImportResultAggregator()
    transactions = normalize_rows(GenericAdapter(), filter_rows(rows), aggregator)

    assert [tx.row_index for tx in transactions] == [2]
    assert aggregator.failed == 2
    assert aggregator.failures == [
        "Row 4: Missing required fields: entryPrice",
        "Row 5: Invalid direction: UP (must be LONG or SHORT)",
    ]
