from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Sequence, cast

from trade_reconciler.db.models import InstrumentType, PositionDirection, TradeAction
from trade_reconciler.errors import RowParseError
from trade_reconciler.ingest.adapters import (
    BrokerAdapter,
    RowOutcomeKind,
    TransactionFragment,
    classify_row,
    lower_keys,
)
from trade_reconciler.ingest.import_result import ImportResultAggregator
from trade_reconciler.ingest.row_filter import spreadsheet_row_number
from trade_reconciler.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transaction:
    row_index: int
    date: datetime
    display_symbol: str
    match_key: str
    position_direction: PositionDirection
    action: TradeAction
    price: float
    quantity: float
    fees: float
    instrument_type: InstrumentType
    notes: str
    contract_symbol: str

    @property
    def is_entry(self) -> bool:
        if self.position_direction == PositionDirection.LONG:
            return self.action == TradeAction.BUY
        return self.action == TradeAction.SELL


def parse_direction(value: object) -> PositionDirection:
    text = "" if value is None else str(value).strip().upper()
    if not text:
        return PositionDirection.LONG
    try:
        return PositionDirection(text)
    except ValueError as exc:
        raise RowParseError(f"Invalid direction: {text} (must be LONG or SHORT)") from exc


def normalize_fragment(
    fragment: TransactionFragment, row: Mapping[str, object], row_index: int
) -> Transaction:
    missing = fragment.missing_required_fields()
    if missing:
        raise RowParseError(f"Missing required fields: {', '.join(missing)}")
    date = cast(datetime, fragment.date)
    symbol = cast(str, fragment.symbol)
    price = cast(float, fragment.entry_price)
    quantity = cast(float, fragment.quantity)

    if quantity < 0:
        raise RowParseError(f"Invalid quantity: {quantity}")
    if price < 0:
        raise RowParseError(f"Invalid price: {price}")

    lower_row = lower_keys(row)
    direction = parse_direction(lower_row.get("direction"))
    action = fragment.side or TradeAction.BUY
    display_symbol = symbol.upper()
    contract_symbol = (
        fragment.contract_symbol or lower_row.get("symbol") or display_symbol
    ).upper()
    match_key = (
        contract_symbol if fragment.instrument_type == InstrumentType.OPTION else display_symbol
    )

    return Transaction(
        row_index=row_index,
        date=date,
        display_symbol=display_symbol,
        match_key=match_key,
        position_direction=direction,
        action=action,
        price=price,
        quantity=quantity,
        fees=abs(fragment.fees or 0.0),
        instrument_type=fragment.instrument_type,
        notes=fragment.notes,
        contract_symbol=contract_symbol,
    )


def normalize_rows(
    adapter: BrokerAdapter,
    indexed_rows: Sequence[tuple[int, Mapping[str, object]]],
    aggregator: ImportResultAggregator,
) -> list[Transaction]:
    """Run ``adapter`` over each row; bad rows are recorded, never raised."""
    transactions: list[Transaction] = []
    skipped = 0
    for position, row in indexed_rows:
        row_number = spreadsheet_row_number(position)
        outcome = classify_row(adapter, row)
        if outcome.kind == RowOutcomeKind.SKIP:
            skipped += 1
            continue
        if outcome.kind == RowOutcomeKind.FAIL:
            logger.debug("Row %s rejected by %s: %s", row_number, adapter.name, outcome.message)
            aggregator.record_failure(row_number, outcome.message or "Unknown error")
            continue

        fragment = cast(TransactionFragment, outcome.fragment)
        try:
            transactions.append(normalize_fragment(fragment, row, row_number))
        except RowParseError as exc:
            logger.debug("Row %s failed normalization: %s", row_number, exc)
            aggregator.record_failure(row_number, str(exc))

    logger.info(
        "Normalized %s transactions with %s (%s skipped, %s failed)",
        len(transactions),
        adapter.name,
        skipped,
        aggregator.failed,
    )
    return transactions
