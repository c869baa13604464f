"""Broker CSV adapters.

Each adapter answers two questions about a file: does this header row look
like my export (``detect``), and what trade does this data row describe
(``parse``). ``parse`` returns ``None`` for rows that are understood but are
not trades (dividends, transfers, expiries) and raises ``RowParseError`` for
rows that should be trades but are malformed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping

from trade_reconciler.db.models import InstrumentType, TradeAction
from trade_reconciler.errors import RowParseError
from trade_reconciler.ingest.field_parsers import (
    infer_instrument_type,
    is_option_symbol,
    parse_price,
    parse_quantity,
    parse_trade_date,
)


@dataclass(frozen=True)
class TransactionFragment:
    date: datetime | None
    symbol: str | None
    side: TradeAction | None
    entry_price: float | None
    quantity: float | None
    fees: float = 0.0
    instrument_type: InstrumentType = InstrumentType.STOCK
    contract_symbol: str | None = None
    notes: str = ""

    def missing_required_fields(self) -> list[str]:
        missing: list[str] = []
        if self.date is None:
            missing.append("date")
        if not self.symbol:
            missing.append("symbol")
        if not self.entry_price:
            missing.append("entryPrice")
        if not self.quantity:
            missing.append("quantity")
        return missing


class RowOutcomeKind(str, Enum):
    SKIP = "skip"
    FAIL = "fail"
    OK = "ok"


@dataclass(frozen=True)
class RowOutcome:
    kind: RowOutcomeKind
    fragment: TransactionFragment | None = None
    message: str | None = None

    @classmethod
    def skip(cls) -> RowOutcome:
        return cls(kind=RowOutcomeKind.SKIP)

    @classmethod
    def fail(cls, message: str) -> RowOutcome:
        return cls(kind=RowOutcomeKind.FAIL, message=message)

    @classmethod
    def ok(cls, fragment: TransactionFragment) -> RowOutcome:
        return cls(kind=RowOutcomeKind.OK, fragment=fragment)


def lower_keys(row: Mapping[str, object]) -> dict[str, str]:
    lowered: dict[str, str] = {}
    for key, value in row.items():
        lowered[str(key).strip().lower()] = "" if value is None else str(value).strip()
    return lowered


class BrokerAdapter(ABC):
    name: str = ""

    @abstractmethod
    def detect(self, headers: list[str]) -> bool:
        raise NotImplementedError

    @abstractmethod
    def parse(self, row: Mapping[str, object]) -> TransactionFragment | None:
        raise NotImplementedError

    def missing_columns(self, headers: list[str]) -> list[str]:
        """Names of required columns this adapter cannot locate in ``headers``."""
        return []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class WealthsimpleAdapter(BrokerAdapter):
    """Activity export with a fixed column contract.

    transaction_date, settlement_date, account_type, activity_type,
    activity_sub_type, direction, symbol, underlying symbol, name, currency,
    quantity, unit_price, commission, net_cash_amount
    """

    name = "wealthsimple"

    REQUIRED_HEADERS = ("activity_sub_type", "quantity", "unit_price")
    UNDERLYING_HEADERS = ("underlying symbol", "underlying_symbol")

    def detect(self, headers: list[str]) -> bool:
        lower_headers = [str(header).strip().lower() for header in headers]
        has_date = any("transaction_date" in header for header in lower_headers)
        return has_date and all(header in lower_headers for header in self.REQUIRED_HEADERS)

    def parse(self, row: Mapping[str, object]) -> TransactionFragment | None:
        lower_row = lower_keys(row)

        transaction_date = lower_row.get("transaction_date", "")
        if not transaction_date:
            raise RowParseError("Missing transaction_date")

        activity_type = lower_row.get("activity_type", "").upper()
        if activity_type and activity_type != "TRADE":
            return None

        sub_type = lower_row.get("activity_sub_type", "").upper()
        if sub_type not in {"BUY", "SELL"}:
            raise RowParseError(
                f"Invalid activity_sub_type: {sub_type or 'empty'} (must be BUY or SELL)"
            )
        side = TradeAction(sub_type)

        underlying_symbol = next(
            (lower_row[key] for key in self.UNDERLYING_HEADERS if lower_row.get(key)), ""
        )
        full_symbol = lower_row.get("symbol", "")
        symbol = (underlying_symbol or full_symbol).upper()
        if not symbol:
            raise RowParseError("Missing symbol and underlying symbol")

        quantity_text = lower_row.get("quantity", "")
        if not quantity_text:
            raise RowParseError("Missing quantity")
        quantity = parse_quantity(quantity_text)
        if quantity is None or quantity == 0:
            raise RowParseError(f"Invalid quantity: {quantity_text}")
        quantity = abs(quantity)

        unit_price_text = lower_row.get("unit_price", "")
        if not unit_price_text:
            raise RowParseError("Missing unit_price")
        entry_price = parse_price(unit_price_text)
        if entry_price is None or entry_price < 0:
            raise RowParseError(f"Invalid unit_price: {unit_price_text}")

        commission_text = lower_row.get("commission", "")
        fees = 0.0
        if commission_text:
            commission = parse_price(commission_text)
            if commission is None:
                raise RowParseError(f"Invalid commission: {commission_text}")
            fees = abs(commission)

        trade_date = parse_trade_date(transaction_date)
        if trade_date is None:
            raise RowParseError(f"Invalid transaction_date: {transaction_date}")

        name = lower_row.get("name", "")
        currency = lower_row.get("currency", "").upper()
        if is_option_symbol(full_symbol):
            instrument_type = InstrumentType.OPTION
        else:
            instrument_type = infer_instrument_type(symbol, name)

        notes_parts: list[str] = []
        if name:
            notes_parts.append(name)
        if full_symbol and full_symbol.upper() != symbol:
            notes_parts.append(f"Full symbol: {full_symbol.upper()}")
        if currency and currency != "USD":
            notes_parts.append(f"Currency: {currency}")
        notes = "Imported from Wealthsimple"
        if notes_parts:
            notes = f"{notes} - {', '.join(notes_parts)}"

        return TransactionFragment(
            date=trade_date,
            symbol=symbol,
            side=side,
            entry_price=entry_price,
            quantity=quantity,
            fees=fees,
            instrument_type=instrument_type,
            contract_symbol=full_symbol.upper() or None,
            notes=notes,
        )


class GenericAdapter(BrokerAdapter):
    """Fallback adapter that finds columns by name fragments."""

    name = "generic"

    DATE_KEYS = ("date",)
    SYMBOL_KEYS = ("symbol", "ticker", "stock")
    SIDE_KEYS = ("side", "type", "action")
    QUANTITY_KEYS = ("quantity", "qty", "shares")
    PRICE_KEYS = ("price", "entry")

    def detect(self, headers: list[str]) -> bool:
        return True

    def missing_columns(self, headers: list[str]) -> list[str]:
        columns = [str(header).strip().lower() for header in headers]
        required = {
            "date": self.DATE_KEYS,
            "symbol": self.SYMBOL_KEYS,
            "quantity": self.QUANTITY_KEYS,
        }
        return [
            field for field, needles in required.items() if self._find_column(columns, needles) is None
        ]

    @staticmethod
    def _find_column(columns: list[str], needles: tuple[str, ...]) -> str | None:
        for column in columns:
            if any(needle in column for needle in needles):
                return column
        return None

    def parse(self, row: Mapping[str, object]) -> TransactionFragment | None:
        lower_row = lower_keys(row)
        columns = list(lower_row)

        date_key = self._find_column(columns, self.DATE_KEYS)
        symbol_key = self._find_column(columns, self.SYMBOL_KEYS)
        side_key = self._find_column(columns, self.SIDE_KEYS)
        quantity_key = self._find_column(columns, self.QUANTITY_KEYS)
        price_key = self._find_column(columns, self.PRICE_KEYS)

        if not date_key or not symbol_key or not quantity_key:
            return None

        symbol = lower_row[symbol_key].upper() or None
        side_text = lower_row[side_key].lower() if side_key else ""
        side = TradeAction.SELL if ("sell" in side_text or "short" in side_text) else TradeAction.BUY

        quantity = parse_quantity(lower_row[quantity_key])
        if quantity is not None:
            quantity = abs(quantity)
        entry_price = parse_price(lower_row[price_key]) if price_key else None
        if entry_price is not None and entry_price < 0:
            raise RowParseError(f"Invalid price: {lower_row[price_key]}")

        instrument_type = (
            InstrumentType.OPTION if is_option_symbol(symbol) else infer_instrument_type(symbol or "")
        )
        return TransactionFragment(
            date=parse_trade_date(lower_row[date_key]),
            symbol=symbol,
            side=side,
            entry_price=entry_price,
            quantity=quantity,
            instrument_type=instrument_type,
            notes="Imported from CSV",
        )


def classify_row(adapter: BrokerAdapter, row: Mapping[str, object]) -> RowOutcome:
    try:
        fragment = adapter.parse(row)
    except RowParseError as exc:
        return RowOutcome.fail(str(exc))
    if fragment is None:
        return RowOutcome.skip()
    return RowOutcome.ok(fragment)
