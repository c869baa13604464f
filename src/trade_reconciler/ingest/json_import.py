"""Import of previously exported trade journals (JSON array of trade objects)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, BinaryIO, TextIO
from uuid import uuid4

from trade_reconciler.config.settings import Settings, get_settings
from trade_reconciler.db.models import (
    InstrumentType,
    MatchedTrade,
    OptionType,
    TradeSide,
    TradeStatus,
)
from trade_reconciler.db.repository import TradeGateway, persist_in_chunks
from trade_reconciler.errors import ImportFileError, RowParseError
from trade_reconciler.ingest.field_parsers import parse_iso_datetime, parse_price, parse_quantity
from trade_reconciler.ingest.import_result import ImportResult, ImportResultAggregator
from trade_reconciler.utils.logging import get_logger

logger = get_logger(__name__)

JsonSource = str | Path | BinaryIO | TextIO

# Keys mapped onto MatchedTrade fields; everything else rides along in ``extra``.
_KNOWN_KEYS = {
    "id",
    "userId",
    "accountId",
    "date",
    "symbol",
    "type",
    "side",
    "entryPrice",
    "exitPrice",
    "exitDate",
    "quantity",
    "strike",
    "expiration",
    "optionType",
    "status",
    "pnl",
    "pnlPercentage",
    "fees",
    "notes",
    "legs",
    "createdAt",
    "updatedAt",
}


def _read_text(file_obj: JsonSource) -> str:
    if isinstance(file_obj, (str, Path)):
        return Path(file_obj).read_text(encoding="utf-8")
    raw = file_obj.read()
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return raw


def _lookup_enum(enum_cls: type, value: Any, default: Any, label: str) -> Any:
    if value is None or str(value).strip() == "":
        return default
    text = str(value).strip().lower()
    for member in enum_cls:
        if member.value.lower() == text or member.name.lower() == text:
            return member
    raise RowParseError(f"Invalid {label}: {value}")


def _optional_number(item: dict[str, Any], key: str) -> float | None:
    value = item.get(key)
    if value is None or value == "":
        return None
    parsed = None if isinstance(value, bool) else parse_price(value)
    if parsed is None:
        raise RowParseError(f"Invalid {key}: {value}")
    return parsed


def _optional_datetime(item: dict[str, Any], key: str):
    value = item.get(key)
    if value is None or value == "":
        return None
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise RowParseError(f"Invalid {key}: {value}")
    return parsed


def _parse_legs(raw_legs: Any) -> tuple[dict[str, Any], ...]:
    if raw_legs is None:
        return ()
    if not isinstance(raw_legs, list):
        raise RowParseError("legs must be a list")
    legs: list[dict[str, Any]] = []
    for leg in raw_legs:
        if not isinstance(leg, dict):
            raise RowParseError("each leg must be an object")
        parsed_leg = dict(leg)
        if "expiration" in parsed_leg:
            parsed_leg["expiration"] = _optional_datetime(parsed_leg, "expiration")
        legs.append(parsed_leg)
    return tuple(legs)


def trade_from_json(item: Any) -> MatchedTrade:
    """Build a trade from one exported object; its ``id`` is dropped."""
    if not isinstance(item, dict):
        raise RowParseError("Trade entry must be an object")

    symbol = str(item.get("symbol") or "").strip().upper()
    if not symbol:
        raise RowParseError("Missing symbol")
    entry_date = _optional_datetime(item, "date")
    if entry_date is None:
        raise RowParseError("Missing date")

    quantity_value = item.get("quantity")
    quantity = None if isinstance(quantity_value, bool) else parse_quantity(quantity_value)
    if quantity is None or quantity <= 0:
        raise RowParseError(f"Invalid quantity: {quantity_value}")

    entry_price = _optional_number(item, "entryPrice")
    if entry_price is None:
        raise RowParseError("Missing entryPrice")

    exit_price = _optional_number(item, "exitPrice")
    default_status = TradeStatus.CLOSED if exit_price is not None else TradeStatus.OPEN

    return MatchedTrade(
        symbol=symbol,
        instrument_type=_lookup_enum(InstrumentType, item.get("type"), InstrumentType.STOCK, "type"),
        side=_lookup_enum(TradeSide, item.get("side"), TradeSide.BUY, "side"),
        entry_date=entry_date,
        entry_price=entry_price,
        quantity=quantity,
        status=_lookup_enum(TradeStatus, item.get("status"), default_status, "status"),
        fees=_optional_number(item, "fees") or 0.0,
        notes=str(item.get("notes") or ""),
        exit_date=_optional_datetime(item, "exitDate"),
        exit_price=exit_price,
        pnl=_optional_number(item, "pnl"),
        pnl_percent=_optional_number(item, "pnlPercentage"),
        strike=_optional_number(item, "strike"),
        expiration=_optional_datetime(item, "expiration"),
        option_type=_lookup_enum(OptionType, item.get("optionType"), None, "optionType"),
        legs=_parse_legs(item.get("legs")),
        extra={key: value for key, value in item.items() if key not in _KNOWN_KEYS},
        created_at=_optional_datetime(item, "createdAt"),
        updated_at=_optional_datetime(item, "updatedAt"),
    )


def load_trades_json(
    file_obj: JsonSource, aggregator: ImportResultAggregator
) -> list[MatchedTrade]:
    try:
        payload = json.loads(_read_text(file_obj))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ImportFileError(f"Invalid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ImportFileError("Invalid format")

    trades: list[MatchedTrade] = []
    for item_number, item in enumerate(payload, start=1):
        try:
            trades.append(trade_from_json(item))
        except RowParseError as exc:
            aggregator.record_item_failure(item_number, str(exc))
    return trades


def import_trades_json(
    file_obj: JsonSource,
    *,
    account_id: str,
    gateway: TradeGateway,
    settings: Settings | None = None,
) -> ImportResult:
    settings = settings or get_settings()
    aggregator = ImportResultAggregator(max_reported_errors=settings.max_reported_errors)
    trades = load_trades_json(file_obj, aggregator)

    saved = 0
    if trades:
        saved = persist_in_chunks(
            gateway,
            trades,
            account_id=account_id,
            batch_size=settings.import_batch_size,
            import_id=str(uuid4()),
        )
    logger.info(
        "JSON import for account %s: %s trades saved, %s items failed",
        account_id,
        saved,
        aggregator.failed,
    )
    return aggregator.build(success=saved)
