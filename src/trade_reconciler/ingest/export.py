from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import pandas as pd

from trade_reconciler.db.models import MatchedTrade

CSV_COLUMNS = [
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
    "createdAt",
    "updatedAt",
]


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def _leg_to_json(leg: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in leg.items():
        out[key] = _iso(value) if isinstance(value, datetime) else value
    return out


def trade_to_json(trade: MatchedTrade) -> dict[str, Any]:
    payload: dict[str, Any] = dict(trade.extra)
    payload.update(
        {
            "date": _iso(trade.entry_date),
            "symbol": trade.symbol,
            "type": trade.instrument_type.value,
            "side": trade.side.value,
            "entryPrice": trade.entry_price,
            "quantity": trade.quantity,
            "status": trade.status.value,
            "fees": trade.fees,
            "notes": trade.notes,
            "createdAt": _iso(trade.created_at or trade.entry_date),
            "updatedAt": _iso(trade.updated_at or trade.created_at or trade.entry_date),
        }
    )
    optional = {
        "exitPrice": trade.exit_price,
        "exitDate": _iso(trade.exit_date),
        "pnl": trade.pnl,
        "pnlPercentage": trade.pnl_percent,
        "strike": trade.strike,
        "expiration": _iso(trade.expiration),
        "optionType": trade.option_type.value if trade.option_type else None,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    if trade.legs:
        payload["legs"] = [_leg_to_json(leg) for leg in trade.legs]
    return payload


def export_trades_json(trades: list[MatchedTrade]) -> str:
    return json.dumps([trade_to_json(trade) for trade in trades], indent=2)


def export_trades_csv(trades: list[MatchedTrade]) -> str:
    records = [trade_to_json(trade) for trade in trades]
    df = pd.DataFrame(records).reindex(columns=CSV_COLUMNS)
    return df.to_csv(index=False)
