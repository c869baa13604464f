"""Per-trade P&L formulas."""

from __future__ import annotations

from trade_reconciler.db.models import TradeSide


def calculate_pnl(entry: float, exit: float, quantity: float, side: TradeSide) -> float:
    if side == TradeSide.BUY:
        return (exit - entry) * quantity
    return (entry - exit) * quantity


def calculate_pnl_percent(entry: float, exit: float, side: TradeSide) -> float:
    if entry == 0:
        return 0.0
    if side == TradeSide.BUY:
        return ((exit - entry) / entry) * 100
    return ((entry - exit) / entry) * 100
