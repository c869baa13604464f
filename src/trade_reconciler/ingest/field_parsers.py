from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import pandas as pd
from dateutil import parser as date_parser

from trade_reconciler.db.models import InstrumentType, OptionType

ISO_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

US_DATE_FORMATS = [
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m-%d-%Y %H:%M:%S",
]

# ROOT  YYMMDD C|P STRIKE, spacing between root and date is optional.
OCC_OPTION_RE = re.compile(r"^([A-Z]+)\s*(\d{6})([CP])(\d+)$")
DISPLAY_OPTION_RE = re.compile(r"^([A-Z]+)\s+\$(\d+(?:\.\d+)?)\s+(CALL|PUT)$", re.IGNORECASE)

_CURRENCY_TOKENS = ("US$", "CA$", "C$", "USD", "CAD", "$")


@dataclass(frozen=True)
class OptionContract:
    underlying: str
    strike: float
    option_type: OptionType
    expiration: datetime | None = None


def _to_naive_utc(parsed: datetime) -> datetime:
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def parse_trade_date(value: Any) -> datetime | None:
    """Parse a broker date cell; ISO first, then US month-first layouts."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    text = str(value).strip()
    if not text:
        return None

    if "T" in text or ISO_DATE_PREFIX_RE.match(text):
        try:
            return _to_naive_utc(date_parser.isoparse(text))
        except ValueError:
            pass

    for fmt in US_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    parsed = pd.to_datetime(text, errors="coerce", utc=False)
    if isinstance(parsed, pd.Timestamp) and pd.notna(parsed):
        return _to_naive_utc(parsed.to_pydatetime())
    return None


def parse_iso_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as written by JavaScript exports.
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
    text = str(value).strip()
    if not text:
        return None
    try:
        return _to_naive_utc(date_parser.isoparse(text))
    except ValueError:
        return parse_trade_date(text)


def parse_price(value: Any) -> float | None:
    if value is None:
        return None
    text = str(value).strip()
    for token in _CURRENCY_TOKENS:
        text = text.replace(token, "")
    text = text.replace(",", "").replace(" ", "").strip()
    if text == "":
        return None
    if text.startswith("(") and text.endswith(")"):
        text = f"-{text[1:-1]}"
    try:
        parsed = float(text)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_quantity(value: Any) -> float | None:
    if value is None:
        return None
    text = "".join(str(value).replace(",", "").split())
    if text == "":
        return None
    try:
        parsed = float(text)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def is_option_symbol(symbol: str | None) -> bool:
    if not symbol:
        return False
    return bool(re.match(r"^\s*[A-Z]+\s*\d{6}[CP]\d+", symbol.strip().upper()))


def _strike_from_digits(digits: str) -> float:
    raw = int(digits)
    if len(digits) == 8:
        strike = raw / 1000
    elif len(digits) == 5:
        strike = raw / 100
    else:
        strike = raw / 1000
        if strike < 0.01:
            strike = raw / 100
        if strike < 0.01:
            strike = float(raw)
    return round(strike, 2)


def parse_option_symbol(raw: Any) -> OptionContract | None:
    if raw is None:
        return None
    text = " ".join(str(raw).strip().upper().split())
    if not text:
        return None

    m_display = DISPLAY_OPTION_RE.match(text)
    if m_display:
        underlying, strike_text, call_put = m_display.groups()
        return OptionContract(
            underlying=underlying,
            strike=float(strike_text),
            option_type=OptionType.CALL if call_put.upper() == "CALL" else OptionType.PUT,
        )

    m_occ = OCC_OPTION_RE.match(text)
    if not m_occ:
        return None
    underlying, date_digits, call_put, strike_digits = m_occ.groups()
    try:
        expiration = datetime.strptime(date_digits, "%y%m%d")
    except ValueError:
        return None
    return OptionContract(
        underlying=underlying,
        strike=_strike_from_digits(strike_digits),
        option_type=OptionType.CALL if call_put == "C" else OptionType.PUT,
        expiration=expiration,
    )


def infer_instrument_type(symbol: str, description: str | None = None) -> InstrumentType:
    upper_symbol = symbol.upper()
    desc = (description or "").lower()

    if "option" in desc or "CALL" in upper_symbol or "PUT" in upper_symbol:
        return InstrumentType.OPTION
    if "etf" in desc or "ETF" in upper_symbol:
        return InstrumentType.ETF
    if "future" in desc:
        return InstrumentType.FUTURE
    if any(keyword in desc for keyword in ("crypto", "bitcoin", "ethereum")):
        return InstrumentType.CRYPTO
    if "forex" in desc or re.search(r"\bfx\b", desc):
        return InstrumentType.FOREX
    return InstrumentType.STOCK
