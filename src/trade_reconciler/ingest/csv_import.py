from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Mapping, TextIO
from uuid import uuid4

import pandas as pd

from trade_reconciler.analytics.fifo_matcher import match_transactions
from trade_reconciler.config.settings import DEFAULT_MAX_REPORTED_ERRORS, Settings, get_settings
from trade_reconciler.db.models import MatchedTrade
from trade_reconciler.db.repository import TradeGateway, persist_in_chunks
from trade_reconciler.errors import ImportFileError
from trade_reconciler.ingest.adapters import BrokerAdapter
from trade_reconciler.ingest.import_result import ImportResult, ImportResultAggregator
from trade_reconciler.ingest.normalizer import normalize_rows
from trade_reconciler.ingest.registry import AUTO_BROKER, AdapterRegistry, default_registry
from trade_reconciler.ingest.row_filter import filter_rows
from trade_reconciler.utils.logging import get_logger

logger = get_logger(__name__)

CsvSource = str | Path | BinaryIO | TextIO


@dataclass(frozen=True)
class ReconciliationOutcome:
    adapter: BrokerAdapter
    trades: list[MatchedTrade]
    aggregator: ImportResultAggregator

    def result(self) -> ImportResult:
        return self.aggregator.build(success=len(self.trades))


def read_csv_rows(file_obj: CsvSource) -> tuple[list[str], list[dict[str, str]]]:
    """Read every cell as trimmed text; blank lines are kept as empty rows."""
    try:
        df = pd.read_csv(file_obj, dtype=str, keep_default_na=False, skip_blank_lines=False)
    except pd.errors.EmptyDataError as exc:
        raise ImportFileError("CSV file is empty or has no valid rows") from exc
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise ImportFileError(f"CSV parsing error: {exc}") from exc

    df.columns = [str(column).strip() for column in df.columns]
    df = df.fillna("").apply(lambda column: column.str.strip())
    return list(df.columns), df.to_dict(orient="records")


def reconcile_rows(
    headers: list[str],
    rows: list[Mapping[str, object]],
    *,
    broker: str = AUTO_BROKER,
    registry: AdapterRegistry | None = None,
    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS,
) -> ReconciliationOutcome:
    """Filter, normalize and FIFO-match parsed rows without touching storage."""
    indexed_rows = filter_rows(rows)
    if not indexed_rows:
        raise ImportFileError("CSV file is empty or has no valid rows")

    adapter = (registry or default_registry()).resolve(headers, broker=broker)
    missing_columns = adapter.missing_columns(headers)
    if missing_columns:
        raise ImportFileError(
            f"Could not locate required columns for {adapter.name} import: "
            f"{', '.join(missing_columns)}"
        )
    logger.info("Using %s adapter for %s rows", adapter.name, len(rows))

    aggregator = ImportResultAggregator(max_reported_errors=max_reported_errors)
    transactions = normalize_rows(adapter, indexed_rows, aggregator)
    matched = match_transactions(transactions)
    aggregator.extend_warnings(matched.warnings)
    return ReconciliationOutcome(adapter=adapter, trades=matched.trades, aggregator=aggregator)


def import_trades_csv(
    file_obj: CsvSource,
    *,
    account_id: str,
    gateway: TradeGateway,
    broker: str = AUTO_BROKER,
    registry: AdapterRegistry | None = None,
    settings: Settings | None = None,
) -> ImportResult:
    settings = settings or get_settings()
    headers, rows = read_csv_rows(file_obj)
    outcome = reconcile_rows(
        headers,
        rows,
        broker=broker,
        registry=registry,
        max_reported_errors=settings.max_reported_errors,
    )

    if outcome.trades:
        persist_in_chunks(
            gateway,
            outcome.trades,
            account_id=account_id,
            batch_size=settings.import_batch_size,
            import_id=str(uuid4()),
        )

    result = outcome.result()
    logger.info(
        "CSV import for account %s: %s trades, %s failed rows, %s reported errors",
        account_id,
        result.success,
        result.failed,
        len(result.errors),
    )
    return result
