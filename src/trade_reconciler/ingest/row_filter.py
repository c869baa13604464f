from __future__ import annotations

from typing import Iterable, Mapping

FOOTER_MARKERS = ("as of", "generated")


def _has_data(row: Mapping[str, object]) -> bool:
    return any(value is not None and str(value).strip() for value in row.values())


def _is_footer(row: Mapping[str, object]) -> bool:
    first_value = next(iter(row.values()), None)
    text = ("" if first_value is None else str(first_value)).lower()
    return any(marker in text for marker in FOOTER_MARKERS)


def is_meaningful_row(row: Mapping[str, object]) -> bool:
    return _has_data(row) and not _is_footer(row)


def filter_rows(rows: Iterable[Mapping[str, object]]) -> list[tuple[int, Mapping[str, object]]]:
    """Drop blank and export-footer rows, keeping each survivor's source position."""
    return [(position, row) for position, row in enumerate(rows) if is_meaningful_row(row)]


def spreadsheet_row_number(position: int) -> int:
    # Header occupies row 1.
    return position + 2
