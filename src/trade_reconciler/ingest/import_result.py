from __future__ import annotations

from dataclasses import dataclass, field

from trade_reconciler.config.settings import DEFAULT_MAX_REPORTED_ERRORS


@dataclass(frozen=True)
class ImportResult:
    success: int
    failed: int
    errors: list[str]


@dataclass
class ImportResultAggregator:
    """Collects row failures and warnings for one import run.

    Failures count toward ``failed``; warnings (unmatched exits) only show up in
    the reported error list. Both are kept in full here and truncated in
    :meth:`build`.
    """

    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS
    failed: int = 0
    failures: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def record_failure(self, row_number: int, message: str) -> None:
        self.failed += 1
        self.failures.append(f"Row {row_number}: {message}")

    def record_item_failure(self, item_number: int, message: str) -> None:
        self.failed += 1
        self.failures.append(f"Item {item_number}: {message}")

    def record_warning(self, message: str) -> None:
        self.warnings.append(message)

    def extend_warnings(self, messages: list[str]) -> None:
        self.warnings.extend(messages)

    @property
    def all_errors(self) -> list[str]:
        return [*self.failures, *self.warnings]

    def build(self, success: int) -> ImportResult:
        return ImportResult(
            success=success,
            failed=self.failed,
            errors=self.all_errors[: self.max_reported_errors],
        )
