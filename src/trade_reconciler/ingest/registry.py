from __future__ import annotations

from dataclasses import dataclass

from trade_reconciler.errors import ImportFileError
from trade_reconciler.ingest.adapters import BrokerAdapter, GenericAdapter, WealthsimpleAdapter

AUTO_BROKER = "auto"


@dataclass(frozen=True)
class AdapterRegistry:
    """Ordered, read-only adapter list; the heuristic fallback goes last."""

    adapters: tuple[BrokerAdapter, ...]
    fallback_name: str = GenericAdapter.name

    @property
    def names(self) -> list[str]:
        return [adapter.name for adapter in self.adapters]

    def get(self, name: str) -> BrokerAdapter | None:
        key = name.strip().lower()
        for adapter in self.adapters:
            if adapter.name == key:
                return adapter
        return None

    def detect(self, headers: list[str]) -> BrokerAdapter:
        for adapter in self.adapters:
            if adapter.detect(headers):
                return adapter
        fallback = self.get(self.fallback_name)
        if fallback is None:
            raise ImportFileError("No suitable broker adapter found")
        return fallback

    def resolve(self, headers: list[str], broker: str = AUTO_BROKER) -> BrokerAdapter:
        """Pick the adapter for a file, either detected or forced by name.

        An unknown broker name falls back to the heuristic adapter.
        """
        if broker.strip().lower() == AUTO_BROKER:
            return self.detect(headers)
        adapter = self.get(broker) or self.get(self.fallback_name)
        if adapter is None:
            raise ImportFileError("No suitable broker adapter found")
        return adapter


def default_registry() -> AdapterRegistry:
    return AdapterRegistry(adapters=(WealthsimpleAdapter(), GenericAdapter()))
