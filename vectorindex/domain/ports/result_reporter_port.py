"""
Port (interface) for reporting a terminal reconciliation outcome back to the
invocation transport.
Infrastructure adapters (e.g. ProviderFrameworkReporter) must implement this interface.
"""

from abc import ABC, abstractmethod
from typing import Any

from vectorindex.domain.entities.reconcile import ReconcileResult


class IResultReporter(ABC):
    @abstractmethod
    def report(self, event: dict[str, Any], result: ReconcileResult, data: dict[str, Any] | None = None) -> dict:
        """Hand *result* to the transport that delivered *event*.

        Args:
            event:  The raw lifecycle event as delivered by the transport.
            result: Terminal outcome of the reconciliation.
            data:   Optional attributes to expose to the orchestrator on success.

        Returns:
            The payload handed to the transport.
        """
        ...
