"""
Infrastructure adapter: CDK custom resource provider framework → IResultReporter.

The provider framework calls the handler as its `onEvent` function and reads
the return value; a raised exception is what it reports to CloudFormation as
FAILED (with the exception message as the reason).
"""

from typing import Any

from vectorindex.domain.entities.reconcile import ReconcileResult
from vectorindex.domain.ports.result_reporter_port import IResultReporter


class ReconcileFailed(Exception):
    """Raised to hand a Failed outcome to the provider framework."""

    def __init__(self, result: ReconcileResult) -> None:
        super().__init__(result.reason or "reconciliation failed")
        self.result = result


class ProviderFrameworkReporter(IResultReporter):
    def report(self, event: dict[str, Any], result: ReconcileResult, data: dict[str, Any] | None = None) -> dict:
        """Return the onEvent response, or raise ReconcileFailed for a Failed outcome."""
        if not result.succeeded:
            raise ReconcileFailed(result)
        return {
            "PhysicalResourceId": result.physical_id,
            "Data": dict(data or {}),
        }
