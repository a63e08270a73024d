"""
AWS Lambda entry point for the `Custom::OpenSearchIndex` custom resource.

This module is the Composition Root for cloud runs. Unlike a long-lived
container, nothing is wired at import time: settings, the OpenSearch client,
the retry policy and the reporter are built fresh for every invocation and
passed explicitly, so no state leaks between lifecycle events.

Handler: vectorindex.infrastructure.entrypoints.lambda_handler.on_event

Every outcome, including malformed events and unexpected errors, is handed
to the configured reporter; a dropped result would leave CloudFormation
waiting on the resource.
"""

import logging
import time
from typing import Any, Callable, Optional

from vectorindex.application.services.retry_policy import RetryPolicy
from vectorindex.application.use_cases.reconcile_index import ReconcileIndexUseCase
from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.entities.reconcile import (
    CREATE_FAILED_PHYSICAL_ID,
    Operation,
    ReconcileRequest,
    ReconcileResult,
    ResultStatus,
    physical_id_for,
)
from vectorindex.domain.errors import InvalidSpec
from vectorindex.domain.ports.index_client_port import IIndexClient
from vectorindex.domain.ports.result_reporter_port import IResultReporter
from vectorindex.infrastructure.config.logging_config import configure_logging
from vectorindex.infrastructure.config.settings import REPORTER_CFN_RESPONSE, Settings
from vectorindex.infrastructure.entrypoints.resource_properties import parse_event, to_reconcile_request
from vectorindex.infrastructure.opensearch.opensearch_index_client import OpenSearchIndexClient
from vectorindex.infrastructure.reporting.cfn_response_reporter import CloudFormationResponseReporter
from vectorindex.infrastructure.reporting.provider_reporter import ProviderFrameworkReporter

logger = logging.getLogger(__name__)


def on_event(event: dict[str, Any], context: Any = None) -> dict:
    """Lambda handler: reconcile one lifecycle event and report the outcome."""
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        configure_logging("INFO")
        logger.error(f"Invalid function configuration: {exc}")
        result = _failed_before_reconcile(event, f"InvalidConfiguration: {exc}")
        return _fallback_reporter(event, context).report(event, result)

    configure_logging(settings.log_level)
    deadline = InvocationDeadline.from_lambda_context(context, settings.deadline_margin)
    result, request = reconcile_event(event, settings, deadline)
    return build_reporter(settings, context).report(event, result, _result_data(request, result))


def reconcile_event(
    event: dict[str, Any],
    settings: Settings,
    deadline: InvocationDeadline,
    client: Optional[IIndexClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[ReconcileResult, Optional[ReconcileRequest]]:
    """Parse *event* and run the reconciliation.

    Args:
        event:    Raw CloudFormation custom resource event.
        settings: Function configuration.
        deadline: Remaining invocation time.
        client:   IIndexClient to use; defaults to a signed OpenSearchIndexClient.
        sleep:    Backoff sleep function (tests pass a no-op).

    Returns:
        The terminal result and, when the event could be parsed, the request.
    """
    try:
        parsed = parse_event(event)
    except InvalidSpec as exc:
        logger.error(f"[{event.get('RequestId', '')}] {exc.message}")
        return _failed_before_reconcile(event, f"{exc.kind}: {exc.message}"), None

    try:
        request = to_reconcile_request(parsed)
    except InvalidSpec as exc:
        fallback_id = _fallback_physical_id(event)
        if parsed.request_type is Operation.DELETE:
            # A spec that never validated cannot have produced an index.
            logger.warning(f"[{parsed.request_id}] Delete with invalid properties, nothing to remove: {exc.message}")
            return ReconcileResult(status=ResultStatus.SUCCESS, physical_id=fallback_id), None
        logger.error(f"[{parsed.request_id}] {parsed.request_type.value} rejected: {exc.message}")
        return (
            ReconcileResult(
                status=ResultStatus.FAILED,
                physical_id=_failed_create_id(event) or fallback_id,
                reason=f"{exc.kind}: {exc.message}",
                error_kind=exc.kind,
            ),
            None,
        )

    use_case = ReconcileIndexUseCase(
        client=client or OpenSearchIndexClient(
            knn=settings.knn,
            region=settings.region,
            request_timeout=settings.request_timeout,
            deadline=deadline,
        ),
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            max_elapsed=settings.retry_max_elapsed,
            sleep=sleep,
        ),
        consistency_attempts=settings.consistency_wait_attempts,
    )
    try:
        return use_case.execute(request, deadline), request
    except Exception as exc:
        logger.exception(f"[{request.request_token}] unexpected error during reconciliation")
        return (
            ReconcileResult(
                status=ResultStatus.FAILED,
                physical_id=(
                    _failed_create_id(event)
                    or physical_id_for(request.spec.collection_endpoint, request.spec.index_name)
                ),
                reason=f"InternalError: {exc}",
                error_kind="InternalError",
            ),
            request,
        )


def build_reporter(settings: Settings, context: Any = None) -> IResultReporter:
    if settings.result_reporter == REPORTER_CFN_RESPONSE:
        return CloudFormationResponseReporter(log_stream_name=getattr(context, "log_stream_name", ""))
    return ProviderFrameworkReporter()


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _result_data(request: Optional[ReconcileRequest], result: ReconcileResult) -> dict:
    if request is None or not result.succeeded or request.operation is Operation.DELETE:
        return {}
    spec = request.spec
    return {
        "Endpoint": spec.collection_endpoint,
        "IndexName": spec.index_name,
        "VectorField": spec.vector_field,
        "Dimensions": spec.vector_dimensions,
    }


def _failed_before_reconcile(event: dict[str, Any], reason: str) -> ReconcileResult:
    return ReconcileResult(
        status=ResultStatus.FAILED,
        physical_id=_failed_create_id(event) or _fallback_physical_id(event),
        reason=reason,
        error_kind=reason.split(":", 1)[0],
    )


def _fallback_physical_id(event: dict[str, Any]) -> str:
    """Best-effort id when the event could not be turned into a request."""
    if event.get("PhysicalResourceId"):
        return str(event["PhysicalResourceId"])
    props = event.get("ResourceProperties") or {}
    endpoint, index_name = props.get("Endpoint"), props.get("IndexName")
    if isinstance(endpoint, str) and isinstance(index_name, str) and endpoint and index_name:
        return physical_id_for(endpoint, index_name)
    return str(event.get("RequestId") or "unknown-resource")


def _fallback_reporter(event: dict[str, Any], context: Any) -> IResultReporter:
    # The provider framework masks ResponseURL; a real URL means direct invocation.
    if str(event.get("ResponseURL", "")).startswith("https://"):
        return CloudFormationResponseReporter(log_stream_name=getattr(context, "log_stream_name", ""))
    return ProviderFrameworkReporter()


def _failed_create_id(event: dict[str, Any]) -> Optional[str]:
    # A failed Create must not claim the index's id, or its rollback Delete would remove it.
    if event.get("RequestType") == Operation.CREATE.value:
        return CREATE_FAILED_PHYSICAL_ID
    return None
