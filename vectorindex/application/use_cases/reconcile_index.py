"""
Use-case: drive one lifecycle request (Create / Update / Delete) to a terminal outcome.
Depends only on Domain ports and entities and on application services.

States: Describing -> Planning -> Executing -> Reporting -> Terminal.
Idempotency is structural: describe is always fresh, and create / add-field /
delete are no-ops once their target state holds, so re-delivering the same
request converges to the same result without duplicated effects. The request
token is only used to correlate log lines.
"""

import logging
from typing import Optional

from vectorindex.application.services.convergence_planner import plan
from vectorindex.application.services.retry_policy import RetryPolicy
from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.entities.index_spec import IndexSpec, ObservedIndex
from vectorindex.domain.entities.plan import AddMetadataField, CreateIndex, DeleteIndex, PlanStep
from vectorindex.domain.entities.reconcile import (
    CREATE_FAILED_PHYSICAL_ID,
    Operation,
    ReconcileRequest,
    ReconcileResult,
    ResultStatus,
    physical_id_for,
)
from vectorindex.domain.errors import (
    AlreadyExists,
    ConflictError,
    FieldExists,
    IndexProvisioningError,
    InvalidSpec,
    NotFound,
    ReconcileTimeout,
)
from vectorindex.domain.ports.index_client_port import IIndexClient

logger = logging.getLogger(__name__)


class ReconcileIndexUseCase:
    DEFAULT_CONSISTENCY_ATTEMPTS: int = 5

    def __init__(
        self,
        client: IIndexClient,
        retry_policy: RetryPolicy,
        consistency_attempts: int = DEFAULT_CONSISTENCY_ATTEMPTS,
    ) -> None:
        """
        Args:
            client:               IIndexClient implementation (e.g. OpenSearchIndexClient).
            retry_policy:         Wraps every remote call.
            consistency_attempts: Polls allowed while waiting for a prior write
                                  to become visible to describe.
        """
        self._client = client
        self._retry = retry_policy
        self._consistency_attempts = consistency_attempts

    def execute(
        self,
        request: ReconcileRequest,
        deadline: Optional[InvocationDeadline] = None,
    ) -> ReconcileResult:
        """Reconcile the remote index toward *request.spec*.

        Never raises for provisioning errors: every outcome, including timeouts
        and conflicts, is returned as a ReconcileResult.
        """
        deadline = deadline or InvocationDeadline.never()
        spec = request.spec
        physical_id = physical_id_for(spec.collection_endpoint, spec.index_name)
        tag = f"[{request.request_token}] {request.operation.value} {physical_id}"

        try:
            spec.validate()
        except InvalidSpec as exc:
            if request.operation is Operation.DELETE:
                # Nothing can have been created from a spec that never validated.
                logger.warning(f"{tag}: invalid spec on delete, nothing to remove ({exc.message})")
                return ReconcileResult(
                    status=ResultStatus.SUCCESS,
                    physical_id=request.previous_physical_id or physical_id,
                )
            return self._failed(tag, self._failure_id(request, physical_id), exc)

        if request.operation is Operation.DELETE and request.previous_physical_id not in (None, physical_id):
            # A failed create, or an id this spec does not resolve to.
            logger.info(f"{tag}: resource id {request.previous_physical_id!r} names no index, nothing to remove")
            return ReconcileResult(status=ResultStatus.SUCCESS, physical_id=request.previous_physical_id)

        applied: list[str] = []
        try:
            logger.info(f"{tag}: describing")
            observed = self._describe(request, physical_id, deadline)

            logger.info(f"{tag}: planning against {'absent index' if observed is None else 'existing index'}")
            steps = plan(request.operation, spec, observed)
            if not steps:
                logger.info(f"{tag}: already converged, nothing to do")

            for position, step in enumerate(steps, start=1):
                if deadline.expired():
                    raise ReconcileTimeout(
                        f"invocation deadline reached after {len(applied)} of {len(steps)} steps; "
                        f"{step.describe()} was not started"
                    )
                logger.info(f"{tag}: executing step {position}/{len(steps)} {step.describe()}")
                self._apply(step, spec, tag, deadline)
                applied.append(step.describe())
        except IndexProvisioningError as exc:
            return self._failed(tag, self._failure_id(request, physical_id, applied), exc, applied)

        logger.info(f"{tag}: succeeded ({', '.join(applied) or 'no changes'})")
        return ReconcileResult(
            status=ResultStatus.SUCCESS,
            physical_id=physical_id,
            applied_steps=tuple(applied),
        )

    # ------------------------------------------------------------------
    # Describing
    # ------------------------------------------------------------------

    def _describe(
        self,
        request: ReconcileRequest,
        physical_id: str,
        deadline: InvocationDeadline,
    ) -> Optional[ObservedIndex]:
        spec = request.spec
        if not self._expects_existing(request, physical_id):
            return self._retry.call(
                self._client.describe, spec.collection_endpoint, spec.index_name, deadline=deadline
            )
        # The orchestrator believes the index exists; an absent answer may just
        # be a prior create that is not visible yet.
        return self._retry.wait_until(
            lambda: self._client.describe(spec.collection_endpoint, spec.index_name),
            lambda observed: observed is not None,
            attempts=self._consistency_attempts,
            deadline=deadline,
            description=f"index {spec.index_name!r}",
        )

    @staticmethod
    def _expects_existing(request: ReconcileRequest, physical_id: str) -> bool:
        if request.operation is Operation.DELETE:
            return True
        if request.operation is Operation.UPDATE:
            return request.previous_physical_id in (None, physical_id)
        return False

    # ------------------------------------------------------------------
    # Executing
    # ------------------------------------------------------------------

    def _apply(self, step: PlanStep, spec: IndexSpec, tag: str, deadline: InvocationDeadline) -> None:
        endpoint = spec.collection_endpoint
        if isinstance(step, CreateIndex):
            self._create(step.spec, tag, deadline)
        elif isinstance(step, AddMetadataField):
            try:
                self._retry.call(
                    self._client.add_metadata_field, endpoint, step.index_name, step.field, deadline=deadline
                )
            except FieldExists:
                logger.info(f"{tag}: field {step.field.name!r} already exists, skipping")
        elif isinstance(step, DeleteIndex):
            try:
                self._retry.call(self._client.delete, endpoint, step.index_name, deadline=deadline)
            except NotFound:
                logger.info(f"{tag}: index {step.index_name!r} already gone")
        else:
            raise TypeError(f"Unknown plan step: {step!r}")

    def _create(self, spec: IndexSpec, tag: str, deadline: InvocationDeadline) -> None:
        endpoint = spec.collection_endpoint
        try:
            self._retry.call(self._client.create, endpoint, spec, deadline=deadline)
        except AlreadyExists:
            logger.info(f"{tag}: index already exists, verifying it matches")
            existing = self._wait_visible(spec, deadline)
            if existing is None:
                raise
            # Raises ConflictError on an immutable mismatch.
            remaining = plan(Operation.CREATE, spec, existing)
            if remaining:
                raise ConflictError(
                    f"index {spec.index_name!r} already exists with a different mapping "
                    f"(would still need {', '.join(s.describe() for s in remaining)})"
                )
            return

        # The create is acknowledged from here on; visibility is only waited for.
        try:
            visible = self._wait_visible(spec, deadline)
        except IndexProvisioningError as exc:
            logger.warning(
                f"{tag}: stopped waiting for index {spec.index_name!r} to appear ({exc.kind}: {exc.message})"
            )
            return
        if visible is None:
            logger.warning(
                f"{tag}: index {spec.index_name!r} was created but is not yet visible "
                f"after {self._consistency_attempts} polls"
            )

    def _wait_visible(self, spec: IndexSpec, deadline: InvocationDeadline) -> Optional[ObservedIndex]:
        return self._retry.wait_until(
            lambda: self._client.describe(spec.collection_endpoint, spec.index_name),
            lambda observed: observed is not None,
            attempts=self._consistency_attempts,
            deadline=deadline,
            description=f"index {spec.index_name!r}",
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _failure_id(request: ReconcileRequest, physical_id: str, applied: Optional[list[str]] = None) -> str:
        """Id to report for a failed request.

        A failed Create that did not create the index reports
        CREATE_FAILED_PHYSICAL_ID, so its rollback Delete removes nothing.
        """
        if request.operation is not Operation.CREATE:
            return physical_id
        if any(step.startswith("CreateIndex(") for step in applied or ()):
            return physical_id
        return CREATE_FAILED_PHYSICAL_ID

    @staticmethod
    def _failed(
        tag: str,
        physical_id: str,
        exc: IndexProvisioningError,
        applied: Optional[list[str]] = None,
    ) -> ReconcileResult:
        logger.error(f"{tag}: failed with {exc.kind}: {exc.message}")
        return ReconcileResult(
            status=ResultStatus.FAILED,
            physical_id=physical_id,
            reason=f"{exc.kind}: {exc.message}",
            error_kind=exc.kind,
            applied_steps=tuple(applied or ()),
        )
