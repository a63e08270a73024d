"""
FastAPI entry point: local development server.

Lets a developer drive the same reconciliation the Lambda function runs
against a real collection, using their own AWS credentials, without deploying
a stack. The request body mirrors the custom resource event.

Run locally:
    uvicorn vectorindex.infrastructure.entrypoints.fastapi_app:app --reload --port 8000
"""

import uuid
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

from vectorindex.application.services.retry_policy import RetryPolicy
from vectorindex.application.use_cases.reconcile_index import ReconcileIndexUseCase
from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.entities.reconcile import Operation, ReconcileRequest
from vectorindex.domain.errors import InvalidSpec
from vectorindex.infrastructure.config.logging_config import configure_logging
from vectorindex.infrastructure.config.settings import Settings
from vectorindex.infrastructure.entrypoints.resource_properties import parse_properties
from vectorindex.infrastructure.opensearch.opensearch_index_client import OpenSearchIndexClient

# Local requests get the same budget as a Lambda invocation with the default timeout.
_LOCAL_DEADLINE_SECONDS = 900.0

app = FastAPI(title="Vector Index Provisioner (local)")


class ReconcileBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_type: Operation = Field(alias="RequestType")
    request_token: Optional[str] = Field(default=None, alias="RequestToken")
    physical_resource_id: Optional[str] = Field(default=None, alias="PhysicalResourceId")
    resource_properties: dict[str, Any] = Field(alias="ResourceProperties")


def get_settings() -> Settings:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return settings


def get_use_case_factory(settings: Settings = Depends(get_settings)):
    """FastAPI dependency: build a fresh use case for one deadline."""

    def _factory(deadline: InvocationDeadline) -> ReconcileIndexUseCase:
        return ReconcileIndexUseCase(
            client=OpenSearchIndexClient(
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
            ),
            consistency_attempts=settings.consistency_wait_attempts,
        )

    return _factory


@app.post("/reconcile")
def reconcile(body: ReconcileBody, use_case_factory=Depends(get_use_case_factory)):
    """Run one Create / Update / Delete reconciliation and return its result."""
    try:
        spec = parse_properties(body.resource_properties)
    except InvalidSpec as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc

    request = ReconcileRequest(
        operation=body.request_type,
        spec=spec,
        request_token=body.request_token or str(uuid.uuid4()),
        previous_physical_id=body.physical_resource_id,
    )
    deadline = InvocationDeadline.after(_LOCAL_DEADLINE_SECONDS)
    result = use_case_factory(deadline).execute(request, deadline)
    return {
        "Status": result.status.value,
        "PhysicalResourceId": result.physical_id,
        "Reason": result.reason,
        "AppliedSteps": list(result.applied_steps),
        "RequestToken": request.request_token,
    }


@app.get("/health")
def health():
    return {"status": "ok"}
