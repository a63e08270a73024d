"""
Domain entities for one lifecycle request and its terminal outcome.
Zero external dependencies, pure Python dataclasses only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from vectorindex.domain.entities.index_spec import IndexSpec


# Reported for a Create that produced no index. The rollback Delete that
# carries it has nothing to remove.
CREATE_FAILED_PHYSICAL_ID = "AWSCDK::CustomResourceProviderFramework::CREATE_FAILED"


class Operation(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class ResultStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass(frozen=True)
class ReconcileRequest:
    """A desired-state change delivered by the orchestrator.

    request_token is only carried for log and report correlation; idempotency
    comes from each remote operation being a no-op once its target holds.
    previous_physical_id is the id the orchestrator already holds for the
    resource (Update and Delete only).
    """

    operation: Operation
    spec: IndexSpec
    request_token: str
    previous_physical_id: Optional[str] = None


@dataclass(frozen=True)
class ReconcileResult:
    status: ResultStatus
    physical_id: str
    reason: Optional[str] = None
    error_kind: Optional[str] = None
    applied_steps: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is ResultStatus.SUCCESS


def physical_id_for(collection_endpoint: str, index_name: str) -> str:
    """Derive the stable resource id for an index on a collection.

    The endpoint is normalized (scheme, port and trailing slash dropped,
    lowercased) so that equivalent spellings of one collection map to the
    same id.
    """
    host = collection_endpoint.strip().lower()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0]
    host = host.split(":", 1)[0]
    return f"{host}/{index_name}"
