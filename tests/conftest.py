"""
Shared fixtures: an in-memory IIndexClient and a retry policy that never sleeps.
"""

from collections import defaultdict
from typing import Optional

import pytest

from vectorindex.application.services.retry_policy import RetryPolicy
from vectorindex.domain.entities.index_spec import DataType, IndexSpec, MetadataField, ObservedIndex
from vectorindex.domain.errors import AlreadyExists, FieldExists, NotFound
from vectorindex.domain.ports.index_client_port import IIndexClient

ENDPOINT = "abc123xyz.us-east-1.aoss.amazonaws.com"


class FakeIndexClient(IIndexClient):
    """In-memory collection with scripted failures and lagging visibility.

    failures["describe"] is a list of exceptions raised, in order, by the next
    describe calls. hidden_describes makes that many describe calls report an
    existing index as absent (a write not yet visible).
    """

    def __init__(self) -> None:
        self.indexes: dict[tuple[str, str], ObservedIndex] = {}
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.hidden_describes = 0
        self.calls: list[tuple] = []

    def seed(self, spec: IndexSpec, **overrides) -> None:
        observed = ObservedIndex(
            index_name=spec.index_name,
            vector_field=overrides.get("vector_field", spec.vector_field),
            vector_dimensions=overrides.get("vector_dimensions", spec.vector_dimensions),
            metadata_fields=overrides.get("metadata_fields", spec.metadata_fields),
        )
        self.indexes[(spec.collection_endpoint, spec.index_name)] = observed

    def mutating_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] != "describe"]

    def _maybe_fail(self, operation: str) -> None:
        if self.failures[operation]:
            raise self.failures[operation].pop(0)

    def describe(self, endpoint: str, index_name: str) -> Optional[ObservedIndex]:
        self.calls.append(("describe", index_name))
        self._maybe_fail("describe")
        if self.hidden_describes > 0:
            self.hidden_describes -= 1
            return None
        return self.indexes.get((endpoint, index_name))

    def create(self, endpoint: str, spec: IndexSpec) -> None:
        self.calls.append(("create", spec.index_name))
        self._maybe_fail("create")
        if (endpoint, spec.index_name) in self.indexes:
            raise AlreadyExists(f"index {spec.index_name!r} already exists")
        self.seed(spec)

    def add_metadata_field(self, endpoint: str, index_name: str, field: MetadataField) -> None:
        self.calls.append(("add_metadata_field", field.name))
        self._maybe_fail("add_metadata_field")
        current = self.indexes[(endpoint, index_name)]
        if current.metadata_field(field.name) is not None:
            raise FieldExists(field.name)
        self.indexes[(endpoint, index_name)] = ObservedIndex(
            index_name=current.index_name,
            vector_field=current.vector_field,
            vector_dimensions=current.vector_dimensions,
            metadata_fields=current.metadata_fields + (field,),
        )

    def delete(self, endpoint: str, index_name: str) -> None:
        self.calls.append(("delete", index_name))
        self._maybe_fail("delete")
        if (endpoint, index_name) not in self.indexes:
            raise NotFound(index_name)
        del self.indexes[(endpoint, index_name)]


@pytest.fixture
def fake_client() -> FakeIndexClient:
    return FakeIndexClient()


@pytest.fixture
def no_sleep_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=5, initial_delay=0.01, max_delay=0.05, sleep=lambda _: None)


@pytest.fixture
def docs_spec() -> IndexSpec:
    return IndexSpec(
        collection_endpoint=ENDPOINT,
        index_name="docs-v1",
        vector_field="embedding",
        vector_dimensions=1536,
        metadata_fields=(MetadataField("source", DataType.TEXT, True),),
    )
