"""
Unit tests for the convergence planner.

The planner is pure, so every case builds a desired spec and an observed
snapshot and checks the resulting steps (or the conflict raised).
"""

from itertools import combinations

import pytest

from vectorindex.application.services.convergence_planner import plan
from vectorindex.domain.entities.index_spec import DataType, IndexSpec, MetadataField, ObservedIndex
from vectorindex.domain.entities.plan import AddMetadataField, CreateIndex, DeleteIndex
from vectorindex.domain.entities.reconcile import Operation
from vectorindex.domain.errors import ConflictError

from conftest import ENDPOINT

FIELDS = (
    MetadataField("source", DataType.TEXT, True),
    MetadataField("page", DataType.INTEGER, True),
    MetadataField("tenant", DataType.KEYWORD, False),
)


def _spec(fields=FIELDS, dimensions=1536, vector_field="embedding") -> IndexSpec:
    return IndexSpec(
        collection_endpoint=ENDPOINT,
        index_name="docs-v1",
        vector_field=vector_field,
        vector_dimensions=dimensions,
        metadata_fields=tuple(fields),
    )


def _observed(spec: IndexSpec, fields=None, **overrides) -> ObservedIndex:
    return ObservedIndex(
        index_name=spec.index_name,
        vector_field=overrides.get("vector_field", spec.vector_field),
        vector_dimensions=overrides.get("vector_dimensions", spec.vector_dimensions),
        metadata_fields=spec.metadata_fields if fields is None else tuple(fields),
    )


class TestCreateAndUpdate:
    @pytest.mark.parametrize("operation", [Operation.CREATE, Operation.UPDATE])
    def test_absent_index_is_created(self, operation):
        spec = _spec()
        assert plan(operation, spec, None) == [CreateIndex(spec)]

    @pytest.mark.parametrize("operation", [Operation.CREATE, Operation.UPDATE])
    def test_converged_index_needs_nothing(self, operation):
        spec = _spec()
        assert plan(operation, spec, _observed(spec)) == []

    def test_dimension_change_is_a_conflict(self):
        current = _spec(dimensions=768)
        desired = _spec(dimensions=1536)
        with pytest.raises(ConflictError, match="768 vector dimensions"):
            plan(Operation.UPDATE, desired, _observed(current))

    def test_vector_field_rename_is_a_conflict(self):
        desired = _spec(vector_field="vector")
        observed = _observed(desired, vector_field="embedding")
        with pytest.raises(ConflictError, match="cannot be renamed"):
            plan(Operation.UPDATE, desired, observed)

    def test_index_without_vector_field_is_a_conflict(self):
        desired = _spec()
        observed = _observed(desired, vector_field=None, vector_dimensions=None)
        with pytest.raises(ConflictError):
            plan(Operation.CREATE, desired, observed)

    def test_missing_fields_added_in_declared_order(self):
        spec = _spec()
        observed = _observed(spec, fields=[FIELDS[1]])
        assert plan(Operation.UPDATE, spec, observed) == [
            AddMetadataField("docs-v1", FIELDS[0]),
            AddMetadataField("docs-v1", FIELDS[2]),
        ]

    def test_every_observed_subset_plans_exactly_the_difference(self):
        spec = _spec()
        for size in range(len(FIELDS) + 1):
            for present in combinations(FIELDS, size):
                steps = plan(Operation.UPDATE, spec, _observed(spec, fields=present))
                expected = [f for f in FIELDS if f not in present]
                assert [step.field for step in steps] == expected

    def test_extra_remote_fields_are_never_removed(self):
        spec = _spec(fields=FIELDS[:1])
        observed = _observed(spec, fields=FIELDS)
        assert plan(Operation.UPDATE, spec, observed) == []

    def test_changed_field_type_is_a_conflict(self):
        spec = _spec(fields=[MetadataField("source", DataType.KEYWORD, True)])
        observed = _observed(spec, fields=[MetadataField("source", DataType.TEXT, True)])
        with pytest.raises(ConflictError, match="'source'"):
            plan(Operation.UPDATE, spec, observed)

    def test_changed_filterability_is_a_conflict(self):
        spec = _spec(fields=[MetadataField("source", DataType.TEXT, False)])
        observed = _observed(spec, fields=[MetadataField("source", DataType.TEXT, True)])
        with pytest.raises(ConflictError, match="not filterable"):
            plan(Operation.UPDATE, spec, observed)


class TestDelete:
    def test_existing_index_is_deleted(self):
        spec = _spec()
        assert plan(Operation.DELETE, spec, _observed(spec)) == [DeleteIndex("docs-v1")]

    def test_absent_index_needs_nothing(self):
        assert plan(Operation.DELETE, _spec(), None) == []

    def test_delete_ignores_mapping_differences(self):
        desired = _spec(dimensions=1536)
        observed = _observed(_spec(dimensions=768))
        assert plan(Operation.DELETE, desired, observed) == [DeleteIndex("docs-v1")]
