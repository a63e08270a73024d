"""
Application service: compute the remote operations that converge an index.

Business decisions owned here:
  - vector field and dimensions are immutable once the index exists; a
    mismatch is a conflict, never a drop-and-recreate.
  - metadata fields are only ever added, in declared order. Fields present
    remotely but missing from the desired spec are left alone.

Pure functions over domain entities, no I/O.
"""

from typing import Optional

from vectorindex.domain.entities.index_spec import IndexSpec, ObservedIndex
from vectorindex.domain.entities.plan import AddMetadataField, CreateIndex, DeleteIndex, Plan
from vectorindex.domain.entities.reconcile import Operation
from vectorindex.domain.errors import ConflictError


def plan(operation: Operation, desired: IndexSpec, observed: Optional[ObservedIndex]) -> Plan:
    """Diff *desired* against *observed* for the given lifecycle *operation*.

    Args:
        operation: Create, Update or Delete.
        desired:   Validated desired spec.
        observed:  Fresh remote snapshot, or None when the index is absent.

    Returns:
        Ordered list of plan steps; empty when the remote state already holds.

    Raises:
        ConflictError: if an immutable setting differs between desired and observed.
    """
    if operation is Operation.DELETE:
        return [DeleteIndex(desired.index_name)] if observed is not None else []

    if observed is None:
        return [CreateIndex(desired)]

    _check_immutable(desired, observed)

    steps: Plan = []
    for meta in desired.metadata_fields:
        existing = observed.metadata_field(meta.name)
        if existing is None:
            steps.append(AddMetadataField(desired.index_name, meta))
            continue
        if existing.data_type != meta.data_type or existing.filterable != meta.filterable:
            raise ConflictError(
                f"metadata field {meta.name!r} on index {desired.index_name!r} is "
                f"{_describe_field(existing.data_type, existing.filterable)} remotely but "
                f"{_describe_field(meta.data_type, meta.filterable)} is desired; "
                "field mappings cannot be changed in place"
            )
    return steps


def _check_immutable(desired: IndexSpec, observed: ObservedIndex) -> None:
    if observed.vector_field != desired.vector_field:
        raise ConflictError(
            f"index {desired.index_name!r} has vector field {observed.vector_field!r} "
            f"but {desired.vector_field!r} is desired; the vector field cannot be renamed"
        )
    if observed.vector_dimensions != desired.vector_dimensions:
        raise ConflictError(
            f"index {desired.index_name!r} has {observed.vector_dimensions} vector dimensions "
            f"but {desired.vector_dimensions} are desired; dimensions are fixed at creation"
        )


def _describe_field(data_type, filterable: bool) -> str:
    kind = getattr(data_type, "value", data_type)
    return f"{kind} ({'filterable' if filterable else 'not filterable'})"
