"""
Domain entities for the steps a reconciliation applies to the collection.
A Plan is an ordered list of these steps; immutable vector settings never
appear in one.
"""

from dataclasses import dataclass
from typing import Union

from vectorindex.domain.entities.index_spec import IndexSpec, MetadataField


@dataclass(frozen=True)
class CreateIndex:
    spec: IndexSpec

    def describe(self) -> str:
        return f"CreateIndex({self.spec.index_name})"


@dataclass(frozen=True)
class AddMetadataField:
    index_name: str
    field: MetadataField

    def describe(self) -> str:
        return f"AddMetadataField({self.field.name})"


@dataclass(frozen=True)
class DeleteIndex:
    index_name: str

    def describe(self) -> str:
        return f"DeleteIndex({self.index_name})"


PlanStep = Union[CreateIndex, AddMetadataField, DeleteIndex]
Plan = list[PlanStep]
