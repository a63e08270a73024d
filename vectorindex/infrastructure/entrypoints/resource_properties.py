"""
Transport boundary: CloudFormation custom resource events → domain requests.

Field names and capitalization are fixed by the `Custom::OpenSearchIndex`
resource schema. CloudFormation delivers every scalar as a string, so
Dimensions and Filterable are coerced by pydantic. Everything is validated
here before a ReconcileRequest reaches the application layer.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vectorindex.domain.entities.index_spec import DataType, IndexSpec, MetadataField
from vectorindex.domain.entities.reconcile import Operation, ReconcileRequest
from vectorindex.domain.errors import InvalidSpec


class MetadataManagementField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mapping_field: str = Field(alias="MappingField", min_length=1)
    data_type: DataType = Field(alias="DataType")
    filterable: bool = Field(default=True, alias="Filterable")


class VectorIndexResourceProperties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    endpoint: str = Field(alias="Endpoint", min_length=1)
    index_name: str = Field(alias="IndexName", min_length=1)
    vector_field: str = Field(alias="VectorField", min_length=1)
    dimensions: int = Field(alias="Dimensions")
    metadata_management: list[MetadataManagementField] = Field(
        default_factory=list, alias="MetadataManagement"
    )

    def to_spec(self) -> IndexSpec:
        return IndexSpec(
            collection_endpoint=self.endpoint,
            index_name=self.index_name,
            vector_field=self.vector_field,
            vector_dimensions=self.dimensions,
            metadata_fields=tuple(
                MetadataField(name=m.mapping_field, data_type=m.data_type, filterable=m.filterable)
                for m in self.metadata_management
            ),
        )


class CustomResourceEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    request_type: Operation = Field(alias="RequestType")
    request_id: str = Field(default="", alias="RequestId")
    resource_properties: dict[str, Any] = Field(default_factory=dict, alias="ResourceProperties")
    physical_resource_id: Optional[str] = Field(default=None, alias="PhysicalResourceId")
    stack_id: Optional[str] = Field(default=None, alias="StackId")
    logical_resource_id: Optional[str] = Field(default=None, alias="LogicalResourceId")
    response_url: Optional[str] = Field(default=None, alias="ResponseURL")
    old_resource_properties: Optional[dict[str, Any]] = Field(default=None, alias="OldResourceProperties")


def parse_properties(properties: dict[str, Any]) -> IndexSpec:
    """Validate raw ResourceProperties into an IndexSpec.

    Raises:
        InvalidSpec: with every pydantic validation message, by field alias.
    """
    try:
        return VectorIndexResourceProperties.model_validate(properties).to_spec()
    except ValidationError as exc:
        raise InvalidSpec(_format_errors(exc)) from exc


def parse_event(event: dict[str, Any]) -> CustomResourceEvent:
    try:
        return CustomResourceEvent.model_validate(event)
    except ValidationError as exc:
        raise InvalidSpec(f"malformed lifecycle event: {_format_errors(exc)}") from exc


def to_reconcile_request(event: CustomResourceEvent) -> ReconcileRequest:
    """Build the domain request; the CloudFormation RequestId is the request token.

    Raises:
        InvalidSpec: if ResourceProperties do not describe a valid index.
    """
    return ReconcileRequest(
        operation=event.request_type,
        spec=parse_properties(event.resource_properties),
        request_token=event.request_id,
        previous_physical_id=(
            event.physical_resource_id if event.request_type is not Operation.CREATE else None
        ),
    )


def _format_errors(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        messages.append(f"{location}: {error['msg']}")
    return "; ".join(messages)
