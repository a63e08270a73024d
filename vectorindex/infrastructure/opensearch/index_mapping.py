"""
OpenSearch request and response shapes for k-NN vector indexes.

build_create_body() turns an IndexSpec into the body of `PUT /<index>`;
parse_index_description() reads the output of `GET /<index>` back into an
ObservedIndex. Nothing else in the codebase knows the mapping JSON.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from vectorindex.domain.entities.index_spec import DataType, IndexSpec, MetadataField, ObservedIndex

KNN_VECTOR_TYPE = "knn_vector"


@dataclass(frozen=True)
class KnnSettings:
    engine: str = "faiss"
    space_type: str = "l2"
    number_of_shards: int = 2
    ef_search: int = 512


def build_create_body(spec: IndexSpec, knn: KnnSettings) -> dict[str, Any]:
    properties: dict[str, Any] = {
        spec.vector_field: {
            "type": KNN_VECTOR_TYPE,
            "dimension": spec.vector_dimensions,
            "method": {
                "name": "hnsw",
                "engine": knn.engine,
                "space_type": knn.space_type,
                "parameters": {},
            },
        },
    }
    for meta in spec.metadata_fields:
        properties[meta.name] = build_field_mapping(meta)

    return {
        "settings": {
            "index": {
                "knn": True,
                "number_of_shards": knn.number_of_shards,
                "knn.algo_param.ef_search": knn.ef_search,
            }
        },
        "mappings": {"properties": properties},
    }


def build_field_mapping(field: MetadataField) -> dict[str, Any]:
    return {"type": _type_name(field.data_type), "index": field.filterable}


def parse_index_description(index_name: str, response: dict[str, Any]) -> ObservedIndex:
    """Convert an `indices.get` response into an ObservedIndex.

    The response is keyed by concrete index name; when *index_name* is an alias
    the single entry is used. The first knn_vector property is taken as the
    vector field. Remaining typed properties become metadata fields; types
    outside DataType are kept as plain strings so they never match a desired field.
    """
    body = response.get(index_name)
    if body is None and len(response) == 1:
        body = next(iter(response.values()))
    body = body or {}

    properties = body.get("mappings", {}).get("properties", {}) or {}
    vector_field: Optional[str] = None
    vector_dimensions: Optional[int] = None
    metadata: list[MetadataField] = []

    for name, mapping in properties.items():
        field_type = mapping.get("type")
        if field_type == KNN_VECTOR_TYPE:
            if vector_field is None:
                vector_field = name
                vector_dimensions = _as_int(mapping.get("dimension"))
            continue
        if field_type is None:
            # object fields with sub-properties are not metadata fields
            continue
        metadata.append(
            MetadataField(
                name=name,
                data_type=_parse_type(field_type),
                filterable=_as_bool(mapping.get("index", True)),
            )
        )

    return ObservedIndex(
        index_name=index_name,
        vector_field=vector_field,
        vector_dimensions=vector_dimensions,
        metadata_fields=tuple(metadata),
    )


def _type_name(data_type: Union[DataType, str]) -> str:
    return data_type.value if isinstance(data_type, DataType) else str(data_type)


def _parse_type(raw: str) -> Union[DataType, str]:
    try:
        return DataType(raw)
    except ValueError:
        return raw


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no")
    return bool(value)
