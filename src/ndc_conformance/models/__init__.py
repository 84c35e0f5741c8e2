from .capabilities import (
    Capabilities,
    CapabilitiesResponse,
    MutationCapabilities,
    QueryCapabilities,
    RelationshipCapabilities,
)
from .common import (
    ArrayType,
    ErrorResponse,
    NamedType,
    NullableType,
    Type,
    is_nullable,
    strip_nullable,
    type_from_dict,
    underlying_name,
)
from .query import (
    COUNT_AGGREGATES,
    Aggregate,
    ColumnField,
    ExplainResponse,
    MutationRequest,
    MutationResponse,
    ProcedureOperation,
    Query,
    QueryRequest,
    RowSet,
    query_response_from_list,
)
from .schema import (
    ArgumentInfo,
    CollectionInfo,
    Column,
    CommandInfo,
    ForeignKey,
    ObjectField,
    ObjectType,
    ScalarType,
    SchemaResponse,
)

__all__ = [
    "Aggregate",
    "ArgumentInfo",
    "ArrayType",
    "COUNT_AGGREGATES",
    "Capabilities",
    "CapabilitiesResponse",
    "CollectionInfo",
    "Column",
    "ColumnField",
    "CommandInfo",
    "ErrorResponse",
    "ExplainResponse",
    "ForeignKey",
    "MutationCapabilities",
    "MutationRequest",
    "MutationResponse",
    "NamedType",
    "NullableType",
    "ObjectField",
    "ObjectType",
    "ProcedureOperation",
    "Query",
    "QueryCapabilities",
    "QueryRequest",
    "RelationshipCapabilities",
    "RowSet",
    "ScalarType",
    "SchemaResponse",
    "Type",
    "is_nullable",
    "query_response_from_list",
    "strip_nullable",
    "type_from_dict",
    "underlying_name",
]
