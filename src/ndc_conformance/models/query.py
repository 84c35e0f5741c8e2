from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from .common import _omit_none

AggregateType = Literal["star_count", "column_count", "single_column"]

# Aggregates whose values must be non-negative integers.
COUNT_AGGREGATES: frozenset[str] = frozenset({"star_count", "column_count"})


@dataclass(frozen=True, slots=True)
class ColumnField:
    column: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "column", "column": self.column}


@dataclass(frozen=True, slots=True)
class Aggregate:
    type: AggregateType
    column: str | None = None
    function: str | None = None
    distinct: bool | None = None

    @property
    def is_count(self) -> bool:
        return self.type in COUNT_AGGREGATES

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "type": self.type,
                "column": self.column,
                "function": self.function,
                "distinct": self.distinct,
            }
        )

    @staticmethod
    def star_count() -> "Aggregate":
        return Aggregate(type="star_count")

    @staticmethod
    def single_column(column: str, function: str) -> "Aggregate":
        return Aggregate(type="single_column", column=column, function=function)


@dataclass(frozen=True, slots=True)
class Query:
    fields: dict[str, ColumnField] | None = None
    aggregates: dict[str, Aggregate] | None = None
    limit: int | None = None
    offset: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "aggregates": None
                if self.aggregates is None
                else {name: agg.to_dict() for name, agg in self.aggregates.items()},
                "fields": None if self.fields is None else {name: f.to_dict() for name, f in self.fields.items()},
                "limit": self.limit,
                "offset": self.offset,
            }
        )


def _literal_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    return {name: {"type": "literal", "value": value} for name, value in arguments.items()}


@dataclass(frozen=True, slots=True)
class QueryRequest:
    collection: str
    query: Query
    arguments: dict[str, Any] = field(default_factory=dict)
    collection_relationships: dict[str, Any] = field(default_factory=dict)
    variables: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "query": self.query.to_dict(),
            "arguments": _literal_arguments(self.arguments),
            "collection_relationships": self.collection_relationships,
            "variables": self.variables,
        }


@dataclass(frozen=True, slots=True)
class RowSet:
    rows: list[dict[str, Any]] | None = None
    aggregates: dict[str, Any] | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "RowSet":
        return RowSet(rows=data.get("rows"), aggregates=data.get("aggregates"))


def query_response_from_list(data: list[dict[str, Any]]) -> list[RowSet]:
    return [RowSet.from_dict(item) for item in data]


@dataclass(frozen=True, slots=True)
class ExplainResponse:
    details: dict[str, str]

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ExplainResponse":
        return ExplainResponse(details=dict(data["details"]))


@dataclass(frozen=True, slots=True)
class ProcedureOperation:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "procedure", "name": self.name, "arguments": self.arguments, "fields": None}


@dataclass(frozen=True, slots=True)
class MutationRequest:
    operations: list[ProcedureOperation]
    collection_relationships: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operations": [operation.to_dict() for operation in self.operations],
            "collection_relationships": self.collection_relationships,
        }


@dataclass(frozen=True, slots=True)
class MutationResponse:
    operation_results: list[Any]

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "MutationResponse":
        return MutationResponse(operation_results=list(data["operation_results"]))
