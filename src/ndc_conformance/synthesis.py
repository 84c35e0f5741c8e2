"""
Synthesize query plans from schema metadata alone.

Per table, in schema order: one simple row query and, when the connector
declares aggregate support, one aggregate query. Tables and commands with
required arguments are skipped, since argument values cannot be invented from
metadata. Synthesis is pure: the same documents always produce the same plans.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ndc_conformance.models import (
    Aggregate,
    CapabilitiesResponse,
    CollectionInfo,
    Column,
    ColumnField,
    CommandInfo,
    MutationRequest,
    NamedType,
    ProcedureOperation,
    Query,
    QueryRequest,
    ScalarType,
    SchemaResponse,
    strip_nullable,
    underlying_name,
)
from ndc_conformance.report import CheckResult, ConformanceReport, skipped

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 10
COUNT_FIELD = "count"
FUNCTION_VALUE_FIELD = "__value"

# First declared function wins; all are single-valued and order independent.
NUMERIC_AGGREGATE_PREFERENCE = ("sum", "avg", "max", "min")

NUMERIC_REPRESENTATIONS = frozenset(
    {"int8", "int16", "int32", "int64", "float32", "float64", "biginteger", "bigdecimal", "integer", "number"}
)
NUMERIC_TYPE_NAMES = frozenset(
    {
        "int",
        "integer",
        "int8",
        "int16",
        "int32",
        "int64",
        "smallint",
        "bigint",
        "biginteger",
        "float",
        "float32",
        "float64",
        "double",
        "real",
        "number",
        "numeric",
        "decimal",
        "bigdecimal",
    }
)


class PlanKind(str, Enum):
    SIMPLE = "simple"
    AGGREGATE = "aggregate"
    FUNCTION = "function"
    PROCEDURE = "procedure"


@dataclass(frozen=True)
class QueryPlan:
    check_id: str
    name: str
    kind: PlanKind
    target: str
    columns: tuple[str, ...] = ()
    aggregates: tuple[tuple[str, Aggregate], ...] = ()
    limit: int | None = None

    @property
    def endpoint(self) -> str:
        return "mutation" if self.kind == PlanKind.PROCEDURE else "query"

    def aggregate_names(self) -> list[str]:
        return [name for name, _ in self.aggregates]

    def to_request(self) -> QueryRequest | MutationRequest:
        if self.kind == PlanKind.PROCEDURE:
            return MutationRequest(operations=[ProcedureOperation(name=self.target)])
        if self.kind == PlanKind.AGGREGATE:
            return QueryRequest(collection=self.target, query=Query(aggregates=dict(self.aggregates)))
        return QueryRequest(
            collection=self.target,
            query=Query(fields={column: ColumnField(column) for column in self.columns}, limit=self.limit),
        )


def is_numeric_scalar(scalar: ScalarType) -> bool:
    if scalar.representation is not None:
        return scalar.representation.lower() in NUMERIC_REPRESENTATIONS
    return scalar.name.lower() in NUMERIC_TYPE_NAMES


def numeric_aggregate_function(schema: SchemaResponse, column: Column) -> str | None:
    """The aggregate function to request for `column`, or None if it is not numeric."""
    type_ = strip_nullable(column.type)
    if not isinstance(type_, NamedType):
        return None
    scalar = schema.scalar_types.get(type_.name)
    if scalar is None or not is_numeric_scalar(scalar):
        return None
    for function in NUMERIC_AGGREGATE_PREFERENCE:
        if function in scalar.aggregate_functions:
            return function
    return None


def is_relationship_column(schema: SchemaResponse, column: Column) -> bool:
    """A column whose type (or element type) is the row type of some collection."""
    name = underlying_name(column.type)
    return name in schema.object_types and name in schema.collection_row_types()


def unique_field_name(base: str, used: set[str]) -> str:
    name = base
    suffix = 2
    while name in used:
        name = f"{base}_{suffix}"
        suffix += 1
    used.add(name)
    return name


def synthesize(
    schema: SchemaResponse,
    capabilities: CapabilitiesResponse,
    *,
    row_limit: int = DEFAULT_ROW_LIMIT,
    allow_mutations: bool = False,
    report: ConformanceReport | None = None,
) -> list[QueryPlan]:
    plans: list[QueryPlan] = []
    skips: list[CheckResult] = []

    for collection in schema.collections:
        table_plans, table_skips = _synthesize_table(schema, capabilities, collection, row_limit=row_limit)
        plans.extend(table_plans)
        skips.extend(table_skips)

    for command in schema.commands:
        plan, skip = _synthesize_command(command, allow_mutations=allow_mutations)
        if plan is not None:
            plans.append(plan)
        if skip is not None:
            skips.append(skip)

    if report is not None:
        for skip in skips:
            report.record(skip)
    logger.info("Synthesized %d query plans (%d skipped)", len(plans), len(skips))
    return plans


def _synthesize_table(
    schema: SchemaResponse,
    capabilities: CapabilitiesResponse,
    collection: CollectionInfo,
    *,
    row_limit: int,
) -> tuple[list[QueryPlan], list[CheckResult]]:
    name = collection.name
    logger.info("Synthesizing queries for table %s", name)

    required = collection.required_arguments
    if required:
        return [], [
            skipped(
                f"plan.{name}",
                f"table {name}",
                "requires arguments",
                errors=[f"required argument {argument.name!r}" for argument in required],
            )
        ]

    columns = schema.columns(collection)
    if columns is None:
        return [], [skipped(f"plan.{name}", f"table {name}", f"row type {collection.type!r} is not an object type")]

    relationship_columns = [column.name for column in columns if is_relationship_column(schema, column)]
    columns = [column for column in columns if column.name not in relationship_columns]

    plans = [
        QueryPlan(
            check_id=f"query.{name}.simple",
            name=f"table {name}: simple query",
            kind=PlanKind.SIMPLE,
            target=name,
            columns=tuple(column.name for column in columns),
            limit=row_limit,
        )
    ]

    if capabilities.supports_aggregates:
        used = {COUNT_FIELD}
        aggregates: list[tuple[str, Aggregate]] = [(COUNT_FIELD, Aggregate.star_count())]
        for column in columns:
            function = numeric_aggregate_function(schema, column)
            if function is None:
                continue
            field_name = unique_field_name(f"{column.name}_{function}", used)
            aggregates.append((field_name, Aggregate.single_column(column.name, function)))
        plans.append(
            QueryPlan(
                check_id=f"query.{name}.aggregate",
                name=f"table {name}: aggregate query",
                kind=PlanKind.AGGREGATE,
                target=name,
                aggregates=tuple(aggregates),
            )
        )

    skips: list[CheckResult] = []
    if collection.foreign_keys or relationship_columns:
        detail = [f"foreign key {fk.name!r} -> {fk.foreign_collection!r}" for fk in collection.foreign_keys]
        detail.extend(f"relationship column {column!r}" for column in relationship_columns)
        skips.append(
            skipped(
                f"plan.{name}.relationships",
                f"table {name}: relationships",
                "relationships present but untested",
                errors=detail,
            )
        )
    return plans, skips


def _synthesize_command(command: CommandInfo, *, allow_mutations: bool) -> tuple[QueryPlan | None, CheckResult | None]:
    check_id = f"plan.{command.kind}.{command.name}"
    label = f"{command.kind} {command.name}"

    required = command.required_arguments
    if required:
        return None, skipped(
            check_id,
            label,
            "requires arguments",
            errors=[f"required argument {argument.name!r}" for argument in required],
        )

    if command.kind == "procedure":
        if not allow_mutations:
            return None, skipped(check_id, label, "mutations not allowed (use --allow-mutations)")
        return (
            QueryPlan(
                check_id=f"mutation.procedure.{command.name}",
                name=f"{label}: invocation",
                kind=PlanKind.PROCEDURE,
                target=command.name,
            ),
            None,
        )

    return (
        QueryPlan(
            check_id=f"query.function.{command.name}",
            name=f"{label}: invocation",
            kind=PlanKind.FUNCTION,
            target=command.name,
            columns=(FUNCTION_VALUE_FIELD,),
        ),
        None,
    )
