"""
Fetch and structurally validate the capabilities and schema documents.

Validation never raises for a soft failure: every checked unit produces one
`CheckResult`. The fetchers raise `ValidationFailure` only when the run cannot
continue, i.e. the document could not be fetched or could not be parsed.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from ndc_conformance import SUPPORTED_PROTOCOL
from ndc_conformance.errors import FailureKind, TransportError, ValidationFailure
from ndc_conformance.http import ConnectorClient
from ndc_conformance.models import (
    ArgumentInfo,
    CapabilitiesResponse,
    CollectionInfo,
    CommandInfo,
    SchemaResponse,
    Type,
    underlying_name,
)
from ndc_conformance.report import CheckResult, ConformanceReport, HttpExchange, Timer, failed, passed, skipped
from ndc_conformance.schemas import SchemaRegistry

logger = logging.getLogger(__name__)

_SEMVER = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def _fetch(client: ConnectorClient, path: str, *, check_id: str, name: str, report: ConformanceReport) -> tuple[Any, HttpExchange]:
    timer = Timer()
    try:
        resp = client.request("GET", path)
    except TransportError as exc:
        report.record(
            failed(check_id, name, str(exc), FailureKind.UNREACHABLE, duration_ms=timer.elapsed_ms())
        )
        raise ValidationFailure(FailureKind.UNREACHABLE, f"GET /{path}: {exc}") from exc
    return resp.data, resp.exchange


def _record_all(report: ConformanceReport, results: Iterable[CheckResult]) -> None:
    for result in results:
        report.record(result)


def fetch_and_validate_capabilities(
    client: ConnectorClient,
    report: ConformanceReport,
    *,
    registry: SchemaRegistry,
) -> CapabilitiesResponse:
    logger.info("Fetching capabilities")
    data, exchange = _fetch(client, "capabilities", check_id="capabilities", name="GET /capabilities", report=report)
    document, results = validate_capabilities(data, registry=registry, exchange=exchange)
    _record_all(report, results)
    if document is None:
        raise ValidationFailure(FailureKind.STRUCTURAL, "capabilities document is malformed", errors=results[0].errors)
    return document


def fetch_and_validate_schema(
    client: ConnectorClient,
    report: ConformanceReport,
    *,
    registry: SchemaRegistry,
) -> SchemaResponse:
    logger.info("Fetching schema")
    data, exchange = _fetch(client, "schema", check_id="schema", name="GET /schema", report=report)
    document, results = validate_schema(data, registry=registry, exchange=exchange)
    _record_all(report, results)
    if document is None:
        raise ValidationFailure(FailureKind.STRUCTURAL, "schema document is malformed", errors=results[0].errors)
    return document


def parse_protocol_version(version: str) -> tuple[int, int, int] | None:
    match = _SEMVER.match(version)
    if match is None:
        return None
    return int(match["major"]), int(match["minor"]), int(match["patch"])


def validate_capabilities(
    data: Any,
    *,
    registry: SchemaRegistry,
    exchange: HttpExchange | None = None,
) -> tuple[CapabilitiesResponse | None, list[CheckResult]]:
    logger.info("Validating capabilities")
    out: list[CheckResult] = []
    schema_errors = registry.validate(data, definition="CapabilitiesResponse")
    if schema_errors:
        out.append(
            failed(
                "capabilities",
                "capabilities",
                "Capabilities response did not match schema",
                FailureKind.STRUCTURAL,
                errors=schema_errors,
                exchange=exchange,
            )
        )
        return None, out

    document = CapabilitiesResponse.from_dict(data)
    out.append(passed("capabilities", "capabilities", exchange=exchange))

    logger.info("Validating capabilities version")
    version = parse_protocol_version(document.version)
    if version is None:
        out.append(
            failed(
                "capabilities.version",
                "capabilities: version",
                f"Version {document.version!r} is not a semantic version",
                FailureKind.STRUCTURAL,
            )
        )
    elif version[:2] != SUPPORTED_PROTOCOL:
        expected = ".".join(str(part) for part in SUPPORTED_PROTOCOL)
        out.append(
            failed(
                "capabilities.version",
                "capabilities: version",
                f"Unsupported protocol version {document.version!r} (expected {expected}.x)",
                FailureKind.STRUCTURAL,
            )
        )
    else:
        out.append(passed("capabilities.version", "capabilities: version", f"OK ({document.version})"))

    logger.info("Validating capabilities features")
    out.append(_check_features(document))
    return document, out


def _check_features(document: CapabilitiesResponse) -> CheckResult:
    caps = document.capabilities
    unknown = caps.unknown_features()
    for key in unknown:
        logger.warning("Ignoring unknown capability %r", key)

    errors: list[str] = []
    if caps.relationships is not None and caps.relationships.order_by_aggregate is not None and not document.supports_aggregates:
        errors.append("relationships.order_by_aggregate requires query.aggregates")

    if errors:
        return failed(
            "capabilities.features",
            "capabilities: features",
            "Unsupported feature combination",
            FailureKind.STRUCTURAL,
            errors=errors,
        )

    declared = [
        name
        for name, present in [
            ("query.aggregates", document.supports_aggregates),
            ("query.variables", caps.query.variables is not None),
            ("query.explain", document.supports_explain),
            ("mutation.transactional", caps.mutation.transactional is not None),
            ("mutation.explain", caps.mutation.explain is not None),
            ("relationships", document.supports_relationships),
        ]
        if present
    ]
    message = f"OK ({', '.join(declared) or 'no optional features'})"
    if unknown:
        message += f"; ignored unknown: {', '.join(unknown)}"
    return passed("capabilities.features", "capabilities: features", message)


def _unresolved(schema: SchemaResponse, type_: Type) -> str | None:
    name = underlying_name(type_)
    return None if schema.resolves(name) else name


def _check_arguments(schema: SchemaResponse, arguments: tuple[ArgumentInfo, ...], duplicates: tuple[str, ...]) -> list[str]:
    errors = [f"duplicate argument name {name!r}" for name in duplicates]
    for argument in arguments:
        missing = _unresolved(schema, argument.type)
        if missing is not None:
            errors.append(f"argument {argument.name!r}: unknown type {missing!r}")
    return errors


def validate_schema(
    data: Any,
    *,
    registry: SchemaRegistry,
    exchange: HttpExchange | None = None,
) -> tuple[SchemaResponse | None, list[CheckResult]]:
    logger.info("Validating schema")
    timer = Timer()
    out: list[CheckResult] = []
    schema_errors = registry.validate(data, definition="SchemaResponse")
    if schema_errors:
        out.append(
            failed(
                "schema",
                "schema",
                "Schema response did not match schema",
                FailureKind.STRUCTURAL,
                errors=schema_errors,
                exchange=exchange,
                duration_ms=timer.elapsed_ms(),
            )
        )
        return None, out

    schema = SchemaResponse.from_dict(data)
    out.append(passed("schema", "schema", exchange=exchange, duration_ms=timer.elapsed_ms()))

    out.append(_check_scalar_types(schema, data))
    out.append(_check_object_types(schema, data))

    seen: set[str] = set()
    for collection in schema.collections:
        out.extend(_check_collection(schema, collection, duplicate=collection.name in seen))
        seen.add(collection.name)

    out.extend(_check_commands(schema))
    return schema, out


def _check_scalar_types(schema: SchemaResponse, data: Any) -> CheckResult:
    logger.info("Validating scalar_types")
    errors = [f"duplicate scalar type {name!r}" for name in getattr(data["scalar_types"], "duplicate_keys", ())]
    for scalar in schema.scalar_types.values():
        if scalar.name in schema.object_types:
            errors.append(f"{scalar.name!r} is declared as both a scalar type and an object type")
        for fn_name, result_type in scalar.aggregate_functions.items():
            missing = _unresolved(schema, result_type)
            if missing is not None:
                errors.append(f"{scalar.name}.{fn_name}: unknown result type {missing!r}")
    if errors:
        return failed("schema.scalar_types", "scalar_types", "Scalar types are invalid", FailureKind.STRUCTURAL, errors=errors)
    return passed("schema.scalar_types", "scalar_types", f"OK ({len(schema.scalar_types)} scalar types)")


def _check_object_types(schema: SchemaResponse, data: Any) -> CheckResult:
    logger.info("Validating object_types")
    errors = [f"duplicate object type {name!r}" for name in getattr(data["object_types"], "duplicate_keys", ())]
    for object_type in schema.object_types.values():
        errors.extend(f"{object_type.name}: duplicate field {name!r}" for name in object_type.duplicate_fields)
        for object_field in object_type.fields:
            # Object types may reference each other cyclically; each reference is resolved by name only.
            missing = _unresolved(schema, object_field.type)
            if missing is not None:
                errors.append(f"{object_type.name}.{object_field.name}: unknown type {missing!r}")
    if errors:
        return failed("schema.object_types", "object_types", "Object types are invalid", FailureKind.STRUCTURAL, errors=errors)
    return passed("schema.object_types", "object_types", f"OK ({len(schema.object_types)} object types)")


def _check_collection(schema: SchemaResponse, collection: CollectionInfo, *, duplicate: bool) -> list[CheckResult]:
    name = collection.name
    logger.info("Validating table %s", name)
    errors: list[str] = []
    if duplicate:
        errors.append(f"duplicate collection name {name!r}")

    row_type = schema.object_types.get(collection.type)
    if row_type is None:
        kind = "a scalar type" if collection.type in schema.scalar_types else "not declared"
        errors.append(f"row type {collection.type!r} is {kind}; expected an object type")

    errors.extend(_check_arguments(schema, collection.arguments, collection.duplicate_arguments))

    collection_names = {c.name for c in schema.collections}
    column_names = set() if row_type is None else set(row_type.field_names())
    for fk in collection.foreign_keys:
        if fk.foreign_collection not in collection_names:
            errors.append(f"foreign key {fk.name!r}: unknown collection {fk.foreign_collection!r}")
        for column in fk.column_mapping:
            if row_type is not None and column not in column_names:
                errors.append(f"foreign key {fk.name!r}: unknown column {column!r}")
    for constraint_name, constraint in collection.uniqueness_constraints.items():
        for column in constraint.get("unique_columns", []):
            if row_type is not None and column not in column_names:
                errors.append(f"uniqueness constraint {constraint_name!r}: unknown column {column!r}")

    out: list[CheckResult] = []
    if errors:
        out.append(failed(f"schema.collections.{name}", f"table {name}", "Table is invalid", FailureKind.STRUCTURAL, errors=errors))
    else:
        out.append(passed(f"schema.collections.{name}", f"table {name}"))

    logger.info("Validating table %s columns", name)
    columns_id = f"schema.collections.{name}.columns"
    columns_name = f"table {name}: columns"
    if row_type is None:
        out.append(skipped(columns_id, columns_name, f"Row type {collection.type!r} is not an object type"))
        return out

    column_errors = [f"duplicate column name {column!r}" for column in row_type.duplicate_fields]
    for column in schema.columns(collection) or []:
        missing = _unresolved(schema, column.type)
        if missing is not None:
            column_errors.append(f"column {column.name!r}: unknown type {missing!r}")
    if column_errors:
        out.append(failed(columns_id, columns_name, "Columns are invalid", FailureKind.STRUCTURAL, errors=column_errors))
    else:
        out.append(passed(columns_id, columns_name, f"OK ({len(row_type.fields)} columns)"))
    return out


def _check_commands(schema: SchemaResponse) -> list[CheckResult]:
    logger.info("Validating commands")
    out: list[CheckResult] = []
    names = [command.name for command in schema.commands]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        out.append(
            failed(
                "schema.commands",
                "commands",
                "Duplicate command names",
                FailureKind.STRUCTURAL,
                errors=[f"duplicate command name {name!r}" for name in duplicates],
            )
        )
    else:
        out.append(
            passed(
                "schema.commands",
                "commands",
                f"OK ({len(schema.functions)} functions, {len(schema.procedures)} procedures)",
            )
        )

    for command in schema.commands:
        out.append(_check_command(schema, command))
    return out


def _check_command(schema: SchemaResponse, command: CommandInfo) -> CheckResult:
    logger.info("Validating %s %s", command.kind, command.name)
    check_id = f"schema.{command.kind}s.{command.name}"
    name = f"{command.kind} {command.name}"
    errors = _check_arguments(schema, command.arguments, command.duplicate_arguments)
    missing = _unresolved(schema, command.result_type)
    if missing is not None:
        errors.append(f"result: unknown type {missing!r}")
    if errors:
        return failed(check_id, name, f"{command.kind.capitalize()} is invalid", FailureKind.STRUCTURAL, errors=errors)
    return passed(check_id, name)
