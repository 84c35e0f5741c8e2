from __future__ import annotations

import logging
from typing import Any

from ndc_conformance.errors import FailureKind, TransportError
from ndc_conformance.http import ConnectorClient
from ndc_conformance.models import ExplainResponse, MutationResponse, query_response_from_list
from ndc_conformance.report import CheckResult, HttpExchange, Timer, failed, passed
from ndc_conformance.schemas import SchemaRegistry
from ndc_conformance.synthesis import PlanKind, QueryPlan

logger = logging.getLogger(__name__)


def _transport_failure(
    check_id: str, name: str, endpoint: str, body: Any, exc: TransportError, timer: Timer
) -> CheckResult:
    return failed(
        check_id,
        name,
        str(exc),
        FailureKind.TRANSPORT,
        exchange=HttpExchange(
            method="POST",
            url=f"/{endpoint}",
            request_body=body,
            status_code=exc.status_code or None,
            response_body=exc.response_body,
        ),
        duration_ms=timer.elapsed_ms(),
    )


def _is_count_value(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def check_rows(rows: Any, columns: tuple[str, ...], *, limit: int | None = None) -> list[str]:
    """Every row must carry exactly the requested columns."""
    if not isinstance(rows, list):
        return ["rows: expected an array of rows"]
    errors: list[str] = []
    if limit is not None and len(rows) > limit:
        errors.append(f"rows: {len(rows)} rows returned, limit was {limit}")
    expected = set(columns)
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            errors.append(f"rows[{i}]: expected an object")
            continue
        actual = set(row)
        missing = sorted(expected - actual)
        extra = sorted(actual - expected)
        if missing:
            errors.append(f"rows[{i}]: missing columns {missing}")
        if extra:
            errors.append(f"rows[{i}]: unexpected columns {extra}")
    return errors


def check_aggregates(aggregates: Any, plan: QueryPlan) -> list[str]:
    """Aggregate keys must equal the requested names; count values must be non-negative integers."""
    if not isinstance(aggregates, dict):
        return ["aggregates: expected an object"]
    errors: list[str] = []
    expected = set(plan.aggregate_names())
    actual = set(aggregates)
    missing = sorted(expected - actual)
    extra = sorted(actual - expected)
    if missing:
        errors.append(f"aggregates: missing {missing}")
    if extra:
        errors.append(f"aggregates: unexpected {extra}")
    for name, aggregate in plan.aggregates:
        if aggregate.is_count and name in aggregates and not _is_count_value(aggregates[name]):
            errors.append(f"aggregates.{name}: expected a non-negative integer, got {aggregates[name]!r}")
    return errors


class QueryRunner:
    """
    Executes one plan at a time and turns the response into a `CheckResult`.

    `run` never raises for a failing plan, so sibling plans are unaffected.
    """

    def __init__(self, client: ConnectorClient, *, registry: SchemaRegistry) -> None:
        self._client = client
        self._registry = registry

    def run(self, plan: QueryPlan) -> CheckResult:
        logger.info("Running %s", plan.name)
        timer = Timer()
        body = plan.to_request().to_dict()
        try:
            resp = self._client.request("POST", plan.endpoint, body=body)
        except TransportError as exc:
            return _transport_failure(plan.check_id, plan.name, plan.endpoint, body, exc, timer)

        if plan.kind == PlanKind.PROCEDURE:
            result = self._check_mutation_response(plan, resp.data)
        else:
            result = self._check_query_response(plan, resp.data)
        message, kind, errors = result
        if kind is None:
            return passed(plan.check_id, plan.name, message, exchange=resp.exchange, duration_ms=timer.elapsed_ms())
        for error in errors:
            logger.debug("%s: %s", plan.check_id, error)
        return failed(
            plan.check_id,
            plan.name,
            message,
            kind,
            errors=errors,
            exchange=resp.exchange,
            duration_ms=timer.elapsed_ms(),
        )

    def explain(self, plan: QueryPlan) -> CheckResult:
        check_id = plan.check_id.rsplit(".", 1)[0] + ".explain"
        name = f"table {plan.target}: explain"
        logger.info("Running %s", name)
        timer = Timer()
        body = plan.to_request().to_dict()
        try:
            resp = self._client.request("POST", "explain", body=body)
        except TransportError as exc:
            return _transport_failure(check_id, name, "explain", body, exc, timer)
        schema_errors = self._registry.validate(resp.data, definition="ExplainResponse")
        if schema_errors:
            return failed(
                check_id,
                name,
                "Explain response did not match schema",
                FailureKind.SHAPE_MISMATCH,
                errors=schema_errors,
                exchange=resp.exchange,
                duration_ms=timer.elapsed_ms(),
            )
        details = ExplainResponse.from_dict(resp.data).details
        return passed(check_id, name, f"OK ({len(details)} details)", exchange=resp.exchange, duration_ms=timer.elapsed_ms())

    def _check_query_response(self, plan: QueryPlan, data: Any) -> tuple[str, FailureKind | None, list[str]]:
        schema_errors = self._registry.validate(data, definition="QueryResponse")
        if schema_errors:
            return "Query response did not match schema", FailureKind.SHAPE_MISMATCH, schema_errors
        row_sets = query_response_from_list(data)
        if len(row_sets) != 1:
            return f"Expected exactly one row set, got {len(row_sets)}", FailureKind.SHAPE_MISMATCH, []
        row_set = row_sets[0]

        if plan.kind == PlanKind.AGGREGATE:
            errors = check_aggregates(row_set.aggregates, plan)
            if errors:
                return "Aggregates did not match the request", FailureKind.AGGREGATE_SHAPE_MISMATCH, errors
            return f"OK ({len(plan.aggregates)} aggregates)", None, []

        rows = row_set.rows
        errors = check_rows(rows, plan.columns, limit=plan.limit)
        if not errors and plan.kind == PlanKind.FUNCTION and len(rows) != 1:
            errors.append(f"rows: a function returns exactly one row, got {len(rows)}")
        if errors:
            return "Rows did not match the requested columns", FailureKind.SHAPE_MISMATCH, errors
        return f"OK ({len(rows)} rows)", None, []

    def _check_mutation_response(self, plan: QueryPlan, data: Any) -> tuple[str, FailureKind | None, list[str]]:
        schema_errors = self._registry.validate(data, definition="MutationResponse")
        if schema_errors:
            return "Mutation response did not match schema", FailureKind.SHAPE_MISMATCH, schema_errors
        results = MutationResponse.from_dict(data).operation_results
        if len(results) != 1:
            return (
                f"Expected exactly one operation result, got {len(results)}",
                FailureKind.SHAPE_MISMATCH,
                [],
            )
        return "OK", None, []
