from __future__ import annotations

import unittest

from connector_fixture import InProcessSession, articles_schema, build_connector_app, capabilities

from ndc_conformance.errors import FailureKind
from ndc_conformance.execution import QueryRunner, check_aggregates, check_rows
from ndc_conformance.http import ConnectorClient
from ndc_conformance.models import Aggregate, CapabilitiesResponse, SchemaResponse
from ndc_conformance.report import ResultStatus
from ndc_conformance.schemas import SchemaRegistry
from ndc_conformance.synthesis import PlanKind, QueryPlan, synthesize


def _articles_plans() -> dict[str, QueryPlan]:
    plans = synthesize(
        SchemaResponse.from_dict(articles_schema()),
        CapabilitiesResponse.from_dict(capabilities()),
    )
    return {plan.check_id: plan for plan in plans}


class TestCheckRows(unittest.TestCase):
    def test_exact_columns_pass(self) -> None:
        self.assertEqual(check_rows([{"id": 1, "title": None}], ("id", "title"), limit=10), [])

    def test_empty_result_passes(self) -> None:
        self.assertEqual(check_rows([], ("id",), limit=10), [])

    def test_missing_and_extra_columns(self) -> None:
        errors = check_rows([{"id": 1, "rating": 5}], ("id", "title"))
        self.assertEqual(errors, ["rows[0]: missing columns ['title']", "rows[0]: unexpected columns ['rating']"])

    def test_row_limit(self) -> None:
        errors = check_rows([{"id": 1}, {"id": 2}], ("id",), limit=1)
        self.assertEqual(errors, ["rows: 2 rows returned, limit was 1"])

    def test_rows_must_be_a_list(self) -> None:
        self.assertEqual(check_rows(None, ("id",)), ["rows: expected an array of rows"])


class TestCheckAggregates(unittest.TestCase):
    def setUp(self) -> None:
        self.plan = QueryPlan(
            check_id="query.articles.aggregate",
            name="table articles: aggregate query",
            kind=PlanKind.AGGREGATE,
            target="articles",
            aggregates=(("count", Aggregate.star_count()), ("id_sum", Aggregate.single_column("id", "sum"))),
        )

    def test_matching_keys_pass(self) -> None:
        self.assertEqual(check_aggregates({"count": 0, "id_sum": None}, self.plan), [])

    def test_key_mismatch(self) -> None:
        errors = check_aggregates({"count": 3, "total": 6}, self.plan)
        self.assertEqual(errors, ["aggregates: missing ['id_sum']", "aggregates: unexpected ['total']"])

    def test_count_must_be_non_negative_integer(self) -> None:
        for value in (-1, 1.5, True, "3"):
            with self.subTest(value=value):
                errors = check_aggregates({"count": value, "id_sum": 6}, self.plan)
                self.assertEqual(len(errors), 1)
                self.assertTrue(errors[0].startswith("aggregates.count: expected a non-negative integer"))

    def test_single_column_value_is_not_constrained(self) -> None:
        self.assertEqual(check_aggregates({"count": 3, "id_sum": 6.0}, self.plan), [])


class TestQueryRunner(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.registry = SchemaRegistry.load()
        cls.plans = _articles_plans()

    def _runner(self, **app_kwargs) -> QueryRunner:
        session = InProcessSession(build_connector_app(**app_kwargs))
        self.addCleanup(session.close)
        return QueryRunner(ConnectorClient(session), registry=self.registry)

    def test_simple_query_passes(self) -> None:
        result = self._runner().run(self.plans["query.articles.simple"])
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)
        self.assertEqual(result.message, "OK (3 rows)")
        self.assertEqual(result.exchange.status_code, 200)
        self.assertEqual(result.exchange.request_body["collection"], "articles")

    def test_aggregate_query_passes(self) -> None:
        result = self._runner().run(self.plans["query.articles.aggregate"])
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)
        self.assertEqual(result.exchange.response_body[0]["aggregates"], {"count": 3, "id_sum": 6, "author_id_sum": 5})

    def test_row_limit_is_sent(self) -> None:
        data = {"articles": [{"id": i, "title": str(i), "author_id": 1} for i in range(25)], "authors": []}
        result = self._runner(data=data).run(self.plans["query.articles.simple"])
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)
        self.assertEqual(len(result.exchange.response_body[0]["rows"]), 10)

    def test_unrequested_columns_fail(self) -> None:
        result = self._runner(extra_columns={"articles": {"rating": 5}}).run(self.plans["query.articles.simple"])
        self.assertEqual(result.status, ResultStatus.FAIL)
        self.assertEqual(result.kind, FailureKind.SHAPE_MISMATCH)
        self.assertIn("rows[0]: unexpected columns ['rating']", result.errors)

    def test_negative_count_fails(self) -> None:
        result = self._runner(broken_counts=True).run(self.plans["query.articles.aggregate"])
        self.assertEqual(result.status, ResultStatus.FAIL)
        self.assertEqual(result.kind, FailureKind.AGGREGATE_SHAPE_MISMATCH)
        self.assertEqual(result.errors, ["aggregates.count: expected a non-negative integer, got -1"])

    def test_connector_error_is_a_transport_failure(self) -> None:
        plan = QueryPlan(
            check_id="query.nope.simple",
            name="table nope: simple query",
            kind=PlanKind.SIMPLE,
            target="nope",
            columns=("id",),
            limit=10,
        )
        result = self._runner().run(plan)
        self.assertEqual(result.status, ResultStatus.FAIL)
        self.assertEqual(result.kind, FailureKind.TRANSPORT)
        self.assertEqual(result.message, "Connector error 404: Unknown collection 'nope'")
        self.assertEqual(result.exchange.status_code, 404)

    def test_function_returns_one_row(self) -> None:
        plan = QueryPlan(
            check_id="query.function.latest_article_id",
            name="function latest_article_id: invocation",
            kind=PlanKind.FUNCTION,
            target="latest_article_id",
            columns=("__value",),
        )
        result = self._runner(functions={"latest_article_id": 3}).run(plan)
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)

    def test_procedure_response(self) -> None:
        plan = QueryPlan(
            check_id="mutation.procedure.reset",
            name="procedure reset: invocation",
            kind=PlanKind.PROCEDURE,
            target="reset",
        )
        result = self._runner().run(plan)
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)
        self.assertEqual(result.exchange.url.rsplit("/", 1)[-1], "mutation")

    def test_explain(self) -> None:
        result = self._runner(caps=capabilities(explain=True)).explain(self.plans["query.articles.simple"])
        self.assertEqual(result.check_id, "query.articles.explain")
        self.assertEqual(result.status, ResultStatus.PASS, result.errors)

    def test_explain_connector_error_keeps_exchange(self) -> None:
        plan = QueryPlan(
            check_id="query.nope.simple",
            name="table nope: simple query",
            kind=PlanKind.SIMPLE,
            target="nope",
            columns=("id",),
            limit=10,
        )
        result = self._runner(caps=capabilities(explain=True)).explain(plan)
        self.assertEqual(result.check_id, "query.nope.explain")
        self.assertEqual(result.kind, FailureKind.TRANSPORT)
        self.assertEqual(result.exchange.url, "/explain")
        self.assertEqual(result.exchange.status_code, 404)
        self.assertEqual(result.exchange.request_body["collection"], "nope")
        self.assertEqual(result.exchange.response_body["message"], "Unknown collection 'nope'")


if __name__ == "__main__":
    unittest.main()
