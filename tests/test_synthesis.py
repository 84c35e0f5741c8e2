from __future__ import annotations

import unittest
from typing import Any

from connector_fixture import articles_schema, capabilities, collection, named, nullable

from ndc_conformance.models import Aggregate, CapabilitiesResponse, MutationRequest, SchemaResponse
from ndc_conformance.report import ConformanceReport, ResultStatus
from ndc_conformance.synthesis import (
    DEFAULT_ROW_LIMIT,
    PlanKind,
    is_numeric_scalar,
    synthesize,
    unique_field_name,
)


def _plan(schema_data: dict[str, Any], caps: dict[str, Any] | None = None, **kwargs: Any):
    report = ConformanceReport(base_url="http://connector", spec_ref="test")
    plans = synthesize(
        SchemaResponse.from_dict(schema_data),
        CapabilitiesResponse.from_dict(caps or capabilities()),
        report=report,
        **kwargs,
    )
    return plans, report


class TestTablePlans(unittest.TestCase):
    def test_two_plans_per_table_with_aggregates(self) -> None:
        plans, report = _plan(articles_schema())
        self.assertEqual(
            [p.check_id for p in plans],
            [
                "query.articles.simple",
                "query.articles.aggregate",
                "query.authors.simple",
                "query.authors.aggregate",
            ],
        )
        self.assertEqual(report.results, [])

    def test_one_plan_per_table_without_aggregates(self) -> None:
        plans, _ = _plan(articles_schema(), capabilities(aggregates=False))
        self.assertEqual([p.kind for p in plans], [PlanKind.SIMPLE, PlanKind.SIMPLE])

    def test_simple_plan_selects_every_column(self) -> None:
        plans, _ = _plan(articles_schema())
        simple = plans[0]
        self.assertEqual(simple.columns, ("id", "title", "author_id"))
        self.assertEqual(simple.limit, DEFAULT_ROW_LIMIT)
        request = simple.to_request().to_dict()
        self.assertEqual(request["collection"], "articles")
        self.assertEqual(list(request["query"]["fields"]), ["id", "title", "author_id"])
        self.assertEqual(request["query"]["limit"], DEFAULT_ROW_LIMIT)
        self.assertNotIn("aggregates", request["query"])

    def test_row_limit_is_configurable(self) -> None:
        plans, _ = _plan(articles_schema(), row_limit=3)
        self.assertEqual(plans[0].limit, 3)

    def test_aggregate_plan_counts_and_sums_numeric_columns(self) -> None:
        plans, _ = _plan(articles_schema())
        aggregate = plans[1]
        self.assertEqual(aggregate.aggregate_names(), ["count", "id_sum", "author_id_sum"])
        self.assertEqual(dict(aggregate.aggregates)["count"], Aggregate.star_count())
        self.assertEqual(dict(aggregate.aggregates)["author_id_sum"], Aggregate.single_column("author_id", "sum"))
        self.assertNotIn("fields", aggregate.to_request().to_dict()["query"])

    def test_table_with_required_argument_is_skipped(self) -> None:
        data = articles_schema()
        data["collections"].append(
            collection("articles_by_author", "article", arguments={"author_id": {"type": named("Int")}})
        )
        plans, report = _plan(data)
        self.assertFalse(any(p.target == "articles_by_author" for p in plans))
        [skip] = report.results
        self.assertEqual(skip.check_id, "plan.articles_by_author")
        self.assertEqual(skip.status, ResultStatus.SKIP)
        self.assertEqual(skip.message, "requires arguments")
        self.assertEqual(skip.errors, ["required argument 'author_id'"])

    def test_table_with_nullable_argument_is_planned(self) -> None:
        data = articles_schema()
        data["collections"].append(
            collection("recent_articles", "article", arguments={"since": {"type": nullable(named("Int"))}})
        )
        plans, report = _plan(data)
        self.assertIn("query.recent_articles.simple", [p.check_id for p in plans])
        self.assertEqual(report.results, [])

    def test_table_without_object_row_type_is_skipped(self) -> None:
        data = articles_schema()
        data["collections"].append(collection("numbers", "Int"))
        plans, report = _plan(data)
        self.assertEqual(len(plans), 4)
        self.assertEqual(report.results[0].check_id, "plan.numbers")

    def test_relationship_columns_are_excluded_and_reported(self) -> None:
        data = articles_schema()
        data["object_types"]["article"]["fields"]["author"] = {"type": nullable(named("author"))}
        data["collections"][0]["foreign_keys"] = {
            "article_author": {"column_mapping": {"author_id": "id"}, "foreign_collection": "authors"}
        }
        plans, report = _plan(data)
        self.assertEqual(plans[0].columns, ("id", "title", "author_id"))
        [skip] = report.results
        self.assertEqual(skip.check_id, "plan.articles.relationships")
        self.assertEqual(skip.message, "relationships present but untested")
        self.assertEqual(
            skip.errors,
            ["foreign key 'article_author' -> 'authors'", "relationship column 'author'"],
        )

    def test_nested_object_column_is_kept(self) -> None:
        data = articles_schema()
        data["object_types"]["address"] = {"fields": {"city": {"type": named("String")}}}
        data["object_types"]["author"]["fields"]["address"] = {"type": named("address")}
        plans, report = _plan(data)
        authors_simple = next(p for p in plans if p.check_id == "query.authors.simple")
        self.assertEqual(authors_simple.columns, ("id", "name", "address"))
        self.assertEqual(report.results, [])

    def test_synthesis_is_deterministic(self) -> None:
        first, _ = _plan(articles_schema())
        second, _ = _plan(articles_schema())
        self.assertEqual(first, second)


class TestAggregateNames(unittest.TestCase):
    def test_collisions_get_numeric_suffixes(self) -> None:
        used = {"count"}
        self.assertEqual(unique_field_name("count", used), "count_2")
        self.assertEqual(unique_field_name("count", used), "count_3")
        self.assertEqual(unique_field_name("id_sum", used), "id_sum")
        self.assertEqual(used, {"count", "count_2", "count_3", "id_sum"})

    def test_numeric_scalar_uses_representation_first(self) -> None:
        schema = SchemaResponse.from_dict(
            {
                "scalar_types": {
                    "Amount": {"aggregate_functions": {}, "comparison_operators": {}, "representation": {"type": "float64"}},
                    "Int": {"aggregate_functions": {}, "comparison_operators": {}, "representation": {"type": "string"}},
                    "Float": {"aggregate_functions": {}, "comparison_operators": {}},
                },
                "object_types": {},
                "collections": [],
                "functions": [],
                "procedures": [],
            }
        )
        self.assertTrue(is_numeric_scalar(schema.scalar_types["Amount"]))
        self.assertFalse(is_numeric_scalar(schema.scalar_types["Int"]))
        self.assertTrue(is_numeric_scalar(schema.scalar_types["Float"]))

    def test_preferred_function_is_used(self) -> None:
        data = articles_schema()
        data["scalar_types"]["Float"] = {
            "aggregate_functions": {
                "min": {"result_type": named("Float")},
                "avg": {"result_type": named("Float")},
            },
            "comparison_operators": {},
        }
        data["object_types"]["author"]["fields"]["rating"] = {"type": nullable(named("Float"))}
        plans, _ = _plan(data)
        authors_aggregate = next(p for p in plans if p.check_id == "query.authors.aggregate")
        self.assertEqual(authors_aggregate.aggregate_names(), ["count", "id_sum", "rating_avg"])

    def test_numeric_scalar_without_functions_is_only_counted(self) -> None:
        data = articles_schema()
        data["scalar_types"]["Int"]["aggregate_functions"] = {}
        plans, _ = _plan(data)
        self.assertEqual(plans[1].aggregate_names(), ["count"])


class TestCommandPlans(unittest.TestCase):
    def _schema_with_commands(self) -> dict[str, Any]:
        data = articles_schema()
        data["functions"] = [
            {"name": "latest_article_id", "arguments": {}, "result_type": nullable(named("Int"))},
            {"name": "article_title", "arguments": {"id": {"type": named("Int")}}, "result_type": named("String")},
        ]
        data["procedures"] = [{"name": "reset", "arguments": {}, "result_type": named("Int")}]
        return data

    def test_function_is_queried_by_value(self) -> None:
        plans, _ = _plan(self._schema_with_commands())
        function = next(p for p in plans if p.kind == PlanKind.FUNCTION)
        self.assertEqual(function.check_id, "query.function.latest_article_id")
        self.assertEqual(function.endpoint, "query")
        request = function.to_request().to_dict()
        self.assertEqual(request["collection"], "latest_article_id")
        self.assertEqual(request["query"], {"fields": {"__value": {"type": "column", "column": "__value"}}})

    def test_commands_with_required_arguments_are_skipped(self) -> None:
        _, report = _plan(self._schema_with_commands())
        skip = next(r for r in report.results if r.check_id == "plan.function.article_title")
        self.assertEqual(skip.message, "requires arguments")

    def test_procedures_need_opt_in(self) -> None:
        plans, report = _plan(self._schema_with_commands())
        self.assertFalse(any(p.kind == PlanKind.PROCEDURE for p in plans))
        skip = next(r for r in report.results if r.check_id == "plan.procedure.reset")
        self.assertEqual(skip.message, "mutations not allowed (use --allow-mutations)")

    def test_procedure_plan_targets_mutation_endpoint(self) -> None:
        plans, report = _plan(self._schema_with_commands(), allow_mutations=True)
        procedure = next(p for p in plans if p.kind == PlanKind.PROCEDURE)
        self.assertEqual(procedure.check_id, "mutation.procedure.reset")
        self.assertEqual(procedure.endpoint, "mutation")
        self.assertIsInstance(procedure.to_request(), MutationRequest)
        self.assertNotIn("plan.procedure.reset", [r.check_id for r in report.results])


if __name__ == "__main__":
    unittest.main()
