from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ndc_conformance import SPEC_REF
from ndc_conformance.documents import fetch_and_validate_capabilities, fetch_and_validate_schema
from ndc_conformance.errors import ValidationFailure
from ndc_conformance.execution import QueryRunner
from ndc_conformance.http import DEFAULT_USER_AGENT, ConnectorClient, HttpClient, HttpSession
from ndc_conformance.report import CheckResult, ConformanceReport, failed, skipped
from ndc_conformance.schemas import SchemaRegistry
from ndc_conformance.synthesis import DEFAULT_ROW_LIMIT, PlanKind, QueryPlan, synthesize

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RunnerOptions:
    timeout_s: float = 10.0
    row_limit: int = DEFAULT_ROW_LIMIT
    workers: int = 1
    allow_mutations: bool = False
    explain: bool = True
    strict: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    schema_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "RunnerOptions":
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if "NDC_CONFORMANCE_TIMEOUT" in env:
            values["timeout_s"] = float(env["NDC_CONFORMANCE_TIMEOUT"])
        if "NDC_CONFORMANCE_ROW_LIMIT" in env:
            values["row_limit"] = int(env["NDC_CONFORMANCE_ROW_LIMIT"])
        if "NDC_CONFORMANCE_WORKERS" in env:
            values["workers"] = int(env["NDC_CONFORMANCE_WORKERS"])
        if "NDC_CONFORMANCE_ALLOW_MUTATIONS" in env:
            values["allow_mutations"] = env["NDC_CONFORMANCE_ALLOW_MUTATIONS"].strip().lower() in _TRUE
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive: {self.timeout_s}")
        if self.row_limit < 1:
            raise ValueError(f"row_limit must be at least 1: {self.row_limit}")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1: {self.workers}")


class ConformanceRunner:
    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        options: RunnerOptions | None = None,
        session: HttpSession | None = None,
    ) -> None:
        self._options = options or RunnerOptions()
        self._base_url = base_url
        self._http = session or HttpClient(
            base_url=base_url,
            headers=headers,
            timeout_s=self._options.timeout_s,
            user_agent=self._options.user_agent,
        )
        self._client = ConnectorClient(self._http)
        schema_path = None if self._options.schema_path is None else Path(self._options.schema_path)
        self._registry = SchemaRegistry.load(schema_path=schema_path)

    def close(self) -> None:
        close = getattr(self._http, "close", None)
        if close is not None:
            close()

    def run(self) -> ConformanceReport:
        report = ConformanceReport(base_url=self._base_url, spec_ref=SPEC_REF)
        try:
            try:
                capabilities = fetch_and_validate_capabilities(self._client, report, registry=self._registry)
                schema = fetch_and_validate_schema(self._client, report, registry=self._registry)
            except ValidationFailure as exc:
                logger.error("Aborting run: %s", exc)
                report.aborted = exc.kind
                return report

            plans = synthesize(
                schema,
                capabilities,
                row_limit=self._options.row_limit,
                allow_mutations=self._options.allow_mutations,
                report=report,
            )
            runner = QueryRunner(self._client, registry=self._registry)
            explain = self._options.explain and capabilities.supports_explain
            self._execute(runner, plans, report, explain=explain)
            return report
        except Exception as exc:
            report.record(
                failed(
                    "runner.exception",
                    "Unhandled runner error",
                    f"{exc.__class__.__name__}: {exc}",
                    None,
                )
            )
            logger.exception("Unhandled runner error")
            return report
        finally:
            report.finish()
            self.close()

    def _execute(self, runner: QueryRunner, plans: list[QueryPlan], report: ConformanceReport, *, explain: bool) -> None:
        def run_plan(plan: QueryPlan) -> list[CheckResult]:
            out = [runner.run(plan)]
            if explain and plan.kind == PlanKind.SIMPLE:
                out.append(runner.explain(plan))
            return out

        if self._options.workers == 1:
            for index, plan in enumerate(plans):
                try:
                    results = run_plan(plan)
                except KeyboardInterrupt:
                    self._record_cancelled(report, plans[index:])
                    return
                for result in results:
                    report.record(result)
            return

        executor = ThreadPoolExecutor(max_workers=self._options.workers, thread_name_prefix="ndc-query")
        futures: list[Future[list[CheckResult]]] = []
        try:
            futures = [executor.submit(run_plan, plan) for plan in plans]
            # Recorded in plan order so the trace is deterministic regardless of completion order.
            for index, future in enumerate(futures):
                try:
                    results = future.result()
                except KeyboardInterrupt:
                    for pending in futures[index:]:
                        pending.cancel()
                    self._record_cancelled(report, plans[index:])
                    return
                for result in results:
                    report.record(result)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _record_cancelled(report: ConformanceReport, remaining: list[QueryPlan]) -> None:
        logger.warning("Interrupted; %d query plans not run", len(remaining))
        report.record(
            skipped(
                "runner.cancelled",
                "Run interrupted",
                f"{len(remaining)} query plans not run",
                errors=[plan.check_id for plan in remaining],
            )
        )
