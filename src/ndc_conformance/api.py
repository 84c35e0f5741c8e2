from __future__ import annotations

from ndc_conformance.report import ConformanceReport
from ndc_conformance.runner import ConformanceRunner, RunnerOptions


def run(
    *,
    base_url: str,
    headers: dict[str, str] | None = None,
    options: RunnerOptions | None = None,
) -> ConformanceReport:
    """
    Run `ndc-conformance` programmatically against the connector at `base_url`.

    The returned report is complete even when the run aborted early; check
    `report.ok` and `report.aborted`.
    """

    runner = ConformanceRunner(base_url=base_url, headers=headers, options=options or RunnerOptions())
    return runner.run()
