from __future__ import annotations

import io
import json
import logging
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from ndc_conformance import cli
from ndc_conformance.errors import FailureKind
from ndc_conformance.report import ConformanceReport, failed, passed, skipped


def _report(*results) -> ConformanceReport:
    report = ConformanceReport(base_url="http://connector", spec_ref="ndc-spec/v0.1")
    for result in results:
        report.record(result)
    report.finish()
    return report


class TestCliHelpers(unittest.TestCase):
    def test_parse_headers(self) -> None:
        self.assertEqual(
            cli._parse_headers(["Authorization=Bearer a=b", " X-Tenant = acme "]),
            {"Authorization": "Bearer a=b", "X-Tenant": "acme"},
        )
        with self.assertRaises(SystemExit):
            cli._parse_headers(["Authorization"])

    def test_load_headers_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "headers.env"
            path.write_text("# connector auth\n\nAuthorization=Bearer t\n", encoding="utf-8")
            self.assertEqual(cli._load_headers_file(path), {"Authorization": "Bearer t"})

    def test_exit_code(self) -> None:
        report = _report(passed("capabilities", "capabilities"), skipped("plan.t", "table t", "requires arguments"))
        self.assertEqual(cli._exit_code(report, strict=False), 0)
        self.assertEqual(cli._exit_code(report, strict=True), 1)


class TestCliMain(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("ndc_conformance")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    def _main(self, argv: list[str], report: ConformanceReport):
        stdout = io.StringIO()
        with patch("ndc_conformance.cli.run", return_value=report) as run, patch.dict("os.environ", {}, clear=True):
            with redirect_stdout(stdout), redirect_stderr(io.StringIO()):
                code = cli.main(argv)
        return code, stdout.getvalue(), run

    def test_passing_run_exits_zero(self) -> None:
        code, out, run = self._main(
            ["check", "--url", "http://connector", "--headers", "Authorization=Bearer t"],
            _report(passed("capabilities", "capabilities")),
        )
        self.assertEqual(code, 0)
        self.assertIn("- PASS capabilities: OK", out)
        kwargs = run.call_args.kwargs
        self.assertEqual(kwargs["base_url"], "http://connector")
        self.assertEqual(kwargs["headers"], {"Authorization": "Bearer t"})
        self.assertEqual(kwargs["options"].row_limit, 10)
        self.assertFalse(kwargs["options"].allow_mutations)

    def test_failing_run_exits_one(self) -> None:
        report = _report(failed("capabilities", "GET /capabilities", "Connection failed: refused", FailureKind.UNREACHABLE))
        code, _, _ = self._main(["check", "--url", "http://connector"], report)
        self.assertEqual(code, 1)

    def test_strict_fails_on_skip(self) -> None:
        report = _report(skipped("plan.t", "table t", "requires arguments"))
        code, _, _ = self._main(["check", "--url", "http://connector", "--strict"], report)
        self.assertEqual(code, 1)

    def test_options_from_flags(self) -> None:
        _, _, run = self._main(
            [
                "check",
                "--url",
                "http://connector",
                "--row-limit",
                "5",
                "--workers",
                "2",
                "--timeout",
                "1.5",
                "--allow-mutations",
                "--no-explain",
            ],
            _report(),
        )
        options = run.call_args.kwargs["options"]
        self.assertEqual((options.row_limit, options.workers, options.timeout_s), (5, 2, 1.5))
        self.assertTrue(options.allow_mutations)
        self.assertFalse(options.explain)

    def test_json_format(self) -> None:
        _, out, _ = self._main(
            ["check", "--url", "http://connector", "--format", "json"],
            _report(passed("capabilities", "capabilities")),
        )
        self.assertEqual(json.loads(out)["summary"]["pass"], 1)

    def test_out_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "report.xml"
            _, out, _ = self._main(
                ["check", "--url", "http://connector", "--format", "junit", "--out", str(path)],
                _report(passed("capabilities", "capabilities")),
            )
            self.assertIn("Wrote report:", out)
            self.assertTrue(path.read_text(encoding="utf-8").startswith("<testsuite"))

    def test_invalid_option_is_a_usage_error(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            self._main(["check", "--url", "http://connector", "--workers", "0"], _report())
        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
