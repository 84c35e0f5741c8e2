from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ndc_conformance import SPEC_REF, __version__
from ndc_conformance.api import run
from ndc_conformance.logging_utils import configure_logging
from ndc_conformance.report import ConformanceReport
from ndc_conformance.runner import RunnerOptions


def _parse_headers(values: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in values:
        if "=" not in raw:
            raise SystemExit(f"Invalid --headers value (expected KEY=VALUE): {raw}")
        key, value = raw.split("=", 1)
        out[key.strip()] = value.strip()
    return out


def _load_headers_file(path: Path) -> dict[str, str]:
    out: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            raise SystemExit(f"Invalid headers file line (expected KEY=VALUE): {line}")
        key, value = stripped.split("=", 1)
        out[key.strip()] = value.strip()
    return out


def _write_output(report: ConformanceReport, *, fmt: str, out_path: str | None) -> None:
    if fmt == "json":
        text = report.to_json()
    elif fmt == "junit":
        text = report.to_junit_xml() + "\n"
    else:
        text = report.to_text()

    if out_path is None:
        sys.stdout.write(text)
        return
    Path(out_path).write_text(text, encoding="utf-8")
    sys.stdout.write(f"Wrote report: {out_path}\n")


def _exit_code(report: ConformanceReport, *, strict: bool) -> int:
    if strict:
        return 0 if report.ok_strict() else 1
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="ndc-conformance")
    parser.add_argument("--version", action="version", version=f"ndc-conformance {__version__} ({SPEC_REF})")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Run conformance checks against a connector")
    check.add_argument("--url", required=True, help="Connector base URL")
    check.add_argument("--headers", action="append", default=[], help="Repeatable KEY=VALUE headers")
    check.add_argument("--headers-file", type=str, help="Path to a KEY=VALUE per line file")
    check.add_argument("--timeout", type=float, help="Per-request deadline in seconds (default 10)")
    check.add_argument("--row-limit", type=int, help="Row limit for simple queries (default 10)")
    check.add_argument("--workers", type=int, help="Queries run concurrently (default 1)")
    check.add_argument(
        "--allow-mutations",
        action="store_true",
        default=None,
        help="Invoke procedures that take no required arguments",
    )
    check.add_argument("--no-explain", action="store_true", help="Do not call /explain even if supported")
    check.add_argument("--strict", action="store_true", help="Treat SKIP as failure")
    check.add_argument("--format", default="text", choices=["text", "json", "junit"])
    check.add_argument("--out", type=str, help="Write report to file instead of stdout")
    check.add_argument("--schema-path", type=str, help="Use a local wire JSON schema file")
    check.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    check.add_argument("--log-format", default="text", choices=["text", "json"])
    check.add_argument("-v", "--verbose", action="store_true", help="Show the validation trace (same as --log-level INFO)")

    args = parser.parse_args(argv)

    configure_logging("INFO" if args.verbose and args.log_level == "WARNING" else args.log_level, fmt=args.log_format)

    headers = _parse_headers(args.headers)
    if args.headers_file:
        headers.update(_load_headers_file(Path(args.headers_file)))

    try:
        options = RunnerOptions.from_env(
            timeout_s=args.timeout,
            row_limit=args.row_limit,
            workers=args.workers,
            allow_mutations=args.allow_mutations,
            explain=False if args.no_explain else None,
            strict=args.strict,
            schema_path=args.schema_path,
        )
    except ValueError as exc:
        parser.error(str(exc))

    report = run(base_url=args.url, headers=headers or None, options=options)
    _write_output(report, fmt=args.format, out_path=args.out)
    return _exit_code(report, strict=args.strict)


if __name__ == "__main__":
    raise SystemExit(main())
