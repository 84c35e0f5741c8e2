from __future__ import annotations

import json
import threading
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ndc_conformance.errors import FailureKind


class ResultStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


class Timer:
    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)


@dataclass(frozen=True)
class HttpExchange:
    method: str
    url: str
    request_body: Any | None = None
    status_code: int | None = None
    content_type: str | None = None
    response_body: Any | None = None

    def with_response(self, body: Any) -> "HttpExchange":
        return replace(self, response_body=body)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "request_body": self.request_body,
            "status_code": self.status_code,
            "content_type": self.content_type,
            "response_body": self.response_body,
        }


@dataclass(frozen=True)
class CheckResult:
    check_id: str
    name: str
    status: ResultStatus
    message: str
    kind: FailureKind | None = None
    errors: list[str] = field(default_factory=list)
    exchange: HttpExchange | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_id": self.check_id,
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "kind": None if self.kind is None else self.kind.value,
            "errors": list(self.errors),
            "exchange": None if self.exchange is None else self.exchange.to_dict(),
            "duration_ms": self.duration_ms,
        }


def passed(check_id: str, name: str, message: str = "OK", **kwargs: Any) -> CheckResult:
    return CheckResult(check_id=check_id, name=name, status=ResultStatus.PASS, message=message, **kwargs)


def failed(check_id: str, name: str, message: str, kind: FailureKind | None, **kwargs: Any) -> CheckResult:
    return CheckResult(check_id=check_id, name=name, status=ResultStatus.FAIL, message=message, kind=kind, **kwargs)


def skipped(check_id: str, name: str, message: str, **kwargs: Any) -> CheckResult:
    return CheckResult(check_id=check_id, name=name, status=ResultStatus.SKIP, message=message, **kwargs)


@dataclass(frozen=True)
class Summary:
    pass_count: int
    fail_count: int
    skip_count: int
    failures: list[tuple[str, str]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.pass_count,
            "fail": self.fail_count,
            "skip": self.skip_count,
            "failures": [{"name": name, "reason": reason} for name, reason in self.failures],
        }


class ConformanceReport:
    """
    Append-only log of check results for one run.

    `record` may be called from several worker threads; every read returns a
    snapshot and never mutates state.
    """

    def __init__(self, *, base_url: str, spec_ref: str) -> None:
        self.base_url = base_url
        self.spec_ref = spec_ref
        self.started_at_epoch_ms = int(time.time() * 1000)
        self.finished_at_epoch_ms: int | None = None
        self.aborted: FailureKind | None = None
        self._results: list[CheckResult] = []
        self._lock = threading.Lock()

    def record(self, result: CheckResult) -> CheckResult:
        with self._lock:
            self._results.append(result)
        return result

    def finish(self) -> None:
        self.finished_at_epoch_ms = int(time.time() * 1000)

    @property
    def results(self) -> list[CheckResult]:
        with self._lock:
            return list(self._results)

    def counts(self) -> dict[str, int]:
        out = {status.value: 0 for status in ResultStatus}
        for result in self.results:
            out[result.status.value] += 1
        return out

    def summary(self) -> Summary:
        results = self.results
        return Summary(
            pass_count=sum(1 for r in results if r.status == ResultStatus.PASS),
            fail_count=sum(1 for r in results if r.status == ResultStatus.FAIL),
            skip_count=sum(1 for r in results if r.status == ResultStatus.SKIP),
            failures=[(r.name, r.message) for r in results if r.status == ResultStatus.FAIL],
        )

    @property
    def ok(self) -> bool:
        return self.summary().fail_count == 0

    def ok_strict(self) -> bool:
        summary = self.summary()
        return summary.fail_count == 0 and summary.skip_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "spec_ref": self.spec_ref,
            "started_at_epoch_ms": self.started_at_epoch_ms,
            "finished_at_epoch_ms": self.finished_at_epoch_ms,
            "ok": self.ok,
            "aborted": None if self.aborted is None else self.aborted.value,
            "summary": self.summary().to_dict(),
            "results": [r.to_dict() for r in self.results],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=False, default=str) + "\n"

    def to_text(self) -> str:
        summary = self.summary()
        lines = [
            f"connector={self.base_url} spec={self.spec_ref}",
            f"counts={self.counts()} ok={self.ok}",
        ]
        for r in self.results:
            lines.append(f"- {r.status.value} {r.check_id}: {r.message}")
            if r.status == ResultStatus.FAIL and r.errors:
                for e in r.errors:
                    lines.append(f"    - {e}")
        if summary.failures:
            lines.append("")
            lines.append(f"{summary.fail_count} failure(s):")
            for name, reason in summary.failures:
                lines.append(f"  {name}: {reason}")
        return "\n".join(lines) + "\n"

    def to_junit_xml(self) -> str:
        results = self.results
        summary = self.summary()
        suite = ET.Element(
            "testsuite",
            {
                "name": f"ndc-conformance {self.base_url}",
                "tests": str(len(results)),
                "failures": str(summary.fail_count),
                "skipped": str(summary.skip_count),
            },
        )
        for r in results:
            case = ET.SubElement(
                suite,
                "testcase",
                {
                    "classname": r.check_id.split(".", 1)[0],
                    "name": r.check_id,
                    "time": f"{(r.duration_ms or 0) / 1000:.3f}",
                },
            )
            if r.status == ResultStatus.FAIL:
                failure = ET.SubElement(
                    case,
                    "failure",
                    {"message": r.message, "type": "" if r.kind is None else r.kind.value},
                )
                failure.text = "\n".join(r.errors)
            elif r.status == ResultStatus.SKIP:
                ET.SubElement(case, "skipped", {"message": r.message})
        return ET.tostring(suite, encoding="unicode")
