from __future__ import annotations

import http.client
import json
import logging
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Protocol

from opentelemetry import propagate, trace
from opentelemetry.trace import SpanKind, Tracer

from ndc_conformance import __version__
from ndc_conformance.errors import TransportError
from ndc_conformance.models.common import ErrorResponse
from ndc_conformance.report import HttpExchange

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"ndc-conformance/{__version__}"

_READ_CHUNK = 64 * 1024


class JsonObject(dict):
    """A decoded JSON object that remembers keys repeated on the wire."""

    duplicate_keys: tuple[str, ...] = ()

    @classmethod
    def from_pairs(cls, pairs: list[tuple[str, Any]]) -> "JsonObject":
        obj = cls()
        duplicates: list[str] = []
        for key, value in pairs:
            if key in obj and key not in duplicates:
                duplicates.append(key)
            obj[key] = value
        if duplicates:
            obj.duplicate_keys = tuple(duplicates)
        return obj


def parse_json(text: str) -> Any:
    return json.loads(text, object_pairs_hook=JsonObject.from_pairs)


def _looks_like_json(content_type: str) -> bool:
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or mime.endswith("+json") or mime == "text/json"


def append_path(base_url: str, path: str) -> str:
    """Join `path` onto `base_url`, treating the base as a directory even without a trailing slash."""
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urllib.parse.urljoin(base, path.lstrip("/"))


@dataclass(frozen=True)
class HttpResponse:
    method: str
    url: str
    status_code: int
    headers: dict[str, str]
    text: str

    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.split(";", 1)[0].strip().lower()
        return ""


class HttpSession(Protocol):
    def request(self, method: str, path: str, *, json_body: Any | None = None) -> HttpResponse: ...


class HttpClient:
    """
    urllib transport for `ConnectorClient`.

    `timeout_s` is both the socket timeout and a total deadline for reading
    the response body.
    Each request runs in a CLIENT span and carries the W3C trace context of
    the active span; without a configured tracer provider both are no-ops.
    """

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        tracer: Tracer | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._headers = {"Accept": "application/json", "User-Agent": user_agent, **(headers or {})}
        self._tracer = tracer or trace.get_tracer(__name__)

    def close(self) -> None:
        # urllib opens one connection per request; nothing is pooled.
        return None

    def request(self, method: str, path: str, *, json_body: Any | None = None) -> HttpResponse:
        method = method.upper()
        url = append_path(self._base_url, path)
        with self._tracer.start_as_current_span(f"{method} /{path.lstrip('/')}", kind=SpanKind.CLIENT) as span:
            span.set_attribute("http.request.method", method)
            span.set_attribute("url.full", url)
            resp = self._send(method, url, json_body)
            span.set_attribute("http.response.status_code", resp.status_code)
            return resp

    def _send(self, method: str, url: str, json_body: Any | None) -> HttpResponse:
        req_headers = dict(self._headers)
        carrier: dict[str, str] = {}
        propagate.inject(carrier)
        req_headers.update(carrier)

        data: bytes | None = None
        if json_body is not None:
            data = json.dumps(json_body).encode("utf-8")
            req_headers.setdefault("Content-Type", "application/json")

        request = urllib.request.Request(url=url, data=data, method=method)
        for key, value in req_headers.items():
            request.add_header(key, value)

        logger.debug("%s %s", method, url)
        deadline = time.monotonic() + self._timeout_s
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                status = response.getcode()
                resp_headers = dict(response.headers.items())
                raw = self._read_body(response, url, deadline)
        except urllib.error.HTTPError as exc:
            status = exc.code
            resp_headers = dict(exc.headers.items())
            try:
                raw = exc.read()
            except (http.client.HTTPException, OSError) as read_exc:
                raise TransportError(status, message=f"{url}: {read_exc!r}") from read_exc
        except (socket.timeout, TimeoutError) as exc:
            raise TransportError(0, message=f"Request to {url} timed out after {self._timeout_s}s") from exc
        except urllib.error.URLError as exc:
            raise TransportError(0, message=f"{url}: {exc.reason}") from exc
        except http.client.HTTPException as exc:
            # IncompleteRead, BadStatusLine, LineTooLong: no usable response.
            raise TransportError(0, message=f"{url}: {exc!r}") from exc
        except OSError as exc:
            raise TransportError(0, message=f"{url}: {exc}") from exc

        return HttpResponse(
            method=method,
            url=url,
            status_code=status,
            headers=resp_headers,
            text=raw.decode("utf-8", errors="replace"),
        )

    def _read_body(self, response: Any, url: str, deadline: float) -> bytes:
        chunks: list[bytes] = []
        while True:
            if time.monotonic() > deadline:
                raise TransportError(0, message=f"Request to {url} timed out after {self._timeout_s}s")
            chunk = response.read1(_READ_CHUNK)
            if not chunk:
                body = b"".join(chunks)
                if response.length:
                    raise http.client.IncompleteRead(body, response.length)
                return body
            chunks.append(chunk)


@dataclass(frozen=True)
class ConnectorResponse:
    data: Any
    exchange: HttpExchange


class ConnectorClient:
    """
    JSON request/response access to the connector endpoints.

    Every failure to obtain a JSON document (network error, non-2xx status,
    non-JSON body) is raised as `TransportError`.
    """

    def __init__(self, session: HttpSession) -> None:
        self._session = session

    def get(self, path: str) -> Any:
        return self.request("GET", path).data

    def post(self, path: str, body: Any) -> Any:
        return self.request("POST", path, body=body).data

    def request(self, method: str, path: str, *, body: Any | None = None) -> ConnectorResponse:
        resp = self._session.request(method, path, json_body=body)
        exchange = HttpExchange(
            method=resp.method,
            url=resp.url,
            request_body=body,
            status_code=resp.status_code,
            content_type=resp.content_type(),
        )

        if resp.status_code >= 400 and not _looks_like_json(resp.content_type()):
            raise TransportError(resp.status_code, message=resp.text or None, response_body=resp.text)

        try:
            payload = parse_json(resp.text) if resp.text else None
        except json.JSONDecodeError as exc:
            if resp.status_code >= 400:
                raise TransportError(resp.status_code, message=f"Invalid JSON error response: {exc}") from exc
            raise TransportError(resp.status_code, message=f"Invalid JSON response: {exc}") from exc

        if resp.status_code >= 400:
            error = None
            if isinstance(payload, dict) and isinstance(payload.get("message"), str):
                error = ErrorResponse.from_dict(payload)
            raise TransportError(resp.status_code, error=error, response_body=payload)

        return ConnectorResponse(data=payload, exchange=exchange.with_response(payload))
