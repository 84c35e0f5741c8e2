from __future__ import annotations

from enum import Enum
from typing import Any

from ndc_conformance.models.common import ErrorResponse


class FailureKind(str, Enum):
    UNREACHABLE = "unreachable"
    STRUCTURAL = "structural"
    TRANSPORT = "transport"
    SHAPE_MISMATCH = "shape_mismatch"
    AGGREGATE_SHAPE_MISMATCH = "aggregate_shape_mismatch"


class TransportError(Exception):
    """
    A request to the connector did not produce a usable JSON document.

    `status_code` is 0 when no HTTP response was received (connection refused,
    DNS failure, deadline expired).
    """

    def __init__(
        self,
        status_code: int,
        *,
        message: str | None = None,
        error: ErrorResponse | None = None,
        response_body: Any | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.error = error
        self.response_body = response_body

        super().__init__(str(self))

    def __str__(self) -> str:
        if self.error is not None:
            return f"Connector error {self.status_code}: {self.error.message}"
        if self.status_code == 0:
            return f"Connection failed: {self.message}"
        if self.message:
            return f"Connector error {self.status_code}: {self.message}"
        return f"Connector error {self.status_code}"


class ValidationFailure(Exception):
    """Raised by the document fetchers when the run cannot continue."""

    def __init__(self, kind: FailureKind, message: str, *, errors: list[str] | None = None) -> None:
        self.kind = kind
        self.message = message
        self.errors = errors or []
        super().__init__(f"{kind.value}: {message}")
