from __future__ import annotations

__all__ = ["__version__", "SPEC_REF", "SUPPORTED_PROTOCOL", "run"]

__version__ = "0.1.0"
SPEC_REF = "ndc-spec/v0.1"
# Capabilities versions accepted by the harness (semver major.minor).
SUPPORTED_PROTOCOL = (0, 1)

from .api import run  # noqa: E402
