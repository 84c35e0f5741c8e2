from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

DEFAULT_SCHEMA_FILE = "ndc-v0.1.schema.json"


def _json_path(err: object) -> str:
    path = getattr(err, "absolute_path", None)
    if not path:
        return "$"
    out = "$"
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}"
    return out


@dataclass(frozen=True)
class SchemaRegistry:
    """The wire JSON schemas, one `$defs` entry per protocol document."""

    root: dict[str, Any]
    _validators: dict[str, Draft202012Validator] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def load(cls, *, schema_path: Path | None = None) -> "SchemaRegistry":
        if schema_path is None:
            text = resources.files("ndc_conformance").joinpath("wire", DEFAULT_SCHEMA_FILE).read_text(encoding="utf-8")
        else:
            text = schema_path.read_text(encoding="utf-8")
        return cls(root=json.loads(text))

    def _validator(self, definition: str) -> Draft202012Validator:
        validator = self._validators.get(definition)
        if validator is None:
            if definition not in self.root.get("$defs", {}):
                raise KeyError(f"Schema definition not found: {definition}")
            schema = {**self.root, "$ref": f"#/$defs/{definition}"}
            validator = Draft202012Validator(schema)
            self._validators[definition] = validator
        return validator

    def validate(self, instance: Any, *, definition: str) -> list[str]:
        validator = self._validator(definition)
        errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in getattr(e, "absolute_path", [])])
        return [f"{_json_path(e)}: {e.message}" for e in errors]
