from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


def _omit_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True, slots=True)
class NamedType:
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "named", "name": self.name}


@dataclass(frozen=True, slots=True)
class NullableType:
    underlying_type: "Type"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "nullable", "underlying_type": self.underlying_type.to_dict()}


@dataclass(frozen=True, slots=True)
class ArrayType:
    element_type: "Type"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "array", "element_type": self.element_type.to_dict()}


Type = Union[NamedType, NullableType, ArrayType]


def type_from_dict(data: dict[str, Any]) -> Type:
    kind = data.get("type")
    if kind == "named":
        return NamedType(name=data["name"])
    if kind == "nullable":
        return NullableType(underlying_type=type_from_dict(data["underlying_type"]))
    if kind == "array":
        return ArrayType(element_type=type_from_dict(data["element_type"]))
    raise ValueError(f"Unknown type variant: {kind!r}")


def underlying_name(type_: Type) -> str:
    """
    Return the type name referenced by `type_`.

    Only the nullable/array wrappers are unwrapped. Named types are never
    expanded, so resolving them is a single lookup and cyclic object types
    cannot cause non-termination.
    """

    while not isinstance(type_, NamedType):
        if isinstance(type_, NullableType):
            type_ = type_.underlying_type
        else:
            type_ = type_.element_type
    return type_.name


def is_nullable(type_: Type) -> bool:
    return isinstance(type_, NullableType)


def strip_nullable(type_: Type) -> Type:
    while isinstance(type_, NullableType):
        type_ = type_.underlying_type
    return type_


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    message: str
    details: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none({"message": self.message, "details": self.details})

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ErrorResponse":
        return ErrorResponse(message=data["message"], details=data.get("details"))
