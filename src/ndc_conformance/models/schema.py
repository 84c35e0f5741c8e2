from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from .common import Type, _omit_none, is_nullable, type_from_dict


def _duplicates(data: Any) -> tuple[str, ...]:
    # Set by ndc_conformance.http.JsonObject when the wire object repeated a key.
    return tuple(getattr(data, "duplicate_keys", ()))


@dataclass(frozen=True, slots=True)
class ArgumentInfo:
    name: str
    type: Type
    description: str | None = None

    @property
    def required(self) -> bool:
        return not is_nullable(self.type)

    def to_dict(self) -> dict[str, Any]:
        return _omit_none({"description": self.description, "type": self.type.to_dict()})

    @staticmethod
    def from_dict(name: str, data: dict[str, Any]) -> "ArgumentInfo":
        return ArgumentInfo(name=name, type=type_from_dict(data["type"]), description=data.get("description"))


def _arguments_from_dict(data: dict[str, Any] | None) -> tuple[ArgumentInfo, ...]:
    return tuple(ArgumentInfo.from_dict(name, value) for name, value in (data or {}).items())


def _arguments_to_dict(arguments: tuple[ArgumentInfo, ...]) -> dict[str, Any]:
    return {argument.name: argument.to_dict() for argument in arguments}


@dataclass(frozen=True, slots=True)
class ScalarType:
    name: str
    aggregate_functions: dict[str, Type] = field(default_factory=dict)
    comparison_operators: dict[str, Any] = field(default_factory=dict)
    representation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "aggregate_functions": {
                    name: {"result_type": result_type.to_dict()}
                    for name, result_type in self.aggregate_functions.items()
                },
                "comparison_operators": self.comparison_operators,
                "representation": None if self.representation is None else {"type": self.representation},
            }
        )

    @staticmethod
    def from_dict(name: str, data: dict[str, Any]) -> "ScalarType":
        representation = data.get("representation")
        return ScalarType(
            name=name,
            aggregate_functions={
                fn_name: type_from_dict(fn["result_type"])
                for fn_name, fn in (data.get("aggregate_functions") or {}).items()
            },
            comparison_operators=dict(data.get("comparison_operators") or {}),
            representation=representation.get("type") if isinstance(representation, dict) else None,
        )


@dataclass(frozen=True, slots=True)
class ObjectField:
    name: str
    type: Type
    description: str | None = None

    @property
    def nullable(self) -> bool:
        return is_nullable(self.type)

    def to_dict(self) -> dict[str, Any]:
        return _omit_none({"description": self.description, "type": self.type.to_dict()})


@dataclass(frozen=True, slots=True)
class ObjectType:
    name: str
    fields: tuple[ObjectField, ...]
    description: str | None = None
    duplicate_fields: tuple[str, ...] = ()

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "description": self.description,
                "fields": {f.name: f.to_dict() for f in self.fields},
            }
        )

    @staticmethod
    def from_dict(name: str, data: dict[str, Any]) -> "ObjectType":
        raw_fields = data["fields"]
        return ObjectType(
            name=name,
            description=data.get("description"),
            fields=tuple(
                ObjectField(name=fname, type=type_from_dict(fdata["type"]), description=fdata.get("description"))
                for fname, fdata in raw_fields.items()
            ),
            duplicate_fields=_duplicates(raw_fields),
        )


@dataclass(frozen=True, slots=True)
class ForeignKey:
    name: str
    foreign_collection: str
    column_mapping: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"column_mapping": self.column_mapping, "foreign_collection": self.foreign_collection}


@dataclass(frozen=True, slots=True)
class CollectionInfo:
    name: str
    type: str
    arguments: tuple[ArgumentInfo, ...] = ()
    description: str | None = None
    uniqueness_constraints: dict[str, Any] = field(default_factory=dict)
    foreign_keys: tuple[ForeignKey, ...] = ()
    duplicate_arguments: tuple[str, ...] = ()

    @property
    def required_arguments(self) -> list[ArgumentInfo]:
        return [argument for argument in self.arguments if argument.required]

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "name": self.name,
                "description": self.description,
                "arguments": _arguments_to_dict(self.arguments),
                "type": self.type,
                "uniqueness_constraints": self.uniqueness_constraints,
                "foreign_keys": {fk.name: fk.to_dict() for fk in self.foreign_keys},
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CollectionInfo":
        return CollectionInfo(
            name=data["name"],
            type=data["type"],
            description=data.get("description"),
            arguments=_arguments_from_dict(data.get("arguments")),
            uniqueness_constraints=dict(data.get("uniqueness_constraints") or {}),
            foreign_keys=tuple(
                ForeignKey(
                    name=fk_name,
                    foreign_collection=fk["foreign_collection"],
                    column_mapping=dict(fk.get("column_mapping") or {}),
                )
                for fk_name, fk in (data.get("foreign_keys") or {}).items()
            ),
            duplicate_arguments=_duplicates(data.get("arguments")),
        )


CommandKind = Literal["function", "procedure"]


@dataclass(frozen=True, slots=True)
class CommandInfo:
    """A function (read-only, queried via /query) or a procedure (invoked via /mutation)."""

    name: str
    kind: CommandKind
    result_type: Type
    arguments: tuple[ArgumentInfo, ...] = ()
    description: str | None = None
    duplicate_arguments: tuple[str, ...] = ()

    @property
    def required_arguments(self) -> list[ArgumentInfo]:
        return [argument for argument in self.arguments if argument.required]

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "name": self.name,
                "description": self.description,
                "arguments": _arguments_to_dict(self.arguments),
                "result_type": self.result_type.to_dict(),
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any], *, kind: CommandKind) -> "CommandInfo":
        return CommandInfo(
            name=data["name"],
            kind=kind,
            description=data.get("description"),
            arguments=_arguments_from_dict(data.get("arguments")),
            result_type=type_from_dict(data["result_type"]),
            duplicate_arguments=_duplicates(data.get("arguments")),
        )


@dataclass(frozen=True, slots=True)
class Column:
    name: str
    type: Type
    nullable: bool


@dataclass(frozen=True, slots=True)
class SchemaResponse:
    scalar_types: dict[str, ScalarType] = field(default_factory=dict)
    object_types: dict[str, ObjectType] = field(default_factory=dict)
    collections: tuple[CollectionInfo, ...] = ()
    functions: tuple[CommandInfo, ...] = ()
    procedures: tuple[CommandInfo, ...] = ()

    @property
    def commands(self) -> tuple[CommandInfo, ...]:
        return self.functions + self.procedures

    def resolves(self, type_name: str) -> bool:
        return type_name in self.scalar_types or type_name in self.object_types

    def collection_row_types(self) -> set[str]:
        return {collection.type for collection in self.collections}

    def columns(self, collection: CollectionInfo) -> list[Column] | None:
        """Columns of `collection` in declaration order, or None if its row type is not an object type."""
        row_type = self.object_types.get(collection.type)
        if row_type is None:
            return None
        return [Column(name=f.name, type=f.type, nullable=f.nullable) for f in row_type.fields]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scalar_types": {name: scalar.to_dict() for name, scalar in self.scalar_types.items()},
            "object_types": {name: obj.to_dict() for name, obj in self.object_types.items()},
            "collections": [collection.to_dict() for collection in self.collections],
            "functions": [fn.to_dict() for fn in self.functions],
            "procedures": [proc.to_dict() for proc in self.procedures],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "SchemaResponse":
        return SchemaResponse(
            scalar_types={name: ScalarType.from_dict(name, value) for name, value in data["scalar_types"].items()},
            object_types={name: ObjectType.from_dict(name, value) for name, value in data["object_types"].items()},
            collections=tuple(CollectionInfo.from_dict(item) for item in data["collections"]),
            functions=tuple(CommandInfo.from_dict(item, kind="function") for item in data["functions"]),
            procedures=tuple(CommandInfo.from_dict(item, kind="procedure") for item in data["procedures"]),
        )
