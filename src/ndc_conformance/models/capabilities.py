from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .common import _omit_none

# Leaf capabilities are "supported" when present with a non-null value, usually `{}`.
LeafCapability = dict[str, Any] | None


def _leaf(data: dict[str, Any], key: str) -> LeafCapability:
    value = data.get(key)
    return value if isinstance(value, dict) else None


def _extras(data: dict[str, Any], known: frozenset[str]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in known}


@dataclass(frozen=True, slots=True)
class QueryCapabilities:
    aggregates: LeafCapability = None
    variables: LeafCapability = None
    explain: LeafCapability = None
    extras: dict[str, Any] = field(default_factory=dict)

    KNOWN = frozenset({"aggregates", "variables", "explain"})

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extras,
            **_omit_none({"aggregates": self.aggregates, "variables": self.variables, "explain": self.explain}),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "QueryCapabilities":
        return QueryCapabilities(
            aggregates=_leaf(data, "aggregates"),
            variables=_leaf(data, "variables"),
            explain=_leaf(data, "explain"),
            extras=_extras(data, QueryCapabilities.KNOWN),
        )


@dataclass(frozen=True, slots=True)
class MutationCapabilities:
    transactional: LeafCapability = None
    explain: LeafCapability = None
    extras: dict[str, Any] = field(default_factory=dict)

    KNOWN = frozenset({"transactional", "explain"})

    def to_dict(self) -> dict[str, Any]:
        return {**self.extras, **_omit_none({"transactional": self.transactional, "explain": self.explain})}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "MutationCapabilities":
        return MutationCapabilities(
            transactional=_leaf(data, "transactional"),
            explain=_leaf(data, "explain"),
            extras=_extras(data, MutationCapabilities.KNOWN),
        )


@dataclass(frozen=True, slots=True)
class RelationshipCapabilities:
    relation_comparisons: LeafCapability = None
    order_by_aggregate: LeafCapability = None
    extras: dict[str, Any] = field(default_factory=dict)

    KNOWN = frozenset({"relation_comparisons", "order_by_aggregate"})

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extras,
            **_omit_none(
                {
                    "relation_comparisons": self.relation_comparisons,
                    "order_by_aggregate": self.order_by_aggregate,
                }
            ),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "RelationshipCapabilities":
        return RelationshipCapabilities(
            relation_comparisons=_leaf(data, "relation_comparisons"),
            order_by_aggregate=_leaf(data, "order_by_aggregate"),
            extras=_extras(data, RelationshipCapabilities.KNOWN),
        )


@dataclass(frozen=True, slots=True)
class Capabilities:
    query: QueryCapabilities = field(default_factory=QueryCapabilities)
    mutation: MutationCapabilities = field(default_factory=MutationCapabilities)
    relationships: RelationshipCapabilities | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    KNOWN = frozenset({"query", "mutation", "relationships"})

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extras,
            **_omit_none(
                {
                    "query": self.query.to_dict(),
                    "mutation": self.mutation.to_dict(),
                    "relationships": None if self.relationships is None else self.relationships.to_dict(),
                }
            ),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Capabilities":
        relationships = data.get("relationships")
        return Capabilities(
            query=QueryCapabilities.from_dict(data.get("query") or {}),
            mutation=MutationCapabilities.from_dict(data.get("mutation") or {}),
            relationships=RelationshipCapabilities.from_dict(relationships) if isinstance(relationships, dict) else None,
            extras=_extras(data, Capabilities.KNOWN),
        )

    def unknown_features(self) -> list[str]:
        out = [key for key in self.extras]
        out.extend(f"query.{key}" for key in self.query.extras)
        out.extend(f"mutation.{key}" for key in self.mutation.extras)
        if self.relationships is not None:
            out.extend(f"relationships.{key}" for key in self.relationships.extras)
        return out


@dataclass(frozen=True, slots=True)
class CapabilitiesResponse:
    version: str
    capabilities: Capabilities

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "capabilities": self.capabilities.to_dict()}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CapabilitiesResponse":
        return CapabilitiesResponse(
            version=data["version"],
            capabilities=Capabilities.from_dict(data["capabilities"]),
        )

    @property
    def supports_aggregates(self) -> bool:
        return self.capabilities.query.aggregates is not None

    @property
    def supports_explain(self) -> bool:
        return self.capabilities.query.explain is not None

    @property
    def supports_relationships(self) -> bool:
        return self.capabilities.relationships is not None
