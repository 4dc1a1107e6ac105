"""Resolve OpenAPI schemas into a canonical graph of SchemaNodes.

Handles:
- $ref resolution with memoization (one node object per identity)
- Cycles: re-entering an identity that is still being resolved yields a
  RecursiveRef instead of recursing again
- allOf flattening into one object, with field conflict detection
- oneOf/anyOf as ordered unions, keeping the discriminator
- OAS 3.1 type arrays and "null" variants as nullability
- enum/const values on primitives
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .errors import DanglingReference, IncompatibleMerge, InvalidCombinator, MalformedInput
from .loader import Document, escape_pointer_token, resolve_pointer

logger = logging.getLogger(__name__)

COMPONENT_PREFIX = "#/components/schemas/"

_PRIMITIVE_TYPES = {"string", "number", "integer", "boolean"}

# allOf members carrying only these keys add constraints, not fields
_CONSTRAINT_ONLY_KEYS = {"required", "description", "title"}


@dataclass(frozen=True, eq=False, kw_only=True)
class SchemaNode:
    identity: str
    description: str | None = None
    nullable: bool = False
    read_only: bool = False

    kind = "node"


@dataclass(frozen=True, eq=False, kw_only=True)
class PrimitiveNode(SchemaNode):
    type: str
    format: str | None = None
    enum: tuple[Any, ...] | None = None

    kind = "primitive"


@dataclass(frozen=True, eq=False, kw_only=True)
class AnyNode(SchemaNode):
    kind = "any"


@dataclass(frozen=True, eq=False, kw_only=True)
class ArrayNode(SchemaNode):
    items: SchemaNode

    kind = "array"


@dataclass(frozen=True, eq=False)
class Field:
    name: str
    node: SchemaNode
    required: bool = False
    description: str | None = None


@dataclass(frozen=True, eq=False, kw_only=True)
class ObjectNode(SchemaNode):
    fields: tuple[Field, ...] = ()
    additional: SchemaNode | None = None

    kind = "object"

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(frozen=True)
class Discriminator:
    property_name: str
    # tag value -> identity of the variant it selects
    mapping: tuple[tuple[str, str], ...] = ()

    def value_for(self, identity: str) -> str | None:
        for value, target in self.mapping:
            if target == identity:
                return value
        if identity.startswith(COMPONENT_PREFIX):
            return component_name(identity)
        return None


@dataclass(frozen=True, eq=False, kw_only=True)
class UnionNode(SchemaNode):
    variants: tuple[SchemaNode, ...]
    discriminator: Discriminator | None = None
    combinator: str = "oneOf"

    kind = "union"


@dataclass(frozen=True, eq=False, kw_only=True)
class RecursiveRef(SchemaNode):
    target: str

    kind = "recursive"


@dataclass(frozen=True)
class SchemaGraph:
    """Read-only arena of resolved nodes addressed by identity."""

    nodes: Mapping[str, SchemaNode]
    components: tuple[str, ...] = field(default_factory=tuple)

    def __getitem__(self, identity: str) -> SchemaNode:
        return self.nodes[identity]

    def __contains__(self, identity: object) -> bool:
        return identity in self.nodes

    def get(self, identity: str) -> SchemaNode | None:
        return self.nodes.get(identity)

    def target(self, node: RecursiveRef) -> SchemaNode:
        return self.nodes[node.target]


def component_name(identity: str) -> str:
    """Return ``Pet`` for ``#/components/schemas/Pet``."""
    name = identity[len(COMPONENT_PREFIX):] if identity.startswith(COMPONENT_PREFIX) else identity
    return name.replace("~1", "/").replace("~0", "~")


def is_component(identity: str) -> bool:
    return identity.startswith(COMPONENT_PREFIX) and "/" not in identity[len(COMPONENT_PREFIX):]


def same_shape(a: SchemaNode, b: SchemaNode) -> bool:
    """Structural compatibility used when merging allOf fields."""
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, PrimitiveNode):
        return a.type == b.type and a.format == b.format
    if isinstance(a, ArrayNode):
        return same_shape(a.items, b.items)
    if isinstance(a, ObjectNode):
        if set(a.field_names()) != set(b.field_names()):
            return False
        for fa in a.fields:
            fb = b.get(fa.name)
            if fa.required != fb.required or not same_shape(fa.node, fb.node):
                return False
        return True
    if isinstance(a, UnionNode):
        return len(a.variants) == len(b.variants) and all(
            same_shape(va, vb) for va, vb in zip(a.variants, b.variants)
        )
    if isinstance(a, RecursiveRef):
        return a.target == b.target
    return True


def describe_shape(node: SchemaNode) -> str:
    """Short human-readable rendering of a node's shape for diagnostics."""
    if isinstance(node, PrimitiveNode):
        return f"{node.type}({node.format})" if node.format else node.type
    if isinstance(node, ArrayNode):
        return f"array<{describe_shape(node.items)}>"
    if isinstance(node, ObjectNode):
        if is_component(node.identity):
            return component_name(node.identity)
        return "object{" + ",".join(node.field_names()) + "}"
    if isinstance(node, UnionNode):
        return f"{node.combinator}[" + " | ".join(describe_shape(v) for v in node.variants) + "]"
    if isinstance(node, RecursiveRef):
        return f"ref({node.target})"
    return "any"


class SchemaResolver:
    """Depth-first resolver from raw schemas to SchemaNodes.

    Nodes are memoized by identity: the pointer of the reference target, or
    the pointer of the inline location for anonymous schemas.
    """

    def __init__(self, document: Document) -> None:
        self.document = document
        self._raw = document.raw
        self._resolved: dict[str, SchemaNode] = {}
        self._visiting: set[str] = set()
        self._components: list[str] = []

    def resolve_components(self) -> SchemaGraph:
        """Resolve every component schema, in declaration order."""
        for name in self.document.schemas:
            identity = COMPONENT_PREFIX + escape_pointer_token(name)
            self._components.append(identity)
            self.resolve_ref(identity)
        logger.debug("Resolved %d component schemas", len(self._components))
        return self.graph()

    def graph(self) -> SchemaGraph:
        return SchemaGraph(
            nodes=MappingProxyType(dict(self._resolved)),
            components=tuple(self._components),
        )

    def resolve(self, raw: Any, pointer: str) -> SchemaNode:
        """Resolve an inline schema (or a $ref) found at ``pointer``."""
        if isinstance(raw, dict) and "$ref" in raw:
            return self.resolve_ref(raw["$ref"], used_at=pointer)
        return self._resolve_at(pointer, raw)

    def resolve_ref(self, ref: str, used_at: str | None = None) -> SchemaNode:
        if not isinstance(ref, str):
            raise MalformedInput("$ref must be a string", pointer=used_at)
        if ref in self._resolved:
            return self._resolved[ref]
        if ref in self._visiting:
            return RecursiveRef(identity=ref, target=ref)
        raw = resolve_pointer(self._raw, ref, pointer=used_at)
        node = self._resolve_at(ref, raw)
        if isinstance(node, RecursiveRef) and node.target == ref:
            raise MalformedInput(f"Reference {ref!r} only refers back to itself", pointer=used_at)
        return node

    def _resolve_at(self, identity: str, raw: Any) -> SchemaNode:
        if identity in self._resolved:
            return self._resolved[identity]
        if identity in self._visiting:
            # Re-entry while still resolving: break the cycle here.
            return RecursiveRef(identity=identity, target=identity)

        self._visiting.add(identity)
        try:
            node = self._build(identity, raw)
        finally:
            self._visiting.discard(identity)
        self._resolved[identity] = node
        return node

    def _build(self, identity: str, raw: Any) -> SchemaNode:
        if raw is True or raw is None:
            return AnyNode(identity=identity)
        if not isinstance(raw, dict):
            raise MalformedInput("Schema must be a mapping", pointer=identity)

        if "$ref" in raw:
            return self.resolve_ref(raw["$ref"], used_at=identity)

        common = {
            "identity": identity,
            "description": raw.get("description"),
            "nullable": bool(raw.get("nullable", False)),
            "read_only": bool(raw.get("readOnly", False)),
        }

        if "allOf" in raw:
            return self._merge_all_of(identity, raw, common)
        for key in ("oneOf", "anyOf"):
            if key in raw:
                return self._build_union(identity, raw, key, common)

        schema_type = raw.get("type")
        if isinstance(schema_type, list):
            types = [t for t in schema_type if t != "null"]
            if len(types) != len(schema_type):
                common["nullable"] = True
            if len(types) > 1:
                variants = tuple(
                    self._resolve_at(f"{identity}/type/{i}", {**_without(raw, "type", "description"), "type": t})
                    for i, t in enumerate(types)
                )
                return UnionNode(variants=variants, combinator="type", **common)
            schema_type = types[0] if types else None

        enum = raw.get("enum")
        if "const" in raw:
            enum = [raw["const"]]
        if schema_type is None and enum:
            schema_type = _infer_enum_type(enum)

        if schema_type == "array":
            items = self.resolve(raw.get("items", {}), f"{identity}/items")
            return ArrayNode(items=items, **common)
        if schema_type == "object" or "properties" in raw or (
            schema_type is None and isinstance(raw.get("additionalProperties"), dict)
        ):
            return self._build_object(identity, raw, common)
        if schema_type in _PRIMITIVE_TYPES:
            return PrimitiveNode(
                type=schema_type,
                format=raw.get("format"),
                enum=tuple(enum) if enum else None,
                **common,
            )
        if schema_type is not None:
            raise MalformedInput(f"Unknown schema type {schema_type!r}", pointer=identity)
        return AnyNode(**common)

    def _build_object(self, identity: str, raw: dict[str, Any], common: dict[str, Any]) -> ObjectNode:
        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise MalformedInput("'properties' must be a mapping", pointer=identity)
        required = set(raw.get("required") or [])
        fields = tuple(
            Field(
                name=name,
                node=self.resolve(prop, f"{identity}/properties/{escape_pointer_token(name)}"),
                required=name in required,
            )
            for name, prop in properties.items()
        )
        additional = raw.get("additionalProperties")
        additional_node = None
        if isinstance(additional, dict):
            additional_node = self.resolve(additional, f"{identity}/additionalProperties")
        return ObjectNode(fields=fields, additional=additional_node, **common)

    def _build_union(
        self, identity: str, raw: dict[str, Any], key: str, common: dict[str, Any],
    ) -> UnionNode:
        members = raw[key]
        if not isinstance(members, list) or not members:
            raise InvalidCombinator(f"{key} must be a non-empty list", pointer=identity)

        variants: list[SchemaNode] = []
        for i, member in enumerate(members):
            if isinstance(member, dict) and member.get("type") == "null" and len(member) == 1:
                common["nullable"] = True
                continue
            variants.append(self.resolve(member, f"{identity}/{key}/{i}"))

        return UnionNode(
            variants=tuple(variants),
            discriminator=_parse_discriminator(raw.get("discriminator"), identity),
            combinator=key,
            **common,
        )

    def _merge_all_of(self, identity: str, raw: dict[str, Any], common: dict[str, Any]) -> SchemaNode:
        members = raw["allOf"]
        if not isinstance(members, list) or not members:
            raise InvalidCombinator("allOf must be a non-empty list", pointer=identity)

        siblings = {k: raw[k] for k in ("properties", "required", "additionalProperties") if k in raw}
        if len(members) == 1 and not siblings:
            # allOf: [$ref] is the usual way to attach a description to a ref
            return self.resolve(members[0], f"{identity}/allOf/0")

        raw_members = list(members)
        if siblings:
            raw_members.append({"type": "object", **siblings})

        merged: dict[str, Field] = {}
        extra_required: set[str] = set()
        additional: SchemaNode | None = None
        description = common["description"]

        for i, member in enumerate(raw_members):
            member_pointer = f"{identity}/allOf/{i}"
            if isinstance(member, dict) and "$ref" not in member and member and set(member) <= _CONSTRAINT_ONLY_KEYS:
                extra_required.update(member.get("required") or [])
                continue

            node = self.resolve(member, member_pointer)
            if isinstance(node, RecursiveRef):
                raise InvalidCombinator(
                    f"allOf member {node.target!r} refers back to a schema that is still being resolved",
                    pointer=member_pointer,
                )
            if not isinstance(node, ObjectNode):
                raise InvalidCombinator(
                    f"allOf member is {describe_shape(node)}, only object schemas can be merged",
                    pointer=member_pointer,
                )
            if description is None:
                description = node.description
            if additional is None:
                additional = node.additional

            for f in node.fields:
                existing = merged.get(f.name)
                if existing is None:
                    merged[f.name] = f
                    continue
                if not same_shape(existing.node, f.node):
                    raise IncompatibleMerge(
                        f.name, describe_shape(existing.node), describe_shape(f.node), pointer=member_pointer,
                    )
                if f.required and not existing.required:
                    merged[f.name] = Field(
                        name=existing.name, node=existing.node, required=True, description=existing.description,
                    )

        fields = tuple(
            Field(name=f.name, node=f.node, required=True, description=f.description)
            if f.name in extra_required and not f.required else f
            for f in merged.values()
        )
        common["description"] = description
        return ObjectNode(fields=fields, additional=additional, **common)


def _without(raw: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in keys}


def _infer_enum_type(values: list[Any]) -> str | None:
    if all(isinstance(v, bool) for v in values):
        return "boolean"
    if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return "integer"
    if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return "number"
    if all(isinstance(v, str) for v in values):
        return "string"
    return None


def _parse_discriminator(raw: Any, identity: str) -> Discriminator | None:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("propertyName"), str):
        raise MalformedInput("discriminator requires a propertyName", pointer=f"{identity}/discriminator")
    mapping = []
    for value, target in (raw.get("mapping") or {}).items():
        if not target.startswith("#"):
            target = COMPONENT_PREFIX + escape_pointer_token(target)
        mapping.append((str(value), target))
    return Discriminator(property_name=raw["propertyName"], mapping=tuple(mapping))


def children(node: SchemaNode) -> list[SchemaNode]:
    if isinstance(node, ArrayNode):
        return [node.items]
    if isinstance(node, ObjectNode):
        nodes = [f.node for f in node.fields]
        if node.additional is not None:
            nodes.append(node.additional)
        return nodes
    if isinstance(node, UnionNode):
        return list(node.variants)
    return []


def walk(*roots: SchemaNode) -> list[SchemaNode]:
    """Every node reachable from ``roots``, each once, without following RecursiveRefs."""
    seen: set[int] = set()
    ordered: list[SchemaNode] = []
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        ordered.append(node)
        stack.extend(reversed(children(node)))
    return ordered


def recursion_targets(*roots: SchemaNode) -> set[str]:
    """Identities that some RecursiveRef reachable from ``roots`` points back to."""
    return {node.target for node in walk(*roots) if isinstance(node, RecursiveRef)}
