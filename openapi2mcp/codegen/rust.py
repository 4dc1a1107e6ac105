"""Rust target: serde + schemars input types for each tool.

Output layout:
  src/tools/<tool>.rs   input types and an async call() stub per tool
  src/tools/mod.rs      module declarations and the tool name list
  src/constants.rs      base URL and auth configuration
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from ..context_builder import Tool
from ..errors import DuplicateField
from ..naming import sanitize_identifier, sanitize_snake, to_pascal_case
from ..schema_parser import (
    AnyNode,
    ArrayNode,
    ObjectNode,
    PrimitiveNode,
    RecursiveRef,
    SchemaGraph,
    SchemaNode,
    UnionNode,
    describe_shape,
)
from ..security import SecurityConfig
from .base import Artifact, declaration_base, render, unique_name, usable_discriminator

RUST_KEYWORDS = {
    "as", "async", "await", "break", "const", "continue", "crate", "dyn", "else", "enum",
    "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
    "move", "mut", "pub", "ref", "return", "self", "Self", "static", "struct", "super",
    "trait", "true", "type", "unsafe", "use", "where", "while", "abstract", "become",
    "box", "do", "final", "gen", "macro", "override", "priv", "try", "typeof", "unsized",
    "virtual", "yield",
}

# Keywords that cannot be written as raw identifiers
_NOT_RAW = {"self", "Self", "super", "crate", "_"}

# Type names the generated modules already use
_RESERVED_TYPES = {"String", "Vec", "Option", "Box", "Result", "HashMap", "Value", "HttpClient", "HttpRequest"}

_EMPTY_GRAPH = SchemaGraph(nodes={})


def rust_identifier(name: str, snake: bool = True) -> str:
    ident = sanitize_snake(name) if snake else sanitize_identifier(name)
    if not ident:
        ident = "field"
    if ident in _NOT_RAW:
        return f"{ident}_"
    if ident in RUST_KEYWORDS:
        return f"r#{ident}"
    return ident


def module_name(tool_name: str) -> str:
    return rust_identifier(tool_name, snake=False)


def module_file(tool_name: str) -> str:
    """File stem rustc looks up for ``pub mod <module_name>;``."""
    return module_name(tool_name).removeprefix("r#")


@dataclass
class RustField:
    name: str
    type: str
    serde: list[str] = field(default_factory=list)
    doc: str | None = None
    source: str | None = None


@dataclass
class RustVariant:
    name: str
    tag: str
    fields: list[RustField]
    doc: str | None = None


@dataclass
class RustItem:
    kind: str
    name: str
    doc: str | None = None
    fields: list[RustField] = field(default_factory=list)
    variants: list[RustVariant] = field(default_factory=list)
    tag: str | None = None
    note: str | None = None


class RustWriter:
    """Renders SchemaNodes as Rust types, collecting the items they need.

    Every object becomes a struct. Component schemas keep their name;
    anonymous objects are named after where they appear. References back into
    an item that is still being built are boxed.
    """

    def __init__(self, graph: SchemaGraph, context: str = "") -> None:
        self.graph = graph
        self.context = context
        self.items: list[RustItem] = []
        self._names: dict[str, str] = {}
        self._in_progress: set[str] = set()
        self._following: set[str] = set()

    def reserve(self, node: SchemaNode, name: str) -> None:
        self._names[node.identity] = name

    def _type_name(self, node: SchemaNode, hint: str) -> str:
        if node.identity not in self._names:
            base = to_pascal_case(declaration_base(node) or hint) or "Anonymous"
            if base in _RESERVED_TYPES:
                base = f"{base}Model"
            self._names[node.identity] = unique_name(base, self._names.values())
        return self._names[node.identity]

    def _declared(self, node: SchemaNode, hint: str, build) -> str:
        identity = node.identity
        if identity in self._in_progress:
            return f"Box<{self._names[identity]}>"
        if identity in self._names:
            return self._names[identity]
        name = self._type_name(node, hint)
        self._in_progress.add(identity)
        try:
            item = build(node, name)
        finally:
            self._in_progress.discard(identity)
        self.items.append(item)
        return name

    def type_for(self, node: SchemaNode, hint: str) -> str:
        if isinstance(node, RecursiveRef):
            target = self.graph.get(node.target)
            if target is None:
                return "Box<serde_json::Value>"
            if target.identity in self._names:
                return f"Box<{self._names[target.identity]}>"
            if node.target in self._following:
                # self-nesting arrays or maps have no named item to box
                return "serde_json::Value"
            self._following.add(node.target)
            try:
                inner = self.type_for(target, hint)
            finally:
                self._following.discard(node.target)
            return inner if inner.startswith("Box<") else f"Box<{inner}>"
        if isinstance(node, PrimitiveNode):
            return self._primitive(node)
        if isinstance(node, ArrayNode):
            return f"Vec<{self.type_for(node.items, hint + 'Item')}>"
        if isinstance(node, ObjectNode):
            if not node.fields:
                value = self.type_for(node.additional, hint + "Value") if node.additional else "serde_json::Value"
                return f"HashMap<String, {value}>"
            return self._declared(node, hint, self._struct)
        if isinstance(node, UnionNode):
            if not node.variants:
                return "serde_json::Value"
            if len(node.variants) == 1:
                return self.type_for(node.variants[0], hint)
            return self._declared(node, hint, self._union)
        if isinstance(node, AnyNode):
            return "serde_json::Value"
        raise TypeError(f"Unknown schema node {node!r}")

    def _primitive(self, node: PrimitiveNode) -> str:
        if node.type == "integer":
            return "i32" if node.format == "int32" else "i64"
        if node.type == "number":
            return "f32" if node.format == "float" else "f64"
        if node.type == "boolean":
            return "bool"
        return "String"

    def fields_for(self, node: ObjectNode, owner: str, skip: str | None = None) -> list[RustField]:
        fields: list[RustField] = []
        seen: dict[str, str] = {}
        kept = [f for f in node.fields if not f.node.read_only and f.name != skip]
        snake = [rust_identifier(f.name) for f in kept]
        # fields that only collide once snake-cased keep their own spelling
        counts = Counter(snake)
        names = [
            rust_identifier(f.name, snake=False) if counts[s] > 1 else s
            for f, s in zip(kept, snake)
        ]
        for f, name in zip(kept, names):
            if name in seen:
                raise DuplicateField(
                    name, (seen[name], f.name), operation=self.context or None, pointer=node.identity,
                )
            seen[name] = f.name

            rust_type = self.type_for(f.node, owner + to_pascal_case(f.name))
            serde = []
            if name.removeprefix("r#") != f.name:
                serde.append(f"rename = {_quote(f.name)}")
            if not f.required or f.node.nullable:
                rust_type = f"Option<{rust_type}>"
                serde.append('default, skip_serializing_if = "Option::is_none"')
            fields.append(RustField(
                name=name, type=rust_type, serde=serde, doc=f.description or f.node.description,
                source=f.name,
            ))

        if node.additional is not None:
            value = self.type_for(node.additional, owner + "Value")
            extra = unique_name("additional_properties", seen)
            fields.append(RustField(name=extra, type=f"HashMap<String, {value}>", serde=["flatten"]))
        return fields

    def _struct(self, node: ObjectNode, name: str) -> RustItem:
        return RustItem(kind="struct", name=name, doc=node.description, fields=self.fields_for(node, name))

    def _union(self, node: UnionNode, name: str) -> RustItem:
        pairs = usable_discriminator(node, self.context)
        if pairs is None:
            shapes = ", ".join(describe_shape(v) for v in node.variants)
            return RustItem(
                kind="alias",
                name=name,
                doc=node.description,
                note=(
                    f"One of: {shapes}. Untagged union: the variants are not enforced "
                    "and any JSON value is accepted."
                ),
            )

        prop = node.discriminator.property_name
        variants = []
        taken: list[str] = []
        for value, variant in pairs:
            variant_name = unique_name(
                to_pascal_case(declaration_base(variant) or value) or "Variant", taken,
            )
            taken.append(variant_name)
            variants.append(RustVariant(
                name=variant_name,
                tag=value,
                fields=self.fields_for(variant, name + variant_name, skip=prop),
                doc=variant.description,
            ))
        return RustItem(kind="enum", name=name, doc=node.description, variants=variants, tag=prop)


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class RustTarget:
    name = "rust"

    def __init__(self, graph: SchemaGraph | None = None) -> None:
        self._graph = graph or _EMPTY_GRAPH

    def sanitize_identifier(self, name: str) -> str:
        return rust_identifier(name)

    def map_type(self, node: SchemaNode) -> str:
        return RustWriter(self._graph).type_for(node, "Type")

    def tool_path(self, tool: Tool) -> str:
        return f"src/tools/{module_file(tool.name)}.rs"

    def emit_tool(self, tool: Tool, graph: SchemaGraph) -> Artifact:
        writer = RustWriter(graph, context=tool.operation.label)
        input_name = to_pascal_case(tool.name) + "Input"
        writer.reserve(tool.input_schema, input_name)
        input_fields = writer.fields_for(tool.input_schema, input_name)
        field_names = {f.source: f.name for f in input_fields if f.source is not None}

        def args(binding) -> str:
            return f"&args.{field_names[binding.field]}"

        body_binding = tool.body_binding
        body_fields = [(b.wire_name, args(b)) for b in tool.bindings_in("body") if not b.whole_body]
        content = render(
            "rust/tool.rs.j2",
            tool=tool,
            items=writer.items,
            input_name=input_name,
            input_fields=input_fields,
            method=tool.method.upper(),
            path_params=[(b.wire_name, args(b)) for b in tool.bindings_in("path")],
            query=[(b.wire_name, args(b)) for b in tool.bindings_in("query")],
            headers=[(b.wire_name, args(b)) for b in tool.bindings_in("header")],
            cookies=[(b.wire_name, args(b)) for b in tool.bindings_in("cookie")],
            body=args(body_binding) if body_binding is not None else None,
            body_fields=body_fields,
        )
        return Artifact(path=self.tool_path(tool), content=content, target=self.name)

    def emit_index(self, tools: list[Tool]) -> Artifact:
        modules = [(module_name(t.name), t.name) for t in tools]
        content = render("rust/mod.rs.j2", modules=modules)
        return Artifact(path="src/tools/mod.rs", content=content, target=self.name)

    def emit_config(self, config: SecurityConfig) -> Artifact:
        content = render("rust/constants.rs.j2", config=config)
        return Artifact(path="src/constants.rs", content=content, target=self.name)
