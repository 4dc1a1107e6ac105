"""TypeScript target: zod input schemas for @modelcontextprotocol/sdk tools.

Output layout:
  src/routes/v1/mcp/tools/<tool>.ts   one module per tool with setupTool()
  src/routes/v1/mcp/tools/index.ts    setupAllTools() registering every tool
  src/constants.ts                    base URL and auth configuration
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from ..context_builder import Tool
from ..naming import sanitize_identifier, to_pascal_case
from ..schema_parser import (
    AnyNode,
    ArrayNode,
    ObjectNode,
    PrimitiveNode,
    RecursiveRef,
    SchemaGraph,
    SchemaNode,
    UnionNode,
    is_component,
    recursion_targets,
)
from ..security import SecurityConfig
from .base import Artifact, declaration_base, render, unique_name, usable_discriminator

TOOLS_DIR = "src/routes/v1/mcp/tools"

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

_STRING_FORMATS = {
    "date-time": ".datetime({ offset: true })",
    "email": ".email()",
    "uuid": ".uuid()",
    "uri": ".url()",
    "url": ".url()",
}

_EMPTY_GRAPH = SchemaGraph(nodes={})


def _literal(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def property_key(name: str) -> str:
    """Object key as written in TypeScript: bare when legal, quoted otherwise."""
    return name if _IDENTIFIER.match(name) else _literal(name)


def property_access(obj: str, name: str) -> str:
    return f"{obj}.{name}" if _IDENTIFIER.match(name) else f"{obj}[{_literal(name)}]"


@dataclass
class Declaration:
    name: str
    expression: str
    lazy: bool = False


class ZodWriter:
    """Renders SchemaNodes as zod expressions for one module.

    Component schemas, and anything a RecursiveRef points at, become ``const``
    declarations, emitted dependencies first. References back into a
    declaration that is still being rendered go through ``z.lazy``.
    """

    def __init__(self, graph: SchemaGraph, context: str = "") -> None:
        self.graph = graph
        self.context = context
        self.declarations: list[Declaration] = []
        self._names: dict[str, str] = {}
        self._in_progress: set[str] = set()
        self._lazy: set[str] = set()
        self._named: set[str] = set()
        self._declared: set[str] = set()

    def prepare(self, *roots: SchemaNode) -> None:
        """Find every identity reached through a RecursiveRef, following targets."""
        pending = list(roots)
        while pending:
            for identity in sorted(recursion_targets(pending.pop())):
                if identity in self._named:
                    continue
                self._named.add(identity)
                target = self.graph.get(identity)
                if target is not None:
                    self._named.add(target.identity)
                    pending.append(target)

    def finish(self) -> list[Declaration]:
        for declaration in self.declarations:
            declaration.lazy = declaration.name in self._lazy
        return self.declarations

    def _should_declare(self, node: SchemaNode) -> bool:
        return is_component(node.identity) or node.identity in self._named

    def _name_for(self, identity: str, node: SchemaNode | None) -> str:
        if identity not in self._names:
            base = declaration_base(node) if node is not None else None
            if base is None:
                base = identity.rsplit("/", 1)[-1]
            name = unique_name(f"{to_pascal_case(base) or 'Anonymous'}Schema", self._names.values())
            self._names[identity] = name
        return self._names[identity]

    def reference(self, node: SchemaNode) -> str:
        identity = node.identity
        if identity in self._declared:
            return self._names[identity]
        if identity in self._in_progress:
            name = self._names[identity]
            self._lazy.add(name)
            return f"z.lazy(() => {name})"
        name = self._name_for(identity, node)
        self._in_progress.add(identity)
        try:
            expression = self.full(node)
        finally:
            self._in_progress.discard(identity)
        self.declarations.append(Declaration(name=name, expression=expression))
        self._declared.add(identity)
        return name

    def expr(self, node: SchemaNode) -> str:
        if isinstance(node, RecursiveRef):
            target = self.graph.get(node.target)
            if target is None:
                name = self._name_for(node.target, None)
                self._lazy.add(name)
                return f"z.lazy(() => {name})"
            return self.reference(target)
        if self._should_declare(node):
            return self.reference(node)
        return self.full(node)

    def full(self, node: SchemaNode) -> str:
        expression = self._type_expr(node)
        if node.nullable:
            expression += ".nullable()"
        if node.description:
            expression += f".describe({_literal(node.description)})"
        return expression

    def _type_expr(self, node: SchemaNode) -> str:
        if isinstance(node, PrimitiveNode):
            return self._primitive(node)
        if isinstance(node, ArrayNode):
            return f"z.array({self.expr(node.items)})"
        if isinstance(node, ObjectNode):
            return self.object_expr(node)
        if isinstance(node, UnionNode):
            return self._union(node)
        if isinstance(node, RecursiveRef):
            return self.expr(node)
        if isinstance(node, AnyNode):
            return "z.any()"
        raise TypeError(f"Unknown schema node {node!r}")

    def _primitive(self, node: PrimitiveNode) -> str:
        if node.enum:
            values = [v for v in node.enum if v is not None]
            if values and all(isinstance(v, str) for v in values):
                return f"z.enum([{', '.join(_literal(v) for v in values)}])"
            literals = [f"z.literal({_literal(v)})" for v in values]
            if len(literals) == 1:
                return literals[0]
            if literals:
                return f"z.union([{', '.join(literals)}])"
        if node.type == "string":
            return "z.string()" + _STRING_FORMATS.get(node.format or "", "")
        if node.type == "integer":
            return "z.number().int()"
        if node.type == "number":
            return "z.number()"
        return "z.boolean()"

    def field_expr(self, node: SchemaNode, required: bool, description: str | None) -> str:
        expression = self.expr(node)
        if not required:
            expression += ".optional()"
        if description and description != node.description:
            expression += f".describe({_literal(description)})"
        return expression

    def object_expr(self, node: ObjectNode, tag: tuple[str, str] | None = None) -> str:
        entries = []
        tagged = False
        for f in node.fields:
            if f.node.read_only:
                continue
            if tag is not None and f.name == tag[0]:
                entries.append(f"{property_key(f.name)}: z.literal({_literal(tag[1])})")
                tagged = True
                continue
            entries.append(f"{property_key(f.name)}: {self.field_expr(f.node, f.required, f.description)}")
        if tag is not None and not tagged:
            entries.insert(0, f"{property_key(tag[0])}: z.literal({_literal(tag[1])})")

        if node.additional is not None and not entries:
            return f"z.record({self.expr(node.additional)})"
        body = "z.object({ " + ", ".join(entries) + " })" if entries else "z.object({})"
        if node.additional is not None:
            body += f".catchall({self.expr(node.additional)})"
        return body

    def _union(self, node: UnionNode) -> str:
        if not node.variants:
            return "z.null()"
        if len(node.variants) == 1:
            return self.expr(node.variants[0])

        pairs = usable_discriminator(node, self.context)
        if pairs is not None:
            prop = node.discriminator.property_name
            members = ", ".join(self.object_expr(variant, tag=(prop, value)) for value, variant in pairs)
            return f"z.discriminatedUnion({_literal(prop)}, [{members}])"

        members = ", ".join(self.expr(v) for v in node.variants)
        if node.discriminator is not None:
            note = f"/* discriminator {node.discriminator.property_name!r} not enforced, plain union */ "
            return f"{note}z.union([{members}])"
        return f"z.union([{members}])"


def _query_entries(tool: Tool, location: str) -> list[tuple[str, str]]:
    return [(b.wire_name, property_access("args", b.field)) for b in tool.bindings_in(location)]


class TypeScriptTarget:
    name = "typescript"

    def __init__(self, graph: SchemaGraph | None = None) -> None:
        self._graph = graph or _EMPTY_GRAPH

    def sanitize_identifier(self, name: str) -> str:
        return sanitize_identifier(name)

    def map_type(self, node: SchemaNode) -> str:
        return ZodWriter(self._graph).expr(node)

    def tool_path(self, tool: Tool) -> str:
        return f"{TOOLS_DIR}/{self.sanitize_identifier(tool.name)}.ts"

    def emit_tool(self, tool: Tool, graph: SchemaGraph) -> Artifact:
        writer = ZodWriter(graph, context=tool.operation.label)
        writer.prepare(tool.input_schema)

        params = [
            (property_key(f.name), writer.field_expr(f.node, f.required, f.description))
            for f in tool.input_schema.fields
        ]
        body_binding = tool.body_binding
        body_fields = [b for b in tool.bindings_in("body") if not b.whole_body]
        body_expression = None
        if body_binding is not None:
            body_expression = property_access("args", body_binding.field)
        elif body_fields:
            body_expression = "{ " + ", ".join(
                f"{property_key(b.wire_name)}: {property_access('args', b.field)}" for b in body_fields
            ) + " }"

        request_body = tool.operation.request_body
        content = render(
            "typescript/tool.ts.j2",
            tool=tool,
            declarations=writer.finish(),
            params=params,
            path_params=_query_entries(tool, "path"),
            query=_query_entries(tool, "query"),
            headers=_query_entries(tool, "header"),
            cookies=_query_entries(tool, "cookie"),
            body=body_expression,
            content_type=request_body.content_type if request_body is not None and body_expression else None,
            method=tool.method.upper(),
        )
        return Artifact(path=self.tool_path(tool), content=content, target=self.name)

    def emit_index(self, tools: list[Tool]) -> Artifact:
        modules = [self.sanitize_identifier(t.name) for t in tools]
        content = render("typescript/index.ts.j2", modules=modules)
        return Artifact(path=f"{TOOLS_DIR}/index.ts", content=content, target=self.name)

    def emit_config(self, config: SecurityConfig) -> Artifact:
        content = render("typescript/constants.ts.j2", config=config)
        return Artifact(path="src/constants.ts", content=content, target=self.name)
