"""Build tools from allocated operations.

Each tool gets one input contract: an ObjectNode whose fields are the
operation's parameters plus its request body. Object bodies are flattened
into the contract; any other body, or an object body with a field name that
clashes with a parameter, is passed whole under ``body``. Bindings record
where every contract field goes on the wire.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from .errors import DuplicateField, MalformedInput, PathParameterMismatch
from .naming import Allocation, sanitize_identifier
from .operations import Operation
from .schema_parser import Field, ObjectNode, SchemaNode

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")

BODY_FIELD = "body"


@dataclass(frozen=True)
class Binding:
    field: str
    wire_name: str
    location: str
    whole_body: bool = False


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: ObjectNode
    bindings: tuple[Binding, ...]
    operation: Operation

    @property
    def method(self) -> str:
        return self.operation.method

    @property
    def path(self) -> str:
        return self.operation.path

    def bindings_in(self, location: str) -> list[Binding]:
        return [b for b in self.bindings if b.location == location]

    @property
    def body_binding(self) -> Binding | None:
        for binding in self.bindings:
            if binding.whole_body:
                return binding
        return None


def _strip_html(text: str) -> str:
    """Strip HTML tags and collapse whitespace."""
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def make_description(operation: Operation) -> str:
    """Build a tool description from the operation's summary or description."""
    doc = _strip_html(operation.summary) or _strip_html(operation.description)
    if not doc:
        doc = operation.label
    if operation.deprecated:
        doc = f"{doc.rstrip('. ')}. Deprecated."
    return doc


def path_placeholders(path: str) -> list[str]:
    return _PLACEHOLDER.findall(path)


def check_path_parameters(operation: Operation) -> None:
    """Every ``{param}`` needs a path parameter, and every path parameter a ``{param}``."""
    placeholders = path_placeholders(operation.path)
    declared = [p.name for p in operation.parameters_in("path")]

    missing = [name for name in placeholders if name not in declared]
    if missing:
        raise PathParameterMismatch(
            f"Path placeholder(s) {', '.join(missing)} have no declared path parameter",
            operation=operation.label,
            pointer=operation.pointer,
        )
    unused = [name for name in declared if name not in placeholders]
    if unused:
        raise PathParameterMismatch(
            f"Path parameter(s) {', '.join(unused)} do not appear in the path template",
            operation=operation.label,
            pointer=operation.pointer,
        )


class _ContractFields:
    """Ordered contract fields, rejecting names that sanitize to the same identifier."""

    def __init__(self, operation: Operation, pointer: str) -> None:
        self.operation = operation
        self.pointer = pointer
        self.fields: list[Field] = []
        self.bindings: list[Binding] = []
        self._sources: dict[str, str] = {}

    def taken(self, wire_name: str) -> bool:
        return sanitize_identifier(wire_name) in self._sources

    def add(
        self,
        wire_name: str,
        location: str,
        node: SchemaNode,
        required: bool,
        description: str | None,
        whole_body: bool = False,
    ) -> None:
        name = sanitize_identifier(wire_name)
        source = f"{location}:{wire_name}"
        if not name:
            raise MalformedInput(
                f"{location} field {wire_name!r} has no letters or digits to build an identifier from",
                operation=self.operation.label,
                pointer=self.pointer,
            )
        if name in self._sources:
            raise DuplicateField(
                name, (self._sources[name], source), operation=self.operation.label, pointer=self.pointer,
            )
        self._sources[name] = source
        self.fields.append(Field(name=name, node=node, required=required, description=description))
        self.bindings.append(Binding(field=name, wire_name=wire_name, location=location, whole_body=whole_body))


def _flattenable(node: SchemaNode | None) -> bool:
    return isinstance(node, ObjectNode) and node.additional is None and not node.nullable


def build_tool(allocation: Allocation) -> Tool:
    """Merge an operation's parameters and body into one input contract."""
    operation = allocation.operation
    check_path_parameters(operation)

    contract = _ContractFields(operation, operation.pointer)
    for param in operation.parameters:
        contract.add(
            param.name,
            param.location,
            param.schema,
            param.required,
            _strip_html(param.description) if param.description else None,
        )

    body = operation.request_body
    if body is not None and not body.supported:
        logger.info("%s: request body (%s) left out of the tool input", operation.label, body.content_type)
    elif body is not None and body.schema is not None:
        schema = body.schema
        fields = [f for f in schema.fields if not f.node.read_only] if _flattenable(schema) else []
        if _flattenable(schema) and not any(contract.taken(f.name) for f in fields):
            for f in fields:
                contract.add(
                    f.name,
                    "body",
                    f.node,
                    f.required and body.required,
                    f.description or f.node.description,
                )
        else:
            wire_name = BODY_FIELD if not contract.taken(BODY_FIELD) else "request_body"
            contract.add(
                wire_name,
                "body",
                schema,
                body.required,
                _strip_html(body.description) if body.description else schema.description,
                whole_body=True,
            )

    input_schema = ObjectNode(
        identity=f"{operation.pointer}/input",
        fields=tuple(contract.fields),
    )
    return Tool(
        name=allocation.name,
        description=make_description(operation),
        input_schema=input_schema,
        bindings=tuple(contract.bindings),
        operation=operation,
    )


def build_tools(allocations: Iterable[Allocation]) -> list[Tool]:
    """Build one tool per allocation, preserving allocation order."""
    return [build_tool(allocation) for allocation in allocations]
