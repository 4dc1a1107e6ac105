"""Shared pieces of the code generators: artifacts, the Target protocol and templates."""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

import jinja2

from ..context_builder import Tool
from ..schema_parser import ObjectNode, SchemaGraph, SchemaNode, UnionNode, component_name, is_component
from ..security import SecurityConfig

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


@dataclass(frozen=True)
class Artifact:
    """One generated file: a path relative to the project root and its text."""

    path: str
    content: str
    target: str = ""


class Target(Protocol):
    name: str

    def map_type(self, node: SchemaNode) -> str: ...

    def sanitize_identifier(self, name: str) -> str: ...

    def emit_tool(self, tool: Tool, graph: SchemaGraph) -> Artifact: ...

    def emit_index(self, tools: list[Tool]) -> Artifact: ...

    def emit_config(self, config: SecurityConfig) -> Artifact: ...


_RUST_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _rust_string(value: object) -> str:
    """Quote a value as a Rust string literal."""
    out = []
    for ch in str(value):
        if ch in _RUST_ESCAPES:
            out.append(_RUST_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _doc_lines(text: str | None) -> list[str]:
    if not text:
        return []
    return [line.rstrip() for line in str(text).strip().splitlines()]


@functools.lru_cache(maxsize=1)
def template_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["js_string"] = lambda value: json.dumps(str(value), ensure_ascii=False)
    env.filters["rust_string"] = _rust_string
    env.filters["doc_lines"] = _doc_lines
    return env


def render(template_name: str, **context) -> str:
    return template_environment().get_template(template_name).render(**context)


def usable_discriminator(
    union: UnionNode, tool_name: str = "",
) -> list[tuple[str, ObjectNode]] | None:
    """Pair each variant with its tag value, or None when a tagged union can't be built.

    Every variant must be an object schema carrying a distinct tag value
    taken from the discriminator mapping (or its component name).
    """
    discriminator = union.discriminator
    if discriminator is None:
        return None

    pairs: list[tuple[str, ObjectNode]] = []
    for variant in union.variants:
        value = discriminator.value_for(variant.identity)
        if not isinstance(variant, ObjectNode) or value is None:
            logger.warning(
                "%s: discriminator %r on %s cannot be matched to variant %s; variants are not enforced",
                tool_name, discriminator.property_name, union.identity, variant.identity,
            )
            return None
        pairs.append((value, variant))

    values = [value for value, _ in pairs]
    if len(set(values)) != len(values):
        logger.warning(
            "%s: discriminator %r on %s maps several variants to one value",
            tool_name, discriminator.property_name, union.identity,
        )
        return None
    return pairs


def declaration_base(node: SchemaNode) -> str | None:
    """Component name a node is declared under, if it is a component schema."""
    if is_component(node.identity):
        return component_name(node.identity)
    return None


def unique_name(base: str, taken: Iterable[str]) -> str:
    taken = set(taken)
    if base not in taken:
        return base
    counter = 2
    while f"{base}{counter}" in taken:
        counter += 1
    return f"{base}{counter}"
