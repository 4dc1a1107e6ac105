"""Shared fixtures for openapi2mcp tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from openapi2mcp.context_builder import build_tools
from openapi2mcp.loader import Document, load_document
from openapi2mcp.naming import allocate_names
from openapi2mcp.operations import extract_operations
from openapi2mcp.schema_parser import SchemaResolver

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def petstore_path() -> Path:
    return FIXTURES / "petstore.yaml"


@pytest.fixture
def petstore(petstore_path) -> Document:
    return load_document(petstore_path.read_text(), source=str(petstore_path))


@pytest.fixture
def make_document() -> Callable[..., Document]:
    """Build a Document from paths/schemas dicts.

    Usage::

        doc = make_document(paths={"/ping": {"get": {...}}})
    """
    def _make(
        paths: dict[str, Any] | None = None,
        schemas: dict[str, Any] | None = None,
        **extra: Any,
    ) -> Document:
        raw: dict[str, Any] = {
            "openapi": "3.0.3",
            "info": {"title": "Test API", "version": "1.0.0"},
            "paths": paths or {},
        }
        if schemas:
            raw.setdefault("components", {})["schemas"] = schemas
        for key, value in extra.items():
            if key == "security_schemes":
                raw.setdefault("components", {})["securitySchemes"] = value
            else:
                raw[key] = value
        return load_document(json.dumps(raw))
    return _make


@pytest.fixture
def resolve_components() -> Callable[[Document], SchemaResolver]:
    def _resolve(document: Document) -> SchemaResolver:
        resolver = SchemaResolver(document)
        resolver.resolve_components()
        return resolver
    return _resolve


@pytest.fixture
def build_tools_for() -> Callable[[Document], tuple[list, Any]]:
    """Resolve, extract, name and build tools; returns (tools, graph)."""
    def _build(document: Document) -> tuple[list, Any]:
        resolver = SchemaResolver(document)
        resolver.resolve_components()
        operations = extract_operations(document, resolver)
        allocations, _ = allocate_names(operations)
        return build_tools(allocations), resolver.graph()
    return _build
