"""Load and parse an OpenAPI 3.x document.

Accepts JSON or YAML text without a format flag, checks the declared
version, and exposes the raw path, schema and security-scheme tables.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import httpx
import yaml

from .errors import DanglingReference, MalformedInput, UnsupportedVersion

logger = logging.getLogger(__name__)

SUPPORTED_MAJOR = "3"


@dataclass(frozen=True)
class Document:
    """A parsed OpenAPI document. Never mutated after loading."""

    raw: dict[str, Any]
    version: str
    source: str = "<string>"
    title: str = ""
    api_version: str = ""
    description: str = ""
    servers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def paths(self) -> dict[str, Any]:
        return self.raw.get("paths") or {}

    @property
    def schemas(self) -> dict[str, Any]:
        return (self.raw.get("components") or {}).get("schemas") or {}

    @property
    def security_schemes(self) -> dict[str, Any]:
        return (self.raw.get("components") or {}).get("securitySchemes") or {}

    @property
    def security(self) -> list[dict[str, Any]] | None:
        return self.raw.get("security")


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInput(f"Invalid JSON: {exc.msg}", line=exc.lineno, column=exc.colno) from exc


def _parse_yaml(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark
        line = mark.line + 1 if mark is not None else None
        column = mark.column + 1 if mark is not None else None
        raise MalformedInput(f"Invalid YAML: {exc.problem}", line=line, column=column) from exc
    except yaml.YAMLError as exc:
        raise MalformedInput(f"Invalid YAML: {exc}") from exc


def parse_text(text: str | bytes) -> Any:
    """Parse JSON or YAML, sniffing the syntax from the content."""
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MalformedInput(f"Document is not valid UTF-8: {exc}") from exc
    stripped = text.lstrip("\ufeff \t\r\n")
    if stripped.startswith("{"):
        return _parse_json(stripped)
    return _parse_yaml(stripped)


def _check_version(raw: dict[str, Any]) -> str:
    if "swagger" in raw:
        raise UnsupportedVersion(
            f"Swagger {raw['swagger']} documents are not supported; convert to OpenAPI 3.x",
            pointer="#/swagger",
        )
    if "openapi" not in raw:
        raise UnsupportedVersion("Document does not declare an 'openapi' version", pointer="#")
    version = str(raw["openapi"])
    if version.split(".")[0] != SUPPORTED_MAJOR:
        raise UnsupportedVersion(
            f"OpenAPI {version} is not supported; only {SUPPORTED_MAJOR}.x documents are accepted",
            pointer="#/openapi",
        )
    return version


def _normalize_keys(node: Any) -> Any:
    """YAML turns keys like ``200`` into ints; the document model wants strings."""
    if isinstance(node, dict):
        return {str(k): _normalize_keys(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_normalize_keys(v) for v in node]
    return node


def load_document(text: str | bytes, source: str = "<string>") -> Document:
    """Parse raw text into a Document, rejecting unsupported versions."""
    raw = parse_text(text)
    if not isinstance(raw, dict):
        raise MalformedInput(f"{source}: top level of the document must be a mapping")
    raw = _normalize_keys(raw)
    version = _check_version(raw)

    paths = raw.get("paths")
    if paths is not None and not isinstance(paths, dict):
        raise MalformedInput("'paths' must be a mapping", pointer="#/paths")

    info = raw.get("info") or {}
    servers = tuple(
        s["url"] for s in raw.get("servers") or [] if isinstance(s, dict) and s.get("url")
    )
    document = Document(
        raw=raw,
        version=version,
        source=source,
        title=str(info.get("title", "")),
        api_version=str(info.get("version", "")),
        description=str(info.get("description", "")),
        servers=servers,
    )
    logger.debug("Loaded OpenAPI %s document from %s (%d paths)", version, source, len(document.paths))
    return document


def load_document_file(path: Path | str) -> Document:
    """Load the OpenAPI document from disk."""
    spec_file = Path(path)
    return load_document(spec_file.read_bytes(), source=str(spec_file))


def fetch_document(
    url: str,
    client: httpx.Client | None = None,
    timeout: float = 30.0,
) -> Document:
    """Fetch an OpenAPI document over HTTP."""
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = client.get(url)
    except httpx.HTTPError as exc:
        raise MalformedInput(f"Failed to fetch {url}: {exc}") from exc
    finally:
        if owns_client:
            client.close()
    if not response.is_success:
        raise MalformedInput(f"Failed to fetch {url}: HTTP {response.status_code}")
    return load_document(response.content, source=url)


def read_source(location: str) -> Document:
    """Load a document from a local path or an http(s) URL."""
    if location.startswith(("http://", "https://")):
        return fetch_document(location)
    return load_document_file(location)


def escape_pointer_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def _unescape_pointer_token(token: str) -> str:
    return unquote(token).replace("~1", "/").replace("~0", "~")


def resolve_pointer(raw: dict[str, Any], ref: str, pointer: str | None = None) -> Any:
    """Resolve a local ``#/...`` reference against the raw document."""
    if not ref.startswith("#"):
        raise DanglingReference(ref, pointer=pointer)
    node: Any = raw
    fragment = ref[1:]
    if not fragment:
        return node
    for part in fragment.lstrip("/").split("/"):
        token = _unescape_pointer_token(part)
        if isinstance(node, dict) and token in node:
            node = node[token]
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            raise DanglingReference(ref, pointer=pointer)
    return node
