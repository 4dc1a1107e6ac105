"""Extract HTTP operations from the document's path table.

Handles:
- Path-item level parameters merged with operation level ones
- $ref parameters, request bodies and responses
- Content-type selection for request bodies
- Operation-level or document-level security requirements
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import DanglingReference, MalformedInput
from .loader import Document, escape_pointer_token, resolve_pointer
from .schema_parser import PrimitiveNode, SchemaNode, SchemaResolver

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")

DEFAULT_CONTENT_TYPES = ("application/json",)


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    schema: SchemaNode
    required: bool = False
    description: str | None = None
    deprecated: bool = False


@dataclass(frozen=True)
class RequestBody:
    content_type: str
    schema: SchemaNode | None
    required: bool = False
    description: str | None = None
    supported: bool = True


@dataclass(frozen=True)
class Response:
    status: str
    content_type: str | None = None
    schema: SchemaNode | None = None
    description: str | None = None

    @property
    def status_class(self) -> str:
        """``2XX`` for ``200``/``2XX``, ``default`` for ``default``."""
        if self.status == "default":
            return "default"
        return f"{self.status[0]}XX"


@dataclass(frozen=True)
class SecurityScheme:
    name: str
    kind: str
    key_name: str | None = None
    key_location: str | None = None
    authorization_url: str | None = None
    token_url: str | None = None
    refresh_url: str | None = None
    scopes: tuple[str, ...] = ()
    openid_url: str | None = None


@dataclass(frozen=True)
class SecurityRequirement:
    scheme: SecurityScheme
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Operation:
    path: str
    method: str
    operation_id: str | None = None
    summary: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()
    deprecated: bool = False
    parameters: tuple[Parameter, ...] = ()
    request_body: RequestBody | None = None
    responses: tuple[Response, ...] = ()
    security: tuple[SecurityRequirement, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return f"{self.method.upper()} {self.path}"

    @property
    def pointer(self) -> str:
        return f"#/paths/{escape_pointer_token(self.path)}/{self.method}"

    def parameters_in(self, location: str) -> list[Parameter]:
        return [p for p in self.parameters if p.location == location]


def parse_security_schemes(document: Document) -> dict[str, SecurityScheme]:
    """Turn ``components.securitySchemes`` into SecurityScheme values."""
    schemes: dict[str, SecurityScheme] = {}
    for name, raw in document.security_schemes.items():
        pointer = f"#/components/securitySchemes/{escape_pointer_token(name)}"
        if isinstance(raw, dict) and "$ref" in raw:
            raw = resolve_pointer(document.raw, raw["$ref"], pointer=pointer)
        if not isinstance(raw, dict):
            raise MalformedInput("Security scheme must be a mapping", pointer=pointer)
        schemes[name] = _parse_scheme(name, raw, pointer)
    return schemes


def _parse_scheme(name: str, raw: dict[str, Any], pointer: str) -> SecurityScheme:
    scheme_type = raw.get("type")
    if scheme_type == "apiKey":
        return SecurityScheme(
            name=name, kind="apiKey", key_name=raw.get("name"), key_location=raw.get("in"),
        )
    if scheme_type == "http":
        http_scheme = str(raw.get("scheme", "")).lower()
        kind = "http-basic" if http_scheme == "basic" else "http-bearer"
        return SecurityScheme(name=name, kind=kind)
    if scheme_type == "oauth2":
        flows = raw.get("flows") or {}
        auth_url = token_url = refresh_url = None
        scopes: list[str] = []
        # authorizationCode carries both endpoints; prefer it when present
        for flow_name in ("authorizationCode", "implicit", "clientCredentials", "password"):
            flow = flows.get(flow_name)
            if not isinstance(flow, dict):
                continue
            auth_url = auth_url or flow.get("authorizationUrl")
            token_url = token_url or flow.get("tokenUrl")
            refresh_url = refresh_url or flow.get("refreshUrl")
            for scope in flow.get("scopes") or {}:
                if scope not in scopes:
                    scopes.append(scope)
        return SecurityScheme(
            name=name,
            kind="oauth2",
            authorization_url=auth_url,
            token_url=token_url,
            refresh_url=refresh_url,
            scopes=tuple(scopes),
        )
    if scheme_type == "openIdConnect":
        return SecurityScheme(name=name, kind="openIdConnect", openid_url=raw.get("openIdConnectUrl"))
    raise MalformedInput(f"Unknown security scheme type {scheme_type!r}", pointer=pointer)


class OperationExtractor:
    """Walks ``paths`` and builds Operation values in declaration order."""

    def __init__(
        self,
        document: Document,
        resolver: SchemaResolver,
        supported_content_types: tuple[str, ...] | list[str] = DEFAULT_CONTENT_TYPES,
    ) -> None:
        self.document = document
        self.resolver = resolver
        self.supported_content_types = tuple(supported_content_types)
        self.schemes = parse_security_schemes(document)

    def extract(self) -> list[Operation]:
        operations: list[Operation] = []
        for path, path_item in self.document.paths.items():
            path_pointer = f"#/paths/{escape_pointer_token(path)}"
            if isinstance(path_item, dict) and "$ref" in path_item:
                path_item = resolve_pointer(self.document.raw, path_item["$ref"], pointer=path_pointer)
            if not isinstance(path_item, dict):
                raise MalformedInput("Path item must be a mapping", pointer=path_pointer)

            shared = path_item.get("parameters") or []
            for method, raw_op in path_item.items():
                if method not in HTTP_METHODS:
                    continue
                operations.append(self._build_operation(path, method, raw_op, shared))

        logger.info("Extracted %d operations from %s", len(operations), self.document.source)
        return operations

    def _build_operation(
        self, path: str, method: str, raw: Any, shared: list[Any],
    ) -> Operation:
        label = f"{method.upper()} {path}"
        pointer = f"#/paths/{escape_pointer_token(path)}/{method}"
        if not isinstance(raw, dict):
            raise MalformedInput("Operation must be a mapping", operation=label, pointer=pointer)

        try:
            parameters = self._merge_parameters(path, shared, raw.get("parameters") or [], pointer)
            request_body = self._request_body(raw.get("requestBody"), f"{pointer}/requestBody", label)
            responses = self._responses(raw.get("responses") or {}, f"{pointer}/responses")
            security = self._security(raw.get("security"), f"{pointer}/security")
        except (DanglingReference, MalformedInput) as exc:
            if exc.operation is None:
                exc.operation = label
            raise

        tags = tuple(str(t) for t in raw.get("tags") or [])
        return Operation(
            path=path,
            method=method,
            operation_id=raw.get("operationId"),
            summary=raw.get("summary") or "",
            description=raw.get("description") or "",
            tags=tags,
            deprecated=bool(raw.get("deprecated", False)),
            parameters=parameters,
            request_body=request_body,
            responses=responses,
            security=security,
        )

    def _deref(self, raw: Any, pointer: str) -> tuple[Any, str]:
        """Follow a component $ref, returning the target and its pointer."""
        seen = set()
        while isinstance(raw, dict) and "$ref" in raw:
            ref = raw["$ref"]
            if ref in seen:
                raise MalformedInput(f"Reference {ref!r} only refers back to itself", pointer=pointer)
            seen.add(ref)
            raw = resolve_pointer(self.document.raw, ref, pointer=pointer)
            pointer = ref
        return raw, pointer

    def _merge_parameters(
        self, path: str, shared: list[Any], own: list[Any], pointer: str,
    ) -> tuple[Parameter, ...]:
        merged: dict[tuple[str, str], Parameter] = {}
        path_pointer = pointer.rsplit("/", 1)[0]
        for index, raw in enumerate(shared):
            param = self._parameter(raw, f"{path_pointer}/parameters/{index}")
            merged[(param.name, param.location)] = param
        for index, raw in enumerate(own):
            param = self._parameter(raw, f"{pointer}/parameters/{index}")
            merged[(param.name, param.location)] = param
        return tuple(merged.values())

    def _parameter(self, raw: Any, pointer: str) -> Parameter:
        raw, pointer = self._deref(raw, pointer)
        if not isinstance(raw, dict) or "name" not in raw or "in" not in raw:
            raise MalformedInput("Parameter requires 'name' and 'in'", pointer=pointer)
        location = raw["in"]
        if location not in PARAMETER_LOCATIONS:
            raise MalformedInput(f"Unknown parameter location {location!r}", pointer=pointer)

        if "schema" in raw:
            schema = self.resolver.resolve(raw["schema"], f"{pointer}/schema")
        elif isinstance(raw.get("content"), dict) and raw["content"]:
            media_type, media = next(iter(raw["content"].items()))
            schema_raw = (media or {}).get("schema", {})
            schema = self.resolver.resolve(
                schema_raw, f"{pointer}/content/{escape_pointer_token(media_type)}/schema",
            )
        else:
            schema = PrimitiveNode(identity=f"{pointer}/schema", type="string")

        return Parameter(
            name=str(raw["name"]),
            location=location,
            schema=schema,
            required=location == "path" or bool(raw.get("required", False)),
            description=raw.get("description"),
            deprecated=bool(raw.get("deprecated", False)),
        )

    def _request_body(self, raw: Any, pointer: str, label: str) -> RequestBody | None:
        if raw is None:
            return None
        raw, pointer = self._deref(raw, pointer)
        content = raw.get("content") or {}
        if not content:
            return None

        required = bool(raw.get("required", False))
        description = raw.get("description")
        for content_type, media in content.items():
            if content_type.split(";")[0].strip() not in self.supported_content_types:
                continue
            schema_raw = (media or {}).get("schema")
            schema = None
            if schema_raw is not None:
                schema = self.resolver.resolve(
                    schema_raw, f"{pointer}/content/{escape_pointer_token(content_type)}/schema",
                )
            return RequestBody(
                content_type=content_type, schema=schema, required=required, description=description,
            )

        first = next(iter(content))
        logger.warning(
            "%s: request body content types %s are not supported; the body is omitted",
            label, ", ".join(content),
        )
        return RequestBody(
            content_type=first, schema=None, required=required, description=description, supported=False,
        )

    def _responses(self, raw: dict[str, Any], pointer: str) -> tuple[Response, ...]:
        responses = []
        for status, response in raw.items():
            status_pointer = f"{pointer}/{escape_pointer_token(status)}"
            response, status_pointer = self._deref(response, status_pointer)
            if not isinstance(response, dict):
                raise MalformedInput("Response must be a mapping", pointer=status_pointer)
            content = response.get("content") or {}
            content_type = schema = None
            if content:
                content_type, media = next(iter(content.items()))
                if isinstance(media, dict) and "schema" in media:
                    schema = self.resolver.resolve(
                        media["schema"],
                        f"{status_pointer}/content/{escape_pointer_token(content_type)}/schema",
                    )
            responses.append(Response(
                status=str(status),
                content_type=content_type,
                schema=schema,
                description=response.get("description"),
            ))
        return tuple(responses)

    def _security(self, raw: Any, pointer: str) -> tuple[SecurityRequirement, ...]:
        if raw is None:
            raw = self.document.security or []
            pointer = "#/security"
        requirements = []
        for index, requirement in enumerate(raw):
            for scheme_name, scopes in (requirement or {}).items():
                scheme = self.schemes.get(scheme_name)
                if scheme is None:
                    raise DanglingReference(
                        f"#/components/securitySchemes/{escape_pointer_token(scheme_name)}",
                        pointer=f"{pointer}/{index}",
                    )
                requirements.append(SecurityRequirement(scheme=scheme, scopes=tuple(scopes or ())))
        return tuple(requirements)


def extract_operations(
    document: Document,
    resolver: SchemaResolver,
    supported_content_types: tuple[str, ...] | list[str] = DEFAULT_CONTENT_TYPES,
) -> list[Operation]:
    """Return every operation of the document in declaration order."""
    return OperationExtractor(document, resolver, supported_content_types).extract()
