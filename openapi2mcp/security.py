"""Work out the authentication the generated server should be configured with."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .context_builder import Tool
from .loader import Document

logger = logging.getLogger(__name__)

AUTH_KINDS = ("oauth2", "bearer", "apiKey")

# override kind -> the kind a declared scheme of the same type reports
_SCHEME_KINDS = {"bearer": "http-bearer"}


@dataclass(frozen=True)
class AuthOverride:
    """Authentication forced from the run configuration."""

    kind: str
    authorization_url: str | None = None
    token_url: str | None = None
    refresh_url: str | None = None
    key_name: str | None = None
    key_location: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in AUTH_KINDS:
            raise ValueError(f"Unknown auth kind {self.kind!r}; expected one of: {', '.join(AUTH_KINDS)}")
        if self.kind == "oauth2" and not (self.authorization_url and self.token_url):
            raise ValueError("oauth2 requires both an authorization URL and a token URL")
        if self.kind != "oauth2" and (self.authorization_url or self.token_url or self.refresh_url):
            raise ValueError("OAuth2 URLs can only be used with oauth2 authentication")


@dataclass(frozen=True)
class SecurityConfig:
    auth_kind: str | None = None
    scheme_name: str | None = None
    authorization_url: str | None = None
    token_url: str | None = None
    refresh_url: str | None = None
    openid_url: str | None = None
    key_name: str | None = None
    key_location: str | None = None
    scopes: tuple[str, ...] = ()
    base_url: str = ""
    title: str = ""
    api_version: str = ""
    schemes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def enabled(self) -> bool:
        return self.auth_kind is not None


def _from_override(override: AuthOverride) -> dict:
    return {
        "auth_kind": _SCHEME_KINDS.get(override.kind, override.kind),
        "scheme_name": "override",
        "authorization_url": override.authorization_url,
        "token_url": override.token_url,
        "refresh_url": override.refresh_url,
        "key_name": override.key_name or ("X-API-Key" if override.kind == "apiKey" else None),
        "key_location": override.key_location or ("header" if override.kind == "apiKey" else None),
    }


def _from_tools(tools: Iterable[Tool]) -> dict:
    for tool in tools:
        for requirement in tool.operation.security:
            scheme = requirement.scheme
            logger.debug("Using security scheme %r from %s", scheme.name, tool.operation.label)
            return {
                "auth_kind": scheme.kind,
                "scheme_name": scheme.name,
                "authorization_url": scheme.authorization_url,
                "token_url": scheme.token_url,
                "refresh_url": scheme.refresh_url,
                "openid_url": scheme.openid_url,
                "key_name": scheme.key_name,
                "key_location": scheme.key_location,
                "scopes": requirement.scopes or scheme.scopes,
            }
    return {}


def build_security_config(
    document: Document,
    tools: Iterable[Tool],
    override: AuthOverride | None = None,
) -> SecurityConfig:
    """Pick the override, else the first scheme any tool requires, else no auth."""
    auth = _from_override(override) if override is not None else _from_tools(tools)
    return SecurityConfig(
        base_url=document.servers[0] if document.servers else "",
        title=document.title,
        api_version=document.api_version,
        schemes=tuple(document.security_schemes),
        **auth,
    )
