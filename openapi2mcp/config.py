"""Run configuration for openapi2mcp, read from OPENAPI2MCP_* environment variables."""

from __future__ import annotations

import re
from typing import Optional, Set

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .naming import DEFAULT_MAX_LENGTH, LengthPolicy
from .security import AUTH_KINDS, AuthOverride


def _split(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPENAPI2MCP_", case_sensitive=False)

    input: str = Field(default="openapi.yaml")
    project_path: str = Field(default=".")
    targets: str = Field(default="typescript")

    include_methods: Optional[str] = Field(default=None)
    include_tools: Optional[str] = Field(default=None)
    max_tool_name_length: int = Field(default=DEFAULT_MAX_LENGTH, gt=0)
    tool_name_policy: LengthPolicy = Field(default=LengthPolicy.ERROR)
    content_types: str = Field(default="application/json")

    auth_override: Optional[str] = Field(default=None)
    oauth2_auth_url: Optional[str] = Field(default=None)
    oauth2_token_url: Optional[str] = Field(default=None)
    oauth2_refresh_url: Optional[str] = Field(default=None)
    api_key_name: Optional[str] = Field(default=None)
    api_key_in: Optional[str] = Field(default=None)

    log_level: str = Field(default="INFO")

    @field_validator("include_tools")
    @classmethod
    def _check_pattern(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"include_tools is not a valid regular expression: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _check_auth(self) -> "Settings":
        oauth_urls = (self.oauth2_auth_url, self.oauth2_token_url, self.oauth2_refresh_url)
        if self.auth_override is not None and self.auth_override not in AUTH_KINDS:
            raise ValueError(
                f"auth_override must be one of {', '.join(AUTH_KINDS)}, got {self.auth_override!r}"
            )
        if self.auth_override != "oauth2" and any(oauth_urls):
            raise ValueError("OAuth2 URLs can only be used with auth_override=oauth2")
        if self.auth_override == "oauth2" and not (self.oauth2_auth_url and self.oauth2_token_url):
            raise ValueError("auth_override=oauth2 requires oauth2_auth_url and oauth2_token_url")
        if self.auth_override != "apiKey" and (self.api_key_name or self.api_key_in):
            raise ValueError("API key options can only be used with auth_override=apiKey")
        if self.api_key_in is not None and self.api_key_in not in ("header", "query", "cookie"):
            raise ValueError(f"api_key_in must be header, query or cookie, got {self.api_key_in!r}")
        return self

    def target_names(self) -> list[str]:
        return [name.lower() for name in _split(self.targets)]

    def method_filter(self) -> Optional[Set[str]]:
        methods = _split(self.include_methods)
        if not methods:
            return None
        return {m.lower() for m in methods}

    def name_pattern(self) -> Optional[str]:
        return self.include_tools or None

    def content_type_list(self) -> list[str]:
        return _split(self.content_types)

    def auth(self) -> Optional[AuthOverride]:
        if self.auth_override is None:
            return None
        return AuthOverride(
            kind=self.auth_override,
            authorization_url=self.oauth2_auth_url,
            token_url=self.oauth2_token_url,
            refresh_url=self.oauth2_refresh_url,
            key_name=self.api_key_name,
            key_location=self.api_key_in,
        )
