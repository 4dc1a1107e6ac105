"""Derive MCP tool names from operations.

Pattern: the operationId when the document declares one, otherwise
{method}_{path segments}, with every run of characters that is not a
letter or digit collapsed into a single underscore.

Examples:
  GET  /ping                   -> get_ping
  GET  /items/{id}             -> get_items_id
  POST /v1/user-profiles       -> post_v1_user_profiles
  operationId "listPets"       -> listPets
  operationId "2fa.verify"     -> op_2fa_verify

Names are allocated in operation order. A name already taken in the run
gets a numeric suffix (_2, _3, ...) with the base trimmed so the result
still fits the maximum length.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from .errors import ToolNameTooLong
from .operations import Operation

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 64

_SEPARATOR = "_"


class LengthPolicy(str, enum.Enum):
    ERROR = "error"
    SKIP = "skip"
    TRUNCATE = "truncate"


def _camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def sanitize_identifier(name: str) -> str:
    """Replace non-alphanumerics with single underscores, keeping case.

    The result is a legal bare identifier in Python, TypeScript and Rust
    (modulo keywords): letters, digits and underscores, never starting with
    a digit.
    """
    name = name.replace("{", "").replace("}", "")
    name = re.sub(r"[^A-Za-z0-9]+", _SEPARATOR, name)
    name = name.strip(_SEPARATOR)
    if not name:
        return ""
    if name[0].isdigit():
        name = f"op_{name}"
    return name


def sanitize_snake(name: str) -> str:
    """sanitize_identifier followed by snake_casing."""
    return sanitize_identifier(_camel_to_snake(sanitize_identifier(name)))


def to_pascal_case(name: str) -> str:
    """``pet_store-item`` / ``petStoreItem`` -> ``PetStoreItem``."""
    parts = sanitize_snake(name).split(_SEPARATOR)
    pascal = "".join(p[:1].upper() + p[1:] for p in parts if p)
    if pascal and pascal[0].isdigit():
        pascal = f"T{pascal}"
    return pascal


def canonical_name(operation: Operation) -> str:
    """The tool name an operation asks for, before length and collision handling."""
    if operation.operation_id:
        name = sanitize_identifier(operation.operation_id)
        if name:
            return name
    return sanitize_identifier(f"{operation.method.lower()}_{operation.path}")


@dataclass(frozen=True)
class NameRegistry:
    """Names allocated so far in one run. Adding returns a new registry."""

    names: frozenset[str] = field(default_factory=frozenset)

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)

    def add(self, name: str) -> NameRegistry:
        return NameRegistry(self.names | {name})

    def unique(self, base: str, max_length: int, **context) -> str:
        """Return ``base`` or the first free ``base_N`` that fits ``max_length``.

        Raises ToolNameTooLong when no suffixed name fits; ``context`` is
        passed on to it (operation, pointer).
        """
        if base not in self.names:
            return base
        counter = 2
        while True:
            suffix = f"{_SEPARATOR}{counter}"
            room = max_length - len(suffix)
            trimmed = base[:room].rstrip(_SEPARATOR) if room > 0 else ""
            if not trimmed:
                raise ToolNameTooLong(f"{base}{suffix}", max_length, **context)
            candidate = f"{trimmed}{suffix}"
            if candidate not in self.names:
                return candidate
            counter += 1


@dataclass(frozen=True)
class Allocation:
    name: str
    operation: Operation


def allocate_names(
    operations: Iterable[Operation],
    max_length: int = DEFAULT_MAX_LENGTH,
    policy: LengthPolicy | str = LengthPolicy.ERROR,
    registry: NameRegistry | None = None,
) -> tuple[list[Allocation], NameRegistry]:
    """Assign a unique tool name to each operation, in order."""
    if max_length < 1:
        raise ValueError("max_length must be positive")
    policy = LengthPolicy(policy)
    registry = registry or NameRegistry()
    allocations: list[Allocation] = []

    for operation in operations:
        base = canonical_name(operation)
        if len(base) > max_length:
            if policy is LengthPolicy.ERROR:
                raise ToolNameTooLong(
                    base, max_length, operation=operation.label, pointer=operation.pointer,
                )
            if policy is LengthPolicy.SKIP:
                logger.warning(
                    "%s: skipping tool %r (longer than %d characters)",
                    operation.label, base, max_length,
                )
                continue
            base = base[:max_length].rstrip(_SEPARATOR)

        name = registry.unique(
            base, max_length, operation=operation.label, pointer=operation.pointer,
        )
        if name != base:
            logger.debug("%s: tool name %r taken, using %r", operation.label, base, name)
        registry = registry.add(name)
        allocations.append(Allocation(name=name, operation=operation))

    return allocations, registry
