"""Errors raised while turning an OpenAPI document into MCP tools.

Every error can point back at the offending part of the document: the
operation it belongs to (``GET /pets/{id}``) and a JSON pointer inside the
document (``#/components/schemas/Pet``).
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for all failures of a generation run."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        pointer: str | None = None,
    ) -> None:
        self.message = message
        self.operation = operation
        self.pointer = pointer
        super().__init__(str(self))

    def __str__(self) -> str:
        location = []
        if self.operation:
            location.append(self.operation)
        if self.pointer:
            location.append(f"at {self.pointer}")
        if location:
            return f"{self.message} ({', '.join(location)})"
        return self.message


class MalformedInput(GenerationError):
    """The document could not be parsed or has an invalid structure."""

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
        operation: str | None = None,
        pointer: str | None = None,
    ) -> None:
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message, operation=operation, pointer=pointer)


class UnsupportedVersion(GenerationError):
    pass


class DanglingReference(GenerationError):
    def __init__(self, reference: str, **kwargs) -> None:
        self.reference = reference
        super().__init__(f"Unresolvable reference {reference!r}", **kwargs)


class IncompatibleMerge(GenerationError):
    def __init__(self, field: str, first: str, second: str, **kwargs) -> None:
        self.field = field
        self.shapes = (first, second)
        super().__init__(
            f"allOf members declare field {field!r} as both {first} and {second}",
            **kwargs,
        )


class InvalidCombinator(GenerationError):
    pass


class PathParameterMismatch(GenerationError):
    pass


class DuplicateField(GenerationError):
    def __init__(self, field: str, names: tuple[str, ...], **kwargs) -> None:
        self.field = field
        self.names = names
        joined = ", ".join(repr(n) for n in names)
        super().__init__(f"Fields {joined} all map to identifier {field!r}", **kwargs)


class ToolNameTooLong(GenerationError):
    def __init__(self, name: str, max_length: int, **kwargs) -> None:
        self.name = name
        self.max_length = max_length
        super().__init__(
            f"Tool name {name!r} is {len(name)} characters, maximum is {max_length}",
            **kwargs,
        )


class UnsupportedTarget(GenerationError):
    def __init__(self, target: str, known: tuple[str, ...]) -> None:
        self.target = target
        super().__init__(f"Unknown target {target!r}; expected one of: {', '.join(known)}")
