"""Place generated artifacts into a project tree."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

logger = logging.getLogger(__name__)


class ProjectWriter(Protocol):
    def write_file(self, relative_path: str, content: str) -> None: ...


class FileSystemWriter:
    """Writes files under ``root``, refusing paths that would leave it."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.written: list[Path] = []

    def _target(self, relative_path: str) -> Path:
        rel = PurePosixPath(relative_path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValueError(f"Refusing to write outside the project root: {relative_path!r}")
        return self.root.joinpath(*rel.parts)

    def write_file(self, relative_path: str, content: str) -> None:
        output_path = self._target(relative_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content)
        self.written.append(output_path)
        logger.debug("Wrote %s", output_path)


class MemoryWriter:
    """Collects artifacts in a dict keyed by relative path."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}

    def write_file(self, relative_path: str, content: str) -> None:
        self.files[relative_path] = content
