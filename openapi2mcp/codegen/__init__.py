"""Render tools into per-target source files.

Every artifact is rendered in memory; nothing here touches the filesystem.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..context_builder import Tool
from ..errors import UnsupportedTarget
from ..schema_parser import SchemaGraph
from ..security import SecurityConfig
from .base import Artifact, Target, render, template_environment
from .rust import RustTarget
from .typescript import TypeScriptTarget

logger = logging.getLogger(__name__)

TARGETS: dict[str, type] = {
    TypeScriptTarget.name: TypeScriptTarget,
    RustTarget.name: RustTarget,
}


def get_target(name: str, graph: SchemaGraph | None = None) -> Target:
    try:
        target_cls = TARGETS[name.strip().lower()]
    except KeyError:
        raise UnsupportedTarget(name, tuple(TARGETS)) from None
    return target_cls(graph)


@dataclass(frozen=True)
class GenerationResult:
    tool_artifacts: tuple[Artifact, ...] = ()
    project_artifacts: tuple[Artifact, ...] = ()
    tool_names: tuple[str, ...] = field(default_factory=tuple)

    @property
    def artifacts(self) -> tuple[Artifact, ...]:
        return self.tool_artifacts + self.project_artifacts

    def for_target(self, target: str) -> list[Artifact]:
        return [a for a in self.artifacts if a.target == target]


def render_project(
    tools: list[Tool],
    graph: SchemaGraph,
    config: SecurityConfig,
    target_names: Iterable[str],
) -> GenerationResult:
    """Render every tool for every target, plus each target's index and config."""
    targets = [get_target(name, graph) for name in target_names]
    tool_artifacts: list[Artifact] = []
    project_artifacts: list[Artifact] = []
    for target in targets:
        for tool in tools:
            tool_artifacts.append(target.emit_tool(tool, graph))
        project_artifacts.append(target.emit_index(tools))
        project_artifacts.append(target.emit_config(config))
        logger.info("Rendered %d tools for %s", len(tools), target.name)

    return GenerationResult(
        tool_artifacts=tuple(tool_artifacts),
        project_artifacts=tuple(project_artifacts),
        tool_names=tuple(t.name for t in tools),
    )


__all__ = [
    "Artifact",
    "GenerationResult",
    "RustTarget",
    "TARGETS",
    "Target",
    "TypeScriptTarget",
    "get_target",
    "render",
    "render_project",
    "template_environment",
]
