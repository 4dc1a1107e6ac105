"""Run the whole generation: load, resolve, extract, filter, name, build, render, write."""

from __future__ import annotations

import logging

from .codegen import GenerationResult, get_target, render_project
from .config import Settings
from .context_builder import build_tools
from .filters import filter_operations
from .loader import Document, read_source
from .naming import allocate_names
from .operations import extract_operations
from .schema_parser import SchemaResolver
from .security import build_security_config
from .writer import FileSystemWriter, ProjectWriter

logger = logging.getLogger(__name__)


def build(document: Document, settings: Settings) -> GenerationResult:
    """Turn a loaded document into rendered artifacts, entirely in memory."""
    target_names = settings.target_names()
    for name in target_names:
        get_target(name)

    resolver = SchemaResolver(document)
    resolver.resolve_components()
    operations = extract_operations(document, resolver, settings.content_type_list())
    graph = resolver.graph()

    selected = filter_operations(
        operations, methods=settings.method_filter(), pattern=settings.name_pattern(),
    )
    logger.info("Selected %d of %d operations", len(selected), len(operations))

    allocations, registry = allocate_names(
        selected, settings.max_tool_name_length, settings.tool_name_policy,
    )
    logger.debug("Allocated %d tool names", len(registry))
    tools = build_tools(allocations)
    config = build_security_config(document, tools, settings.auth())
    return render_project(tools, graph, config, target_names)


def write_result(result: GenerationResult, writer: ProjectWriter) -> None:
    for artifact in result.artifacts:
        writer.write_file(artifact.path, artifact.content)


def run(settings: Settings) -> GenerationResult:
    document = read_source(settings.input)
    result = build(document, settings)
    write_result(result, FileSystemWriter(settings.project_path))
    return result
