"""Entry point: python -m openapi2mcp

Reads the document named by OPENAPI2MCP_INPUT and writes tool sources for
each OPENAPI2MCP_TARGETS target under OPENAPI2MCP_PROJECT_PATH.
"""

from __future__ import annotations

import sys

from .config import Settings
from .errors import GenerationError
from .logging import configure_logging
from .pipeline import run


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    try:
        result = run(settings)
    except GenerationError as exc:
        print(f"Generation failed: {exc}", file=sys.stderr)
        sys.exit(1)

    targets = ", ".join(settings.target_names())
    print(
        f"Generated {len(result.tool_names)} tools for {targets} "
        f"({len(result.artifacts)} files) in {settings.project_path}"
    )


if __name__ == "__main__":
    main()
