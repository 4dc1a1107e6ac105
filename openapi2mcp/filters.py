"""Select which operations become tools."""

from __future__ import annotations

import re
from typing import Iterable

from .naming import canonical_name
from .operations import Operation


def filter_operations(
    operations: Iterable[Operation],
    methods: Iterable[str] | None = None,
    pattern: str | re.Pattern[str] | None = None,
) -> list[Operation]:
    """Keep operations matching every given filter, in input order.

    ``methods`` is compared case-insensitively. ``pattern`` is searched in
    the operation's canonical tool name and in its path template; either
    match is enough.
    """
    allowed = {m.lower() for m in methods} if methods is not None else None
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern

    selected = []
    for operation in operations:
        if allowed is not None and operation.method.lower() not in allowed:
            continue
        if regex is not None and not (
            regex.search(canonical_name(operation)) or regex.search(operation.path)
        ):
            continue
        selected.append(operation)
    return selected
