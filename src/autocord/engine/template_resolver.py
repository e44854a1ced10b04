"""
Placeholder substitution for rule text.

``{path.to.value}`` placeholders descend through the context tree one
dot-separated segment at a time, through mappings, sequence indexes and
dataclass fields only; methods and other Python attributes are never
reachable. A placeholder whose path does not resolve is left in the output
exactly as written, so a half-built context shows up in the sent message
instead of silently producing empty text. Nothing is evaluated or escaped.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any, Mapping, Sequence

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")

_MISSING = object()


def lookup(context: Any, path: str) -> Any:
    """Return the value at ``path`` or ``_MISSING`` if any segment is absent, None or callable."""
    node = context
    for segment in path.split("."):
        if not segment:
            return _MISSING
        if isinstance(node, Mapping):
            node = node.get(segment, _MISSING)
        elif isinstance(node, Sequence) and not isinstance(node, str) and segment.isdigit():
            index = int(segment)
            node = node[index] if index < len(node) else _MISSING
        elif dataclasses.is_dataclass(node) and not isinstance(node, type):
            names = {f.name for f in dataclasses.fields(node)}
            node = getattr(node, segment) if segment in names else _MISSING
        else:
            return _MISSING
        if node is None or node is _MISSING or callable(node):
            return _MISSING
    return node


def resolve(template: str | None, context: Any) -> str:
    """
    Substitute every resolvable placeholder in ``template``.

    Args:
        template: Text containing ``{a.b}`` placeholders. None yields "".
        context: Nested mappings (or dataclasses) to resolve paths against.

    Returns:
        The resolved text; unresolvable placeholders are kept verbatim.
    """
    if not template:
        return ""

    def substitute(match: re.Match[str]) -> str:
        value = lookup(context, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return str(value)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def placeholders(template: str | None) -> list[str]:
    """List the placeholder paths in ``template``, in order of appearance."""
    return PLACEHOLDER_PATTERN.findall(template or "")


def unresolved(template: str | None, context: Any) -> list[str]:
    """Placeholder paths that would be left verbatim against ``context``."""
    return [path for path in placeholders(template) if lookup(context, path) is _MISSING]
