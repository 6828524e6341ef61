"""Placeholder interpolation for message bodies, tag names, URLs and headers.

Resolves ``{{contact.name}}``-style tokens against the execution context.
A token whose path cannot be resolved is left in the output verbatim, so a
broken template stays visible in the message instead of turning into an
empty string.
"""

import re
from typing import Any

_TOKEN = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def resolve_path(context: Any, path: str) -> Any:
    """Walk a dotted path through dicts, sequences and attributes.

    Returns the sentinel ``_MISSING`` when any segment is absent.
    """
    current = context
    for part in path.split("."):
        part = part.strip()
        if current is None:
            return _MISSING
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        elif hasattr(current, part):
            current = getattr(current, part)
        else:
            return _MISSING
    return current


def lookup(context: Any, path: str, default: Any = None) -> Any:
    """Like resolve_path, but with a caller-chosen default."""
    value = resolve_path(context, path.strip())
    return default if value is _MISSING else value


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(template: str | None, context: dict[str, Any] | None) -> str:
    """Replace every ``{{dotted.path}}`` token in ``template``.

    Never raises: unresolved and ``None`` values keep the original token.
    """
    if not template:
        return ""
    if not context:
        return template

    def _replace(match: re.Match) -> str:
        value = resolve_path(context, match.group(1).strip())
        if value is _MISSING or value is None:
            return match.group(0)
        return _stringify(value)

    return _TOKEN.sub(_replace, template)
