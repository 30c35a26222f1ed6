"""
Variable Resolver - {{path.to.value}} substitution against the execution context

References are dot-separated paths. The first segment names a node id (or
``input``, or a run variable); later segments walk nested mappings, list
indices and object attributes. Unresolved references are left verbatim.
"""

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, List, Optional, Tuple

from .errors import TemplateResolutionError, TemplateResolutionWarning

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_MISSING = object()


def lookup(path: str, scope: Mapping) -> Tuple[bool, Any]:
    """
    Resolve a dotted path against the scope.

    Returns (found, value). A missing key at any depth short-circuits to
    (False, None).
    """
    if not path:
        return False, None

    # Node ids may themselves contain dots only if registered verbatim
    if path in scope:
        return True, scope[path]

    segments = path.split(".")
    current: Any = scope
    for segment in segments:
        current = _step(current, segment)
        if current is _MISSING:
            return False, None
    return True, current


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if segment.lstrip("-").isdigit():
            index = int(segment)
            if -len(current) <= index < len(current):
                return current[index]
        if segment == "length":
            return len(current)
        return _MISSING
    if isinstance(current, str) and segment == "length":
        return len(current)
    if current is None or isinstance(current, (str, bytes, int, float, bool)):
        return _MISSING
    if not segment.startswith("_") and hasattr(current, segment):
        return getattr(current, segment)
    return _MISSING


def get_member(value: Any, key: str) -> Tuple[bool, Any]:
    """Single traversal step: key of a mapping, index of a list, or attribute"""
    result = _step(value, key)
    if result is _MISSING:
        return False, None
    return True, result


def stringify(value: Any) -> str:
    """Render a resolved value for inclusion in a string"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def find_references(template: str) -> List[str]:
    """List the {{references}} present in a template, in order"""
    return [m.group(1) for m in TEMPLATE_PATTERN.finditer(template)]


def substitute(
    template: str,
    scope: Mapping,
    *,
    strict: bool = False,
    warnings: Optional[List[TemplateResolutionWarning]] = None,
    node_id: Optional[str] = None,
) -> str:
    """
    Replace every {{reference}} in template with its stringified value.

    Args:
        template: Text possibly containing {{path}} tokens
        scope: Mapping the first path segment is looked up in
        strict: Raise TemplateResolutionError on unresolved references
        warnings: Optional list that collects TemplateResolutionWarning records
        node_id: Node being resolved, recorded on warnings

    Returns:
        The substituted string. Templates without tokens come back unchanged.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template

    def replace(match: re.Match) -> str:
        reference = match.group(1)
        found, value = lookup(reference, scope)
        if found:
            return stringify(value)
        if strict:
            raise TemplateResolutionError(reference, template)
        warning = TemplateResolutionWarning(reference=reference, template=template, node_id=node_id)
        logger.warning(str(warning))
        if warnings is not None:
            warnings.append(warning)
        return match.group(0)

    return TEMPLATE_PATTERN.sub(replace, template)


def resolve_value(
    value: Any,
    scope: Mapping,
    *,
    strict: bool = False,
    warnings: Optional[List[TemplateResolutionWarning]] = None,
    node_id: Optional[str] = None,
) -> Any:
    """
    Recursively substitute templates inside strings, dicts and lists.

    A string consisting of exactly one {{reference}} resolves to the raw
    value (a dict stays a dict); any other string is substituted as text.
    """
    kwargs = {"strict": strict, "warnings": warnings, "node_id": node_id}

    if isinstance(value, str):
        match = TEMPLATE_PATTERN.fullmatch(value.strip())
        if match:
            found, raw = lookup(match.group(1), scope)
            if found:
                return raw
        return substitute(value, scope, **kwargs)
    if isinstance(value, dict):
        return {k: resolve_value(v, scope, **kwargs) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, scope, **kwargs) for item in value]
    return value
