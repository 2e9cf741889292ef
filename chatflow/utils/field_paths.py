"""Dotted field-path lookup over nested payloads."""

from typing import Any, Dict, Iterable, Optional, Tuple


def resolve_path(data: Any, path: str) -> Any:
    """
    Resolve a dotted path such as ``data.process_data.model_name``.

    Args:
        data: Nested mapping
        path: Dot-separated keys

    Returns:
        The value at the path, or None when any segment is missing
    """
    current = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def first_non_empty(data: Dict[str, Any], paths: Iterable[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Return the first non-empty string found along ``paths``.

    Args:
        data: Nested payload
        paths: Candidate paths in priority order

    Returns:
        ``(value, path)`` of the first hit, or ``(None, None)``
    """
    for path in paths:
        value = resolve_path(data, path)
        if isinstance(value, str) and value and value != "undefined":
            return value, path
    return None, None
