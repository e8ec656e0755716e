"""Layered option lookup and merging.

Lookups return the ``MISSING`` sentinel instead of ``None`` so that a key
explicitly set to ``None`` stays distinguishable from an absent one.
"""

import re
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from arbalest.tasks.utils import is_internal, strip_internal_suffix


class Missing(Enum):
    """Typed "not found" marker for option lookups."""

    MISSING = "MISSING"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = Missing.MISSING


def get_path(mapping: Any, path: str | Sequence[str]) -> Any:
    """Walk ``path`` through nested mappings.

    A plain string is a single key; it is never split on dots because
    module references such as ``tasks/build.py`` contain them.

    Example:
        >>> get_path({"sass": {"site": {"input": "a.scss"}}}, ["sass", "site"])
        {'input': 'a.scss'}
        >>> get_path({}, ["nope"])
        MISSING
    """
    keys = [path] if isinstance(path, str) else list(path)
    current = mapping
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            return MISSING
        current = current[key]
    return current


def deep_merge(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge mappings left to right, later layers win, nested dicts merge.

    Inputs are never mutated.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            existing = merged.get(key)
            if isinstance(existing, dict) and isinstance(value, Mapping):
                merged[key] = deep_merge(existing, value)
            elif isinstance(value, Mapping):
                merged[key] = deep_merge(value)
            else:
                merged[key] = value
    return merged


def lookup_top_level_options(
    task_name: str,
    inline_options: Mapping[str, Any] | None,
    global_options: Mapping[str, Any],
) -> dict[str, Any]:
    """Find the options object a leaf task runs with.

    Precedence: explicit inline options, then the global options under the
    task's name (unwrapping an ``{options, tasks}`` declaration), then, for
    synthesized inline-function names, the global options under the parent
    name. Falls back to an empty mapping.
    """
    if inline_options is not None:
        return dict(inline_options)

    full_match = get_path(global_options, task_name)
    if full_match is not MISSING:
        if isinstance(full_match, Mapping) and "options" in full_match and "tasks" in full_match:
            return dict(full_match["options"] or {})
        if isinstance(full_match, Mapping):
            return dict(full_match)
        return {}

    if is_internal(task_name):
        from_internal = get_path(global_options, strip_internal_suffix(task_name))
        if isinstance(from_internal, Mapping):
            return dict(from_internal)

    return {}


def merge_invocation_options(
    base: Mapping[str, Any] | None,
    task_options: Mapping[str, Any] | None,
    query: Mapping[str, Any] | None,
    flags: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """base <- task options <- query <- flags."""
    return deep_merge(base, task_options, query, flags)


_ENV_UNSAFE = re.compile(r"[^A-Za-z0-9]+")


def options_to_env(options: Mapping[str, Any], prefix: str) -> dict[str, str]:
    """Flatten nested options into environment variables.

    Example:
        >>> options_to_env({"some": {"nested": {"prop": "0.1"}}}, "ARB")
        {'ARB_OPTIONS_SOME_NESTED_PROP': '0.1'}
    """
    env: dict[str, str] = {}

    def visit(value: Any, parts: list[str]) -> None:
        if isinstance(value, Mapping):
            for key, child in value.items():
                visit(child, [*parts, str(key)])
            return
        if isinstance(value, (list, tuple)) or value is None:
            return
        name = "_".join(_ENV_UNSAFE.sub("_", part).strip("_").upper() for part in parts)
        if isinstance(value, bool):
            env[name] = "true" if value else "false"
        else:
            env[name] = str(value)

    visit(options, [prefix, "OPTIONS"])
    return env
