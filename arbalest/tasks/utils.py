"""Small helpers around task names and task listings."""

import re
from pathlib import Path
from typing import Any

INTERNAL_FN_MARKER = "_internal_fn_"
_INTERNAL_RE = re.compile(r"^(.+?)_internal_fn_\d{0,10}$")


def create_internal_name(parent: str, index: int) -> str:
    """Synthesize a name for an inline callable declared under ``parent``."""
    return f"{parent}{INTERNAL_FN_MARKER}{index}"


def is_internal(name: str) -> bool:
    """True for names synthesized for inline callables."""
    return bool(_INTERNAL_RE.match(name))


def strip_internal_suffix(name: str) -> str:
    """``js_internal_fn_0`` -> ``js``; other names are returned unchanged."""
    match = _INTERNAL_RE.match(name)
    if match:
        return match.group(1)
    return name


def get_function_name(fn: Any, count: int = 0) -> str:
    """Best-effort display name for a task callable."""
    name = getattr(fn, "__name__", None)
    if not name or name == "<lambda>":
        return f"Anonymous Function {count}"
    return name


def get_possible_tasks_from_directories(tasks_dirs: list[str], cwd: str | Path) -> list[str]:
    """List task module names (file stems) found in the given directories."""
    names: list[str] = []
    for tasks_dir in tasks_dirs:
        directory = Path(cwd) / tasks_dir
        if not directory.is_dir():
            continue
        for path in sorted(directory.glob("*.py")):
            if path.stem.startswith("_"):
                continue
            names.append(path.stem)
    return names
