"""Module loader - turns a module reference into task callables.

A reference is either a Python file (relative to the working directory or
found in one of the task directories) or an importable dotted module name.
A task module exposes its work in one of these ways, checked in order:

- ``tasks``: a list of callables, run one after another with the same options
- ``run``: a single callable
- ``default``: a single callable
"""

import hashlib
import importlib
import importlib.util
import sys
from collections.abc import Sequence
from pathlib import Path
from types import ModuleType

from loguru import logger

from arbalest.tasks.errors import ModuleExportError, ModuleLoadError
from arbalest.tasks.models import TaskFactory

EXPORT_NAMES = ("run", "default")


class ModuleLoader:
    """
    Locate and import task modules.

    Loaded modules are cached per resolved reference, so a module is only
    executed once per loader.

    Example:
        >>> loader = ModuleLoader(cwd="/project", tasks_dirs=["tasks"])
        >>> ref = loader.find("build")      # /project/tasks/build.py
        >>> export = loader.load_export(ref)
    """

    def __init__(self, cwd: str | Path = ".", tasks_dirs: Sequence[str] = ("tasks",)) -> None:
        self.cwd = Path(cwd)
        self.tasks_dirs = list(tasks_dirs)
        self._cache: dict[str, ModuleType] = {}

    def find(self, name: str) -> str | None:
        """Resolve a task name to a module reference, or None."""
        if name.endswith(".py") or "/" in name or "\\" in name:
            path = Path(name)
            if not path.is_absolute():
                path = self.cwd / path
            if path.is_file():
                return str(path.resolve())
            return None

        for tasks_dir in self.tasks_dirs:
            candidate = self.cwd / tasks_dir / f"{name}.py"
            if candidate.is_file():
                return str(candidate.resolve())

        if "." in name:
            try:
                if importlib.util.find_spec(name) is not None:
                    return name
            except (ImportError, ValueError):
                return None

        return None

    def load(self, reference: str) -> ModuleType:
        """Import the module behind ``reference``.

        Raises:
            ModuleLoadError: If the module is missing or fails to import.
        """
        if reference in self._cache:
            return self._cache[reference]

        if reference.endswith(".py"):
            module = self._load_file(Path(reference))
        else:
            try:
                module = importlib.import_module(reference)
            except Exception as e:
                raise ModuleLoadError(reference, str(e)) from e

        self._cache[reference] = module
        logger.debug(f"Loaded task module {reference}")
        return module

    def _load_file(self, path: Path) -> ModuleType:
        if not path.is_file():
            raise ModuleLoadError(str(path), "file does not exist")

        digest = hashlib.sha1(str(path).encode()).hexdigest()[:10]
        module_name = f"arbalest_tasks_{path.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ModuleLoadError(str(path), "not an importable Python file")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ModuleLoadError(str(path), str(e)) from e
        return module

    def load_export(self, reference: str) -> TaskFactory | list[TaskFactory]:
        """Load a module and return its runnable export.

        Returns a list when the module declares ``tasks``.

        Raises:
            ModuleLoadError: If the module cannot be loaded or exports nothing runnable.
        """
        module = self.load(reference)
        return resolve_export(module, reference)


def resolve_export(module: object, reference: str = "") -> TaskFactory | list[TaskFactory]:
    """Pick the runnable part of a module or module-like object."""
    tasks = getattr(module, "tasks", None)
    if isinstance(tasks, (list, tuple)):
        if not all(callable(fn) for fn in tasks):
            raise ModuleExportError(reference, "every entry in 'tasks' must be callable")
        return list(tasks)

    for export_name in EXPORT_NAMES:
        fn = getattr(module, export_name, None)
        if callable(fn):
            return fn

    raise ModuleExportError(
        reference,
        "module must define 'tasks' (list of callables), 'run' or 'default'",
    )
