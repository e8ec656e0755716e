"""Unit tests for ModuleLoader."""

from pathlib import Path
from types import SimpleNamespace

import pytest

from arbalest.tasks.errors import ModuleExportError, ModuleLoadError
from arbalest.tasks.loader import ModuleLoader, resolve_export
from arbalest.tasks.utils import get_possible_tasks_from_directories


@pytest.fixture
def loader(tmp_path: Path, tasks_dir: Path) -> ModuleLoader:
    """Create a loader rooted at the temporary project."""
    return ModuleLoader(cwd=tmp_path, tasks_dirs=["tasks"])


class TestFind:
    """Tests for ModuleLoader.find."""

    def test_name_in_tasks_dir(self, loader: ModuleLoader, tasks_dir: Path) -> None:
        assert loader.find("clean") == str((tasks_dir / "clean.py").resolve())

    def test_relative_path(self, loader: ModuleLoader, tasks_dir: Path) -> None:
        assert loader.find("tasks/clean.py") == str((tasks_dir / "clean.py").resolve())

    def test_missing(self, loader: ModuleLoader) -> None:
        assert loader.find("nope") is None
        assert loader.find("tasks/nope.py") is None

    def test_dotted_module(self, loader: ModuleLoader) -> None:
        assert loader.find("json.decoder") == "json.decoder"
        assert loader.find("not_a_pkg.mod") is None


class TestLoad:
    """Tests for loading modules and picking exports."""

    def test_run_export(self, loader: ModuleLoader) -> None:
        export = loader.load_export(loader.find("clean"))

        assert callable(export)
        assert export.__name__ == "run"

    def test_tasks_export(self, loader: ModuleLoader) -> None:
        export = loader.load_export(loader.find("bundle"))

        assert [fn.__name__ for fn in export] == ["minify", "compress"]

    def test_module_is_cached(self, loader: ModuleLoader) -> None:
        reference = loader.find("clean")

        assert loader.load(reference) is loader.load(reference)

    def test_no_export(self, loader: ModuleLoader) -> None:
        with pytest.raises(ModuleExportError):
            loader.load_export(loader.find("broken_export"))

    def test_import_failure(self, loader: ModuleLoader, tasks_dir: Path) -> None:
        (tasks_dir / "explodes.py").write_text("raise RuntimeError('nope')\n")

        with pytest.raises(ModuleLoadError) as exc_info:
            loader.load(loader.find("explodes"))

        assert "nope" in str(exc_info.value)
        assert not isinstance(exc_info.value, ModuleExportError)

    def test_missing_file(self, loader: ModuleLoader, tmp_path: Path) -> None:
        with pytest.raises(ModuleLoadError):
            loader.load(str(tmp_path / "gone.py"))


class TestResolveExport:
    """Tests for resolve_export precedence."""

    def test_tasks_before_run(self) -> None:
        def a(options, ctx):
            pass

        module = SimpleNamespace(tasks=[a], run=lambda: None)

        assert resolve_export(module) == [a]

    def test_run_before_default(self) -> None:
        def run(options, ctx):
            pass

        module = SimpleNamespace(run=run, default=lambda: None)

        assert resolve_export(module) is run

    def test_default(self) -> None:
        def default(options, ctx):
            pass

        assert resolve_export(SimpleNamespace(default=default)) is default

    def test_non_callable_tasks(self) -> None:
        with pytest.raises(ModuleExportError):
            resolve_export(SimpleNamespace(tasks=["nope"]), "mod")


def test_possible_tasks_from_directories(tmp_path: Path, tasks_dir: Path) -> None:
    """Private modules are not listed."""
    names = get_possible_tasks_from_directories(["tasks", "missing"], tmp_path)

    assert names == ["broken_export", "bundle", "clean"]
