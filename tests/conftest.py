"""Pytest configuration and shared fixtures."""

import os
import textwrap
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

# Set test environment
os.environ.setdefault("ARBALEST_LOG_LEVEL", "DEBUG")
os.environ.setdefault("ARBALEST_RUN_MODE", "series")


@pytest.fixture
def mock_settings() -> Generator:
    """Provide fresh settings for testing."""
    from arbalest.core.config import clear_settings_cache

    # Clear any cached settings
    clear_settings_cache()

    yield

    # Clear again after test
    clear_settings_cache()


@pytest.fixture
def calls() -> list:
    """Shared call log written to by recording task callables."""
    return []


@pytest.fixture
def record(calls: list) -> Callable[[str], Callable[..., Any]]:
    """Build an inline task that appends ``(name, options)`` to ``calls``."""

    def make(name: str) -> Callable[..., Any]:
        def task(options: dict, ctx: dict) -> None:
            calls.append((name, dict(options)))

        task.__name__ = name
        return task

    return make


@pytest.fixture
def scenario_input(record: Callable[[str], Callable[..., Any]]) -> dict[str, Any]:
    """Two-level build declaration with sub task expansion.

    build-all -> js  -> moduleA:*            (first, second)
              -> css -> moduleB:first:second
    """
    return {
        "tasks": {
            "build-all": ["js", "css"],
            "js": ["moduleA:*"],
            "css": "moduleB:first:second",
            "moduleA": record("moduleA"),
            "moduleB": record("moduleB"),
        },
        "options": {
            "moduleA": {"first": {"n": 1}, "second": {"n": 2}},
            "moduleB": {"first": {"n": 3}, "second": {"n": 4}},
        },
    }


@pytest.fixture
def make_trigger(tmp_path: Path) -> Callable[..., Any]:
    """Build a Trigger rooted at ``tmp_path``."""
    from arbalest.core.config import RunConfig
    from arbalest.tasks.trigger import TaskInput, Trigger

    def make(data: dict[str, Any] | None = None, **config: Any) -> Trigger:
        config.setdefault("cwd", str(tmp_path))
        return Trigger(input=TaskInput.from_dict(data), config=RunConfig(**config))

    return make


@pytest.fixture
def tasks_dir(tmp_path: Path) -> Path:
    """A ``tasks`` directory holding a few task modules."""
    directory = tmp_path / "tasks"
    directory.mkdir()

    (directory / "clean.py").write_text(
        textwrap.dedent(
            '''
            """Remove build output."""

            CALLS = []


            def run(options, ctx):
                CALLS.append(dict(options))
            '''
        )
    )
    (directory / "bundle.py").write_text(
        textwrap.dedent(
            '''
            CALLS = []


            def minify(options, ctx):
                CALLS.append(("minify", dict(options)))


            async def compress(options, ctx):
                CALLS.append(("compress", dict(options)))


            tasks = [minify, compress]
            '''
        )
    )
    (directory / "broken_export.py").write_text("VALUE = 1\n")
    (directory / "_helpers.py").write_text("def run(options, ctx):\n    pass\n")
    return directory


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
