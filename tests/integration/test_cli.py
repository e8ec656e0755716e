"""Integration tests for the command line interface."""

import textwrap
from pathlib import Path

import pytest
from typer.testing import CliRunner

from arbalest import __version__
from arbalest.cli.main import app


@pytest.fixture
def project(tmp_path: Path, mock_settings: None) -> Path:
    """A project with an arbalest.yaml declaring shell tasks."""
    (tmp_path / "arbalest.yaml").write_text(
        textwrap.dedent(
            """
            tasks:
              build:
                - "@sh echo js > js.txt"
                - "@sh echo css > css.txt"
              check: "@sh test -f js.txt"
              broken: "@sh exit 4"
              deploy:
                input: "@sh test \\"$ARB_OPTIONS_DEPLOY_TARGET\\" = prod"
                description: Ship it
            options:
              deploy:
                target: prod
            """
        )
    )
    return tmp_path


class TestRunCommand:
    """Tests for `arbalest run`."""

    def test_run_series(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "check", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert (project / "js.txt").exists()
        assert "completed" in result.output

    def test_run_parallel(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "deploy", "-p", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert "parallel" in result.output

    def test_failure_exit_code(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "broken", "build", "--cwd", str(project)])

        assert result.exit_code == 1
        assert not (project / "js.txt").exists()

    def test_fail_soft(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(
            app, ["run", "broken", "build", "--no-exit-on-error", "--cwd", str(project)]
        )

        assert result.exit_code == 1
        assert (project / "js.txt").exists()

    def test_unknown_task(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "nope", "--cwd", str(project)])

        assert result.exit_code == 1
        assert "ModuleNotFound" in result.output

    def test_short_summary_by_default(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert "2/2 completed" in result.output
        assert "Tasks (series)" not in result.output

    def test_long_summary(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "--summary", "long", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert "Tasks (series)" in result.output
        assert "done" in result.output

    def test_verbose_summary_lists_errors(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(
            app, ["run", "broken", "--summary", "verbose", "--cwd", str(project)]
        )

        assert result.exit_code == 1
        assert "failed" in result.output
        assert "CommandFailedError" in result.output

    def test_unknown_summary_level(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "--summary", "huge", "--cwd", str(project)])

        assert result.exit_code != 0
        assert not (project / "js.txt").exists()

    def test_dry_run(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["run", "build", "--dry-run", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert not (project / "js.txt").exists()

    def test_explicit_input_file(self, tmp_path: Path, mock_settings: None) -> None:
        other = tmp_path / "other.yml"
        other.write_text('tasks:\n  hello: "@sh echo hi > hi.txt"\n')
        runner = CliRunner()

        result = runner.invoke(app, ["run", "hello", "-i", str(other), "--cwd", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "hi.txt").exists()

    def test_missing_input_file(self, tmp_path: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(
            app, ["run", "x", "-i", str(tmp_path / "gone.yaml"), "--cwd", str(tmp_path)]
        )

        assert result.exit_code != 0


class TestTasksCommand:
    """Tests for `arbalest tasks`."""

    def test_lists_declared_tasks(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["tasks", "--cwd", str(project)])

        assert result.exit_code == 0, result.output
        assert "build" in result.output
        assert "Ship it" in result.output

    def test_invalid_names(self, project: Path) -> None:
        runner = CliRunner()

        result = runner.invoke(app, ["tasks", "nope", "--cwd", str(project)])

        assert result.exit_code == 1
        assert "nope" in result.output


def test_version() -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
