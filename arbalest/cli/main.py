"""Main CLI entry point using Typer."""

from pathlib import Path
from typing import Any

import anyio
import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from arbalest import __version__
from arbalest.core.orchestrator import Arbalest, RunSummary
from arbalest.tasks.models import SequenceItem, Task

DEFAULT_INPUT_FILES = ("arbalest.yaml", "arbalest.yml")
SUMMARY_LEVELS = ("short", "long", "verbose")

app = typer.Typer(
    name="arbalest",
    help="Arbalest - task runner and build orchestrator",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Arbalest[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Arbalest - run tasks in series or in parallel.

    Declare tasks in arbalest.yaml, then run them by name.
    """
    pass


def load_input(path: Path | None, cwd: Path) -> dict[str, Any]:
    """Load task declarations from ``path`` or the default input file in ``cwd``.

    Raises:
        typer.BadParameter: If the file is missing or not a mapping.
    """
    if path is None:
        for name in DEFAULT_INPUT_FILES:
            candidate = cwd / name
            if candidate.is_file():
                path = candidate
                break
        else:
            return {}

    if not path.is_file():
        raise typer.BadParameter(f"Input file not found: {path}")

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"Input file must contain a mapping: {path}")

    console.print(f"[dim]Loaded tasks from {path}[/dim]")
    return data


def _status(item: SequenceItem) -> str:
    stats = item.stats
    if stats is None or not stats.started:
        return "[dim]not started[/dim]"
    if stats.skipped:
        return "[yellow]skipped[/yellow]"
    if stats.errors:
        return "[red]failed[/red]"
    if stats.completed:
        return "[green]done[/green]"
    return "[yellow]interrupted[/yellow]"


def _add_task_node(parent: Tree, task: Task) -> None:
    label = f"[bold]{task.raw_input}[/bold]"
    if task.errors:
        label = f"[red]{task.raw_input}[/red]"
    node = parent.add(label)
    for error in task.errors:
        node.add(f"[red]{error.type.value}[/red]: {error.message}")
    for child in task.tasks:
        _add_task_node(node, child)


def print_invalid(tasks: list[Task]) -> None:
    """Print the diagnostics tree for unresolved tasks."""
    tree = Tree("[bold red]Invalid tasks[/bold red]")
    for task in tasks:
        _add_task_node(tree, task)
    console.print(tree)


def print_summary(summary: RunSummary) -> None:
    """Print the outcome of a run at the summary level it was configured with.

    short prints the totals panel, long adds a row per task, and verbose
    also lists each failed task's errors.
    """
    if summary.summary_level in ("long", "verbose"):
        table = Table(title=f"Tasks ({summary.run_mode})")
        table.add_column("Task", style="bold")
        table.add_column("Status")
        table.add_column("Duration", justify="right")

        for item in summary.sequence:
            for leaf in item.leaves():
                duration = leaf.stats.duration if leaf.stats else None
                table.add_row(
                    leaf.label,
                    _status(leaf),
                    f"{duration:.2f}s" if duration is not None else "-",
                )

        console.print(table)

    if summary.summary_level == "verbose":
        for item in summary.sequence:
            for leaf in item.leaves():
                if leaf.stats is None:
                    continue
                for error in leaf.stats.errors:
                    console.print(
                        f"[red]{escape(leaf.label)}[/red]: "
                        f"{type(error).__name__}: {escape(str(error))}"
                    )

    style = "green" if summary.success else "red"
    console.print(
        Panel(
            f"{summary.run_mode} run: "
            f"{summary.completed}/{summary.total} completed, "
            f"{summary.errors} failed, {len(summary.skipped)} skipped "
            f"in {summary.duration_seconds:.2f}s",
            border_style=style,
        )
    )


@app.command()
def run(
    names: list[str] = typer.Argument(..., help="Tasks to run, e.g. 'build-all@p' 'sass:site'"),
    input_file: Path | None = typer.Option(
        None,
        "--input",
        "-i",
        help="YAML file declaring tasks, options and env",
    ),
    cwd: Path = typer.Option(
        Path("."),
        "--cwd",
        "-c",
        help="Working directory",
    ),
    parallel: bool = typer.Option(
        False,
        "--parallel",
        "-p",
        help="Run top-level tasks in parallel",
    ),
    exit_on_error: bool | None = typer.Option(
        None,
        "--exit-on-error/--no-exit-on-error",
        "-e/-E",
        help="Stop a series chain at the first failure",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        "-s",
        help="Treat skipped tasks as a failure",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Report tasks without running them",
    ),
    summary: str | None = typer.Option(
        None,
        "--summary",
        help="Report detail: short (totals), long (per task) or verbose (with errors)",
    ),
) -> None:
    """
    Run tasks by name.

    Example:
        arbalest run build-all@p lint -i arbalest.yaml
    """
    if summary is not None and summary not in SUMMARY_LEVELS:
        raise typer.BadParameter(f"--summary must be one of: {', '.join(SUMMARY_LEVELS)}")

    cwd = cwd.resolve()
    data = load_input(input_file, cwd)

    overrides: dict[str, Any] = {
        "cwd": str(cwd),
        "p": parallel,
        "s": strict,
        "dry_run": dry_run,
        "exit_on_error": exit_on_error,
        "summary": summary,
    }

    async def execute() -> int:
        arbalest = Arbalest()
        result = await arbalest.run(names, input=data, config=overrides)

        if result.invalid:
            print_invalid(result.invalid)
        else:
            print_summary(result)
        return result.exit_code

    exit_code = anyio.run(execute)
    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def tasks(
    names: list[str] | None = typer.Argument(
        None,
        help="Tasks to show (defaults to every declared task and task module)",
    ),
    input_file: Path | None = typer.Option(
        None,
        "--input",
        "-i",
        help="YAML file declaring tasks, options and env",
    ),
    cwd: Path = typer.Option(
        Path("."),
        "--cwd",
        "-c",
        help="Working directory",
    ),
) -> None:
    """
    List available tasks.
    """
    cwd = cwd.resolve()
    data = load_input(input_file, cwd)

    arbalest = Arbalest()
    resolved = arbalest.get_task_list(input=data, config={"cwd": str(cwd)}, names=names)

    if resolved.invalid:
        print_invalid(resolved.invalid)
        raise typer.Exit(1)

    rows = arbalest.describe(resolved)
    if not rows:
        console.print("[dim]No tasks found[/dim]")
        return

    table = Table(title="Available Tasks")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for name, description in rows:
        table.add_row(name, description)
    console.print(table)


if __name__ == "__main__":
    app()
