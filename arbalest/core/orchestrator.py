"""Main Arbalest orchestrator - resolves, builds and runs requested tasks.

This module provides the primary interface for running tasks, tying the
resolver, the sequence builder and the runner together and turning the
report stream into a summary with an exit status.
"""

import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from arbalest.core.config import RunConfig, Settings, get_settings, merge_config
from arbalest.tasks.errors import ArbalestError
from arbalest.tasks.models import ResolvedTasks, SequenceItem, Task, TaskReport
from arbalest.tasks.resolver import get_simple_task_list, resolve_tasks
from arbalest.tasks.runner import (
    Runner,
    collect_skipped_tasks,
    count_sequence_errors,
    create_runner,
    decorate_sequence_with_reports,
    iter_leaves,
)
from arbalest.tasks.sequence import create_flattened_sequence
from arbalest.tasks.trigger import TaskInput, Trigger
from arbalest.tasks.utils import get_possible_tasks_from_directories

# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass
class PreparedRun:
    """A resolved and built run, ready to execute."""

    trigger: Trigger
    resolved: ResolvedTasks
    sequence: list[SequenceItem]
    runner: Runner | None = None

    @property
    def is_valid(self) -> bool:
        return not self.resolved.invalid


@dataclass
class RunSummary:
    """Outcome of one run."""

    names: list[str] = field(default_factory=list)
    run_mode: str = "series"
    summary_level: str = "short"  # How much the CLI reports: short, long or verbose
    total: int = 0  # Leaf items in the sequence
    completed: int = 0  # Leaves that finished without error
    errors: int = 0  # Leaves that failed
    skipped: list[str] = field(default_factory=list)
    not_started: int = 0  # Leaves never reached
    duration_seconds: float = 0.0
    exit_code: int = 0  # 0 for a clean run
    handed_off: bool = False

    invalid: list[Task] = field(default_factory=list)
    sequence: list[SequenceItem] = field(default_factory=list)
    reports: list[TaskReport] = field(default_factory=list)
    prepared: PreparedRun | None = None  # Set on handoff

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert the counters to a dictionary."""
        return {
            "names": self.names,
            "run_mode": self.run_mode,
            "total": self.total,
            "completed": self.completed,
            "errors": self.errors,
            "skipped": self.skipped,
            "not_started": self.not_started,
            "duration_seconds": self.duration_seconds,
            "exit_code": self.exit_code,
            "invalid": [task.raw_input for task in self.invalid],
        }


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================


class Arbalest:
    """
    Main Arbalest orchestrator class.

    Runs the whole pipeline for a set of requested names:
    1. Resolve names into a Task tree with diagnostics
    2. Flatten valid tasks into a SequenceItem tree
    3. Run the tree in series or parallel, collecting reports
    4. Decorate the tree and summarize errors and skipped tasks

    Example:
        >>> arbalest = Arbalest()
        >>> summary = await arbalest.run(
        ...     ["build-all@p"],
        ...     input={"tasks": {"build-all": ["@sh echo js", "@sh echo css"]}},
        ... )
        >>> summary.exit_code
        0
    """

    def __init__(
        self,
        settings: Settings | None = None,
        configure_logging: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Optional settings override. Uses default if not provided.
            configure_logging: Install the loguru sinks from settings.
        """
        self.settings = settings or get_settings()
        if configure_logging:
            self._configure_logging()

    def _configure_logging(self) -> None:
        """Configure loguru based on settings."""
        logger.remove()  # Remove default handler

        log_format = (
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>"
        )
        level = "DEBUG" if self.settings.arbalest_debug else self.settings.arbalest_log_level

        logger.add(sys.stderr, level=level, format=log_format, colorize=True)

        if self.settings.arbalest_log_file:
            log_path = Path(self.settings.arbalest_log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                str(log_path),
                rotation="1 day",
                retention="7 days",
                level=level,
                format=log_format,
            )

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def make_config(self, overrides: dict[str, Any] | None = None) -> RunConfig:
        """Run configuration from settings with ``overrides`` merged on top."""
        return merge_config(overrides, base=RunConfig.from_settings(self.settings))

    def _trigger(
        self,
        input: TaskInput | dict[str, Any] | None,
        config: RunConfig | dict[str, Any] | None,
    ) -> Trigger:
        if not isinstance(input, TaskInput):
            input = TaskInput.from_dict(input)
        if not isinstance(config, RunConfig):
            config = self.make_config(config)
        return Trigger(input=input, config=config)

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    def prepare(
        self,
        names: list[str],
        input: TaskInput | dict[str, Any] | None = None,
        config: RunConfig | dict[str, Any] | None = None,
    ) -> PreparedRun:
        """
        Resolve and build ``names`` without running anything.

        The runner is only created when every task resolved; callers that
        want to drive execution themselves (handoff) use this directly.

        Raises:
            RunnerConstructionError: If the built sequence is malformed.
        """
        trigger = self._trigger(input, config)
        resolved = resolve_tasks(names, trigger)

        if resolved.invalid:
            return PreparedRun(trigger=trigger, resolved=resolved, sequence=[])

        sequence = create_flattened_sequence(resolved.valid, trigger)
        runner = create_runner(sequence, trigger)
        logger.debug(f"Built {len(iter_leaves(sequence))} leaf item(s) for {names}")
        return PreparedRun(trigger=trigger, resolved=resolved, sequence=sequence, runner=runner)

    async def run(
        self,
        names: list[str],
        input: TaskInput | dict[str, Any] | None = None,
        config: RunConfig | dict[str, Any] | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> RunSummary:
        """
        Run ``names`` and summarize the outcome.

        Args:
            names: Requested task names, e.g. ``["build-all@p", "lint"]``.
            input: Task declarations, options and env.
            config: Run configuration or overrides for it.
            ctx: Extra values handed to every task callable.

        Returns:
            RunSummary with counts, the decorated sequence and an exit code.
            Nothing runs when any requested task is invalid.

        Raises:
            RunnerConstructionError: If the built sequence is malformed.
        """
        prepared = self.prepare(names, input, config)
        run_config = prepared.trigger.config

        if not prepared.is_valid:
            for task in prepared.resolved.invalid:
                for error in task.all_errors():
                    logger.error(f"{task.raw_input}: {error}")
            return RunSummary(
                names=list(names),
                run_mode=run_config.run_mode,
                invalid=prepared.resolved.invalid,
                exit_code=1,
            )

        assert prepared.runner is not None

        if run_config.handoff:
            logger.info("Handing off prepared runner")
            return RunSummary(
                names=list(names),
                run_mode=run_config.run_mode,
                total=len(iter_leaves(prepared.sequence)),
                sequence=prepared.sequence,
                prepared=prepared,
                handed_off=True,
            )

        if run_config.run_mode == "parallel":
            stream = prepared.runner.parallel(ctx)
        else:
            stream = prepared.runner.series(ctx)

        started = time.monotonic()
        reports = await stream.collect()
        duration = time.monotonic() - started

        decorated = decorate_sequence_with_reports(prepared.sequence, reports)
        summary = summarize(decorated, reports, run_config)
        summary.names = list(names)
        summary.duration_seconds = duration

        logger.info(
            f"Run finished in {duration:.2f}s: {summary.completed} completed, "
            f"{summary.errors} failed, {len(summary.skipped)} skipped"
        )
        return summary

    def get_task_list(
        self,
        input: TaskInput | dict[str, Any] | None = None,
        config: RunConfig | dict[str, Any] | None = None,
        names: list[str] | None = None,
    ) -> ResolvedTasks:
        """
        Resolve declared tasks and task modules for listing.

        Without ``names`` every declared task and every module found in the
        task directories is resolved.
        """
        trigger = self._trigger(input, config)
        if not names:
            names = list(trigger.input.tasks)
            for module_name in get_possible_tasks_from_directories(
                trigger.config.tasks_dir, trigger.config.cwd
            ):
                if module_name not in names:
                    names.append(module_name)
        return resolve_tasks(names, trigger)

    def describe(self, resolved: ResolvedTasks) -> list[tuple[str, str]]:
        """(name, description) rows for valid, user-selectable tasks."""
        return get_simple_task_list(resolved.valid)


def summarize(
    sequence: list[SequenceItem],
    reports: list[TaskReport],
    config: RunConfig,
) -> RunSummary:
    """Build a RunSummary from a decorated sequence."""
    leaves = iter_leaves(sequence)
    errors = count_sequence_errors(sequence)
    skipped = collect_skipped_tasks(sequence)
    completed = sum(1 for leaf in leaves if leaf.stats and leaf.stats.completed)
    not_started = sum(1 for leaf in leaves if not (leaf.stats and leaf.stats.started))

    exit_code = 0
    if errors:
        exit_code = 1
    elif config.strict and skipped:
        logger.warning(f"{len(skipped)} task(s) skipped in strict mode")
        exit_code = 1

    return RunSummary(
        run_mode=config.run_mode,
        summary_level=config.summary,
        total=len(leaves),
        completed=completed,
        errors=errors,
        skipped=[leaf.label for leaf in skipped],
        not_started=not_started,
        exit_code=exit_code,
        sequence=sequence,
        reports=reports,
    )


__all__ = [
    "Arbalest",
    "ArbalestError",
    "PreparedRun",
    "RunSummary",
    "summarize",
]
