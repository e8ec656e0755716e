"""
Runner - executes a flattened sequence and streams lifecycle reports.

The same tree is interpreted by ``series()`` and ``parallel()``; only the
top level differs. Every node keeps its own discipline:

- a series group awaits its children one after another
- a parallel group gathers its children and contains their failures
- a task leaf runs its callable inside a wrapper that emits reports

All leaves feed one queue, so a caller reads a single time-ordered stream
no matter how many leaves are in flight.
"""

import asyncio
import inspect
import time
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from arbalest.tasks.errors import RunnerConstructionError, TaskFailure
from arbalest.tasks.models import (
    RunContext,
    SequenceItem,
    SequenceItemType,
    TaskFactory,
    TaskReport,
    TaskReportType,
    TaskStats,
)
from arbalest.tasks.trigger import Trigger

Emit = Callable[[TaskReport], None]

# =============================================================================
# COMPLETION HANDLE
# =============================================================================


class Completion:
    """Completion handle handed to callback style tasks.

    A task taking three parameters receives ``(options, ctx, done)`` and
    finishes by calling ``done()`` or fails with ``done(error)``. The handle
    is safe to call from any thread; only the first call counts.

    Example:
        >>> def compile_assets(options, ctx, done):
        ...     threading.Timer(0.1, done).start()
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, future: asyncio.Future) -> None:
        self._loop = loop
        self._future = future

    def __call__(self, error: BaseException | str | None = None) -> None:
        if error is None:
            self.done()
        else:
            self.fail(error)

    def done(self, result: Any = None) -> None:
        self._loop.call_soon_threadsafe(self._resolve, None, result)

    def fail(self, error: BaseException | str) -> None:
        self._loop.call_soon_threadsafe(self._resolve, error, None)

    def _resolve(self, error: BaseException | str | None, result: Any) -> None:
        if self._future.done():
            return
        if error is None:
            self._future.set_result(result)
        elif isinstance(error, BaseException):
            self._future.set_exception(error)
        else:
            self._future.set_exception(RuntimeError(str(error)))


def positional_arity(fn: TaskFactory) -> int:
    """How many of ``(options, ctx, done)`` the callable accepts."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return 2

    count = 0
    for param in params:
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            return 2
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return min(count, 3)


async def invoke_task(fn: TaskFactory, options: dict[str, Any], ctx: RunContext) -> Any:
    """Call a task callable and wait for it to finish.

    Coroutine functions are awaited on the loop. Plain functions run in a
    worker thread so a blocking task cannot stall its parallel siblings;
    an awaitable they return is awaited afterwards.
    """
    arity = positional_arity(fn)

    if arity >= 3:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        done = Completion(loop, future)
        if inspect.iscoroutinefunction(fn):
            await fn(options, ctx, done)
        else:
            returned = await asyncio.to_thread(fn, options, ctx, done)
            if inspect.isawaitable(returned):
                await returned
        return await future

    args = (options, ctx)[:arity]
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)

    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


# =============================================================================
# REPORT STREAM
# =============================================================================

_DONE = object()


class ReportStream:
    """Merged stream of TaskReports for one run.

    The run starts when the stream is first iterated or collected. Every
    report is also kept in ``reports`` so a finished stream can be read
    again. Consumers that join while the run is in flight each see every
    report, starting with those already emitted.

    Example:
        >>> stream = runner.series()
        >>> async for report in stream:
        ...     print(report.type, report.item.label)
        >>> reports = stream.reports
    """

    def __init__(self, drive: Callable[[Emit], Awaitable[None]]) -> None:
        self._drive = drive
        self._subscribers: list[asyncio.Queue] = []
        self._task: asyncio.Task | None = None
        self._finished = False
        self.reports: list[TaskReport] = []

    @property
    def finished(self) -> bool:
        return self._finished

    def _emit(self, report: TaskReport) -> None:
        self.reports.append(report)
        for queue in self._subscribers:
            queue.put_nowait(report)

    def _ensure_started(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._drive(self._emit)
        finally:
            self._finished = True
            for queue in self._subscribers:
                queue.put_nowait(_DONE)

    def __aiter__(self) -> AsyncIterator[TaskReport]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[TaskReport]:
        if self._finished:
            for report in list(self.reports):
                yield report
            return

        # Each consumer gets its own queue, primed with what was already reported
        queue: asyncio.Queue = asyncio.Queue()
        for report in self.reports:
            queue.put_nowait(report)
        self._subscribers.append(queue)
        self._ensure_started()
        assert self._task is not None
        try:
            while True:
                report = await queue.get()
                if report is _DONE:
                    break
                yield report
        finally:
            self._subscribers.remove(queue)
        await self._task

    async def collect(self) -> list[TaskReport]:
        """Run to completion and return every report in arrival order."""
        if not self._finished:
            async for _ in self:
                pass
        return list(self.reports)


# =============================================================================
# RUNNER
# =============================================================================


@dataclass
class Runner:
    """Executes a sequence tree.

    Build with ``create_runner``; each call to ``series()`` or
    ``parallel()`` returns a fresh, not yet started ReportStream.
    """

    sequence: list[SequenceItem]
    trigger: Trigger

    def series(self, ctx: RunContext | None = None) -> ReportStream:
        """Run top-level items one after another."""
        run_ctx = self._context(ctx)

        async def drive(emit: Emit) -> None:
            logger.info(f"Running {len(self.sequence)} top-level item(s) in series")
            try:
                for item in self.sequence:
                    await self._execute(item, emit, run_ctx, catch=False)
            except TaskFailure as e:
                logger.error(f"Run halted after '{e.item.label}' failed")

        return ReportStream(drive)

    def parallel(self, ctx: RunContext | None = None) -> ReportStream:
        """Run top-level items together; one failure never stops the others."""
        run_ctx = self._context(ctx)

        async def drive(emit: Emit) -> None:
            logger.info(f"Running {len(self.sequence)} top-level item(s) in parallel")
            await asyncio.gather(
                *(self._execute(item, emit, run_ctx, catch=True) for item in self.sequence)
            )

        return ReportStream(drive)

    def _context(self, ctx: RunContext | None) -> RunContext:
        return {
            "config": self.trigger.config,
            "shared": self.trigger.shared,
            "trigger": self.trigger,
            **(ctx or {}),
        }

    async def _execute(
        self,
        item: SequenceItem,
        emit: Emit,
        ctx: RunContext,
        catch: bool,
    ) -> None:
        """Interpret one node.

        A TaskFailure from this node is contained when ``catch`` is set (the
        node sits in a parallel group) or when the run is fail-soft.
        Otherwise it propagates and halts the enclosing series chain.
        """
        try:
            if item.type == SequenceItemType.PARALLEL_GROUP:
                await asyncio.gather(
                    *(self._execute(child, emit, ctx, catch=True) for child in item.items)
                )
            elif item.type == SequenceItemType.SERIES_GROUP:
                for child in item.items:
                    await self._execute(child, emit, ctx, catch=False)
            else:
                await self._run_leaf(item, emit, ctx)
        except TaskFailure as e:
            if not (catch or not self.trigger.config.exit_on_error):
                raise
            logger.debug(f"Contained failure of '{e.item.label}' inside '{item.label}'")

    async def _run_leaf(self, item: SequenceItem, emit: Emit, ctx: RunContext) -> None:
        assert item.factory is not None

        start_time = time.time()
        emit(
            TaskReport(
                item=item,
                type=TaskReportType.START,
                stats={"seq_uid": item.seq_uid, "started": True, "start_time": start_time},
            )
        )

        if item.skipped:
            logger.info(f"Skipping '{item.label}'")
            emit(_end_report(item, start_time, completed=False, skipped=True))
            return

        config = self.trigger.config
        if config.dry_run:
            logger.info(f"[dry run] '{item.label}'")
            if config.dry_run_duration:
                await asyncio.sleep(config.dry_run_duration)
            emit(_end_report(item, start_time, completed=True))
            return

        logger.info(f"Starting '{item.label}'")
        try:
            await invoke_task(item.factory, item.options, ctx)
        except (Exception, SystemExit) as e:
            end_time = time.time()
            logger.error(f"Task '{item.label}' failed: {e}")
            emit(
                TaskReport(
                    item=item,
                    type=TaskReportType.ERROR,
                    stats={
                        "end_time": end_time,
                        "duration": end_time - start_time,
                        "completed": False,
                        "errors": [e],
                    },
                )
            )
            raise TaskFailure(item, e) from e

        report = _end_report(item, start_time, completed=True)
        emit(report)
        logger.info(f"Finished '{item.label}' in {report.stats['duration']:.2f}s")


def _end_report(
    item: SequenceItem,
    start_time: float,
    completed: bool,
    skipped: bool = False,
) -> TaskReport:
    end_time = time.time()
    return TaskReport(
        item=item,
        type=TaskReportType.END,
        stats={
            "end_time": end_time,
            "duration": end_time - start_time,
            "completed": completed,
            "skipped": skipped,
        },
    )


def _validate(items: Sequence[SequenceItem]) -> None:
    for item in items:
        if item.type == SequenceItemType.TASK:
            if not callable(item.factory):
                raise RunnerConstructionError(f"Task item {item.seq_uid} has no callable")
        elif item.type in (SequenceItemType.SERIES_GROUP, SequenceItemType.PARALLEL_GROUP):
            if item.factory is not None:
                raise RunnerConstructionError(f"Group item {item.seq_uid} carries a callable")
            _validate(item.items)
        else:
            raise RunnerConstructionError(
                f"Unknown sequence item type {item.type!r} for item {item.seq_uid}"
            )


def create_runner(items: Sequence[SequenceItem], trigger: Trigger) -> Runner:
    """Check the tree and return a Runner for it.

    Raises:
        RunnerConstructionError: If the tree is malformed.
    """
    _validate(items)
    return Runner(sequence=list(items), trigger=trigger)


# =============================================================================
# REPORT RECONCILIATION
# =============================================================================


def decorate_sequence_with_reports(
    sequence: Sequence[SequenceItem],
    reports: Sequence[TaskReport],
) -> list[SequenceItem]:
    """Return a copy of ``sequence`` with ``stats`` filled in from ``reports``.

    Leaves merge their start report with their end or error report. A leaf
    that never started gets ``TaskStats(started=False)``. The input tree is
    left untouched, so decorating twice gives the same result.
    """
    by_uid: dict[int, list[TaskReport]] = defaultdict(list)
    for report in reports:
        by_uid[report.seq_uid].append(report)
    return [_decorate(item, by_uid) for item in sequence]


def _decorate(item: SequenceItem, by_uid: dict[int, list[TaskReport]]) -> SequenceItem:
    if item.is_group:
        return replace(item, items=[_decorate(child, by_uid) for child in item.items])

    matching = by_uid.get(item.seq_uid, [])
    start = next((r for r in matching if r.type == TaskReportType.START), None)
    terminal = next(
        (r for r in matching if r.type in (TaskReportType.END, TaskReportType.ERROR)),
        None,
    )

    merged: dict[str, Any] = {"seq_uid": item.seq_uid}
    for report in (start, terminal):
        if report is not None:
            merged.update(report.stats)
    return replace(item, stats=TaskStats(**merged))


def iter_leaves(sequence: Sequence[SequenceItem]) -> list[SequenceItem]:
    return [leaf for item in sequence for leaf in item.leaves()]


def count_sequence_errors(sequence: Sequence[SequenceItem]) -> int:
    """Number of leaves whose stats hold at least one error."""
    return sum(1 for leaf in iter_leaves(sequence) if leaf.stats and leaf.stats.errors)


def collect_skipped_tasks(sequence: Sequence[SequenceItem]) -> list[SequenceItem]:
    """Leaves that were skipped on request."""
    return [leaf for leaf in iter_leaves(sequence) if leaf.stats and leaf.stats.skipped]
