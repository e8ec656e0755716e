"""Data model shared by the resolver, the sequence builder and the runner.

``Task`` is what the resolver produces from the requested names: a tree of
groups and leaves with their run modes, options and diagnostics.
``SequenceItem`` is its executable counterpart, bound to a concrete callable
and fully merged options. ``TaskReport`` is the runtime lifecycle event that
links back to a sequence item through its ``seq_uid``.
"""

import itertools
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from arbalest.tasks.errors import TaskError

# =============================================================================
# ENUMS
# =============================================================================


class TaskType(str, Enum):
    """How a task is carried out."""

    GROUP = "Group"
    ADAPTOR = "Adaptor"
    INLINE_FUNCTION = "InlineFunction"
    EXTERNAL_MODULE = "ExternalModule"


class TaskRunMode(str, Enum):
    """Sequencing discipline for a group's children."""

    SERIES = "series"
    PARALLEL = "parallel"


class SequenceItemType(str, Enum):
    """Node kinds in a flattened sequence."""

    SERIES_GROUP = "SeriesGroup"
    PARALLEL_GROUP = "ParallelGroup"
    TASK = "Task"


class TaskReportType(str, Enum):
    """Lifecycle events emitted for a leaf."""

    START = "start"
    ERROR = "error"
    END = "end"


TaskFactory = Callable[..., Any]
RunContext = dict[str, Any]

# =============================================================================
# TASK
# =============================================================================


class Task(BaseModel):
    """A resolved, possibly grouped, unit of requested work.

    Example:
        >>> task = Task(
        ...     raw_input="sass:site@p",
        ...     task_name="sass",
        ...     base_task_name="sass",
        ...     type=TaskType.EXTERNAL_MODULE,
        ...     sub_tasks=["site"],
        ... )
        >>> task.is_valid()
        True
    """

    model_config = ConfigDict(frozen=False, arbitrary_types_allowed=True)

    raw_input: str = Field(..., description="The string exactly as requested")
    task_name: str = Field(..., description="Declared name, modifiers stripped")
    base_task_name: str = Field(..., description="Name without adaptor or sub task syntax")
    type: TaskType = Field(default=TaskType.EXTERNAL_MODULE, description="Task kind")
    run_mode: TaskRunMode = Field(
        default=TaskRunMode.SERIES,
        description="How children run; only meaningful for groups",
    )
    tasks: list["Task"] = Field(default_factory=list, description="Child tasks")
    sub_tasks: list[str] = Field(
        default_factory=list,
        description="Keys to select inside the options object ('*' for all)",
    )

    options: dict[str, Any] | None = Field(default=None, description="Inline options")
    query: dict[str, Any] = Field(default_factory=dict, description="From ?key=value")
    flags: dict[str, Any] = Field(default_factory=dict, description="From --flag")

    adaptor: str | None = Field(default=None, description="Adaptor id, e.g. 'sh'")
    command: str | None = Field(default=None, description="Adaptor command line")
    inline_functions: list[TaskFactory] = Field(
        default_factory=list,
        description="Callables for inline function tasks",
    )
    external_tasks: list[str] = Field(
        default_factory=list,
        description="Resolved module references for external modules",
    )

    description: str | None = Field(default=None, description="Optional description")
    skipped: bool = Field(default=False, description="Report but never execute")
    errors: list[TaskError] = Field(default_factory=list, description="Diagnostics")
    parents: list[str] = Field(
        default_factory=list,
        description="Enclosing group names, outermost first",
    )

    @property
    def is_group(self) -> bool:
        return bool(self.tasks)

    def is_valid(self) -> bool:
        """True when neither this task nor any descendant has diagnostics."""
        if self.errors:
            return False
        return all(child.is_valid() for child in self.tasks)

    def walk(self) -> Iterator["Task"]:
        """Iterate over this task and all descendants, pre-order."""
        yield self
        for child in self.tasks:
            yield from child.walk()

    def all_errors(self) -> list[TaskError]:
        """Collect diagnostics from the whole subtree."""
        return [err for task in self.walk() for err in task.errors]


Task.model_rebuild()


class ResolvedTasks(BaseModel):
    """Resolver output: every requested task, split by validity."""

    model_config = ConfigDict(frozen=False)

    all: list[Task] = Field(default_factory=list)
    valid: list[Task] = Field(default_factory=list)
    invalid: list[Task] = Field(default_factory=list)


# =============================================================================
# RUNTIME STATS
# =============================================================================


class TaskStats(BaseModel):
    """Runtime statistics for one leaf, merged from its reports."""

    model_config = ConfigDict(frozen=False, arbitrary_types_allowed=True)

    seq_uid: int | None = Field(default=None, description="Owning item")
    started: bool = Field(default=False)
    completed: bool = Field(default=False)
    skipped: bool = Field(default=False)
    start_time: float | None = Field(default=None, description="Epoch seconds")
    end_time: float | None = Field(default=None, description="Epoch seconds")
    duration: float | None = Field(default=None, description="Seconds")
    errors: list[Any] = Field(default_factory=list, description="Exceptions raised")


# =============================================================================
# SEQUENCE
# =============================================================================


@dataclass
class SequenceItem:
    """An executable node: a series group, a parallel group or a task.

    Task items always carry a ``factory``; groups never do. ``task`` is a
    back-reference used for lookups only.
    """

    type: SequenceItemType
    seq_uid: int
    task_name: str | None = None
    items: list["SequenceItem"] = field(default_factory=list)
    skipped: bool = False

    fn_name: str | None = None
    factory: TaskFactory | None = field(default=None, repr=False)
    task: Task | None = field(default=None, repr=False, compare=False)
    options: dict[str, Any] = field(default_factory=dict)
    sub_task_name: str | None = None
    errors: list[TaskError] = field(default_factory=list)

    stats: TaskStats | None = None

    @property
    def is_group(self) -> bool:
        return self.type in (SequenceItemType.SERIES_GROUP, SequenceItemType.PARALLEL_GROUP)

    def leaves(self) -> Iterator["SequenceItem"]:
        """Iterate over every task item below (or at) this node."""
        if self.type == SequenceItemType.TASK:
            yield self
            return
        for child in self.items:
            yield from child.leaves()

    @property
    def label(self) -> str:
        """Display name used in logs."""
        if self.is_group:
            return self.task_name or self.type.value
        name = self.task.task_name if self.task else (self.fn_name or "task")
        if self.sub_task_name:
            return f"{name}:{self.sub_task_name}"
        return name


@dataclass
class TaskReport:
    """Lifecycle event for a leaf, matched to its item by ``seq_uid``."""

    item: SequenceItem
    type: TaskReportType
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def seq_uid(self) -> int:
        return self.item.seq_uid


# =============================================================================
# FACTORIES
# =============================================================================

_seq_uid = itertools.count()


def next_seq_uid() -> int:
    """Allocate the next process-unique sequence uid."""
    return next(_seq_uid)


def create_sequence_task_item(
    fn_name: str,
    factory: TaskFactory,
    task: Task,
    options: dict[str, Any],
    sub_task_name: str | None = None,
    errors: list[TaskError] | None = None,
) -> SequenceItem:
    return SequenceItem(
        type=SequenceItemType.TASK,
        seq_uid=next_seq_uid(),
        fn_name=fn_name,
        factory=factory,
        task=task,
        options=options,
        sub_task_name=sub_task_name,
        errors=list(errors or []),
        skipped=task.skipped,
    )


def create_sequence_group(
    run_mode: TaskRunMode,
    task_name: str,
    seq_uid: int,
    items: list[SequenceItem],
    skipped: bool = False,
) -> SequenceItem:
    """Create a series or parallel group.

    The uid is passed in so callers can allocate it before building the
    children, keeping uids in pre-order.
    """
    item_type = (
        SequenceItemType.PARALLEL_GROUP
        if run_mode == TaskRunMode.PARALLEL
        else SequenceItemType.SERIES_GROUP
    )
    return SequenceItem(
        type=item_type,
        seq_uid=seq_uid,
        task_name=task_name,
        items=items,
        skipped=skipped,
    )
