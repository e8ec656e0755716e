"""Tasks - from requested names to executed work.

This module provides the complete task pipeline:
- Name parsing (raw input -> descriptor with sub tasks, query and flags)
- Resolution (names + declarations -> Task tree with diagnostics)
- Sequence building (Task tree -> executable SequenceItems)
- Running (SequenceItems -> merged stream of TaskReports)
- Reconciliation (reports -> decorated tree, error and skip counts)
"""

from arbalest.tasks.adaptors import Adaptor, NpmAdaptor, ShellAdaptor, default_adaptors
from arbalest.tasks.errors import (
    ArbalestError,
    CommandFailedError,
    ModuleExportError,
    ModuleLoadError,
    RunnerConstructionError,
    TaskBuildError,
    TaskError,
    TaskErrorType,
    TaskFailure,
)
from arbalest.tasks.loader import ModuleLoader
from arbalest.tasks.models import (
    ResolvedTasks,
    SequenceItem,
    SequenceItemType,
    Task,
    TaskReport,
    TaskReportType,
    TaskRunMode,
    TaskStats,
    TaskType,
)
from arbalest.tasks.parser import TaskDescriptor, parse_task_name
from arbalest.tasks.resolver import (
    TaskResolver,
    get_simple_task_list,
    get_top_level_tasks,
    resolve_tasks,
)
from arbalest.tasks.runner import (
    Completion,
    ReportStream,
    Runner,
    collect_skipped_tasks,
    count_sequence_errors,
    create_runner,
    decorate_sequence_with_reports,
)
from arbalest.tasks.sequence import SequenceBuilder, create_flattened_sequence
from arbalest.tasks.trigger import TaskInput, Trigger

__all__ = [
    # Models
    "Task",
    "TaskType",
    "TaskRunMode",
    "ResolvedTasks",
    "SequenceItem",
    "SequenceItemType",
    "TaskReport",
    "TaskReportType",
    "TaskStats",
    # Errors
    "ArbalestError",
    "CommandFailedError",
    "ModuleExportError",
    "ModuleLoadError",
    "RunnerConstructionError",
    "TaskBuildError",
    "TaskError",
    "TaskErrorType",
    "TaskFailure",
    # Input
    "TaskInput",
    "Trigger",
    "TaskDescriptor",
    "parse_task_name",
    # Resolution
    "TaskResolver",
    "resolve_tasks",
    "get_top_level_tasks",
    "get_simple_task_list",
    # Building
    "ModuleLoader",
    "SequenceBuilder",
    "create_flattened_sequence",
    # Adaptors
    "Adaptor",
    "ShellAdaptor",
    "NpmAdaptor",
    "default_adaptors",
    # Running
    "Completion",
    "ReportStream",
    "Runner",
    "create_runner",
    "decorate_sequence_with_reports",
    "count_sequence_errors",
    "collect_skipped_tasks",
]
