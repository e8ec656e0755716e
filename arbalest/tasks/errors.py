"""Task diagnostics and the exception hierarchy.

Resolution and build problems are recorded as ``TaskError`` values on the
affected task so that reporting can show the full requested tree. Exceptions
are only raised at the edges: when a leaf fails at runtime, when an adaptor
command exits non-zero, or when a runner cannot be constructed at all.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# DIAGNOSTICS
# =============================================================================


class TaskErrorType(str, Enum):
    """Kinds of problems attached to an invalid task."""

    SUBTASK_NOT_FOUND = "SubtaskNotFound"
    SUBTASK_WILDCARD_NOT_AVAILABLE = "SubtaskWildcardNotAvailable"
    SUBTASKS_NOT_IN_CONFIG = "SubtasksNotInConfig"
    MODULE_NOT_FOUND = "ModuleNotFound"
    INVALID_MODULE_EXPORT = "InvalidModuleExport"
    INVALID_TASK_FORMAT = "InvalidTaskFormat"
    ADAPTOR_NOT_FOUND = "AdaptorNotFound"
    CIRCULAR_REFERENCE = "CircularReference"


class TaskError(BaseModel):
    """A single diagnostic for a task.

    Example:
        >>> err = TaskError(
        ...     type=TaskErrorType.SUBTASK_NOT_FOUND,
        ...     name="debug",
        ...     message="Configuration under the path sass -> debug was not found",
        ... )
    """

    model_config = ConfigDict(frozen=True)

    type: TaskErrorType = Field(..., description="Diagnostic kind")
    message: str = Field(default="", description="Human readable description")
    name: str | None = Field(
        default=None,
        description="The offending name (sub task key, module path, adaptor id)",
    )
    path: list[str] = Field(
        default_factory=list,
        description="Task names leading to the problem, outermost first",
    )

    def __str__(self) -> str:
        return f"{self.type.value}: {self.message}"


def subtask_not_found(task_name: str, raw_input: str, key: str) -> TaskError:
    return TaskError(
        type=TaskErrorType.SUBTASK_NOT_FOUND,
        name=key,
        message=(
            f"Configuration under the path {task_name} -> {key} was not found. "
            f"This means '{raw_input}' is not a valid way to run a task."
        ),
    )


def module_not_found(task_name: str) -> TaskError:
    return TaskError(
        type=TaskErrorType.MODULE_NOT_FOUND,
        name=task_name,
        message=f"'{task_name}' is not a declared task and no task module matched it",
    )


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ArbalestError(Exception):
    """Base exception for Arbalest errors."""

    pass


class ModuleLoadError(ArbalestError):
    """A task module could not be found or imported."""

    def __init__(self, reference: str, reason: str = "") -> None:
        self.reference = reference
        self.reason = reason
        message = f"Could not load task module '{reference}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ModuleExportError(ModuleLoadError):
    """A task module was imported but exports nothing runnable."""

    pass


class TaskBuildError(ArbalestError):
    """Raised at run time by items whose callable could not be built."""

    def __init__(self, errors: list[TaskError]) -> None:
        self.errors = errors
        super().__init__("; ".join(str(e) for e in errors) or "Task could not be built")


class CommandFailedError(ArbalestError):
    """An adaptor command exited with a non-zero status."""

    def __init__(self, command: str, return_code: int, stderr: str = "") -> None:
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        super().__init__(f"Command '{command}' exited with code {return_code}")


class TaskFailure(ArbalestError):
    """A leaf failed; carries the originating sequence item.

    Used inside the runner to propagate a failure up a series chain. It
    never escapes a ``ReportStream``.
    """

    def __init__(self, item: Any, error: BaseException) -> None:
        self.item = item
        self.error = error
        super().__init__(f"Task {getattr(item, 'seq_uid', '?')} failed: {error}")


class RunnerConstructionError(ArbalestError):
    """The sequence tree is malformed and cannot be run."""

    pass
