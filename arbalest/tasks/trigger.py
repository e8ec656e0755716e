"""Everything a resolve/build/run pass needs to know about one invocation."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from arbalest.core.config import RunConfig, stringify_env
from arbalest.tasks.adaptors import Adaptor, default_adaptors
from arbalest.tasks.loader import ModuleLoader


class TaskInput(BaseModel):
    """User declarations: tasks, global options and environment.

    ``tasks`` maps a task name to a list of children, a single child
    reference, a callable or an object literal. ``options`` maps task names
    (or module references) to their options objects.

    Example:
        >>> TaskInput(
        ...     tasks={"build-all": ["js", "css"], "css": "@sh sass core.scss"},
        ...     options={"js": {"minify": True}},
        ... )
    """

    model_config = ConfigDict(frozen=False, arbitrary_types_allowed=True)

    tasks: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: Any) -> Any:
        return stringify_env(v)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TaskInput":
        """Build from a loosely shaped mapping; ``config`` is accepted as an alias of ``options``."""
        data = data or {}
        options = data.get("options")
        if options is None:
            options = data.get("config") or {}
        return cls(
            tasks=data.get("tasks") or {},
            options=options,
            env=data.get("env") or {},
        )


@dataclass
class Trigger:
    """Input, configuration and collaborators for one invocation."""

    input: TaskInput
    config: RunConfig = field(default_factory=RunConfig)
    loader: ModuleLoader | None = None
    adaptors: dict[str, Adaptor] = field(default_factory=default_adaptors)
    shared: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.loader is None:
            self.loader = ModuleLoader(cwd=self.config.cwd, tasks_dirs=self.config.tasks_dir)
        if self.input.env:
            self.config = self.config.model_copy(
                update={"env": {**self.input.env, **self.config.env}}
            )
