"""Task resolver - turns requested names into a validated Task tree.

Every requested name produces exactly one top-level Task, even when it
cannot be resolved: unresolvable nodes carry diagnostics instead of being
dropped, so reporting can show the whole requested tree.
"""

from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from arbalest.tasks.errors import TaskError, TaskErrorType, module_not_found, subtask_not_found
from arbalest.tasks.models import ResolvedTasks, Task, TaskRunMode, TaskType
from arbalest.tasks.options import MISSING, get_path, lookup_top_level_options
from arbalest.tasks.parser import WILDCARD, TaskDescriptor, parse_task_name
from arbalest.tasks.trigger import Trigger
from arbalest.tasks.utils import create_internal_name, is_internal


class TaskResolver:
    """
    Resolve requested task names against the declared input.

    Names are classified by syntax and by what the input declares:

    - ``@sh ...`` / ``@npm ...`` become adaptor tasks
    - names declared in ``input.tasks`` become groups, inline functions or
      object-literal tasks
    - anything else is looked up as a task module

    Example:
        >>> resolver = TaskResolver(trigger)
        >>> resolved = resolver.resolve(["build-all@p", "lint"])
        >>> [t.task_name for t in resolved.valid]
        ['build-all', 'lint']
    """

    def __init__(self, trigger: Trigger) -> None:
        self.trigger = trigger
        self._declared: dict[str, Any] = trigger.input.tasks
        self._global_options: dict[str, Any] = trigger.input.options

    def resolve(self, names: Sequence[str]) -> ResolvedTasks:
        """
        Resolve every name, in order. Duplicates are kept.

        Args:
            names: Requested task names.

        Returns:
            ResolvedTasks with all tasks plus the valid/invalid split.
        """
        logger.info(f"Resolving {len(names)} requested task(s)")

        all_tasks = [self.create_task(name, parents=[]) for name in names]
        valid = [task for task in all_tasks if task.is_valid()]
        invalid = [task for task in all_tasks if not task.is_valid()]

        if invalid:
            logger.warning(
                f"{len(invalid)} task(s) could not be resolved: "
                f"{', '.join(t.raw_input for t in invalid)}"
            )

        logger.debug(f"Resolved {len(valid)} valid, {len(invalid)} invalid")
        return ResolvedTasks(all=all_tasks, valid=valid, invalid=invalid)

    # =========================================================================
    # TASK CREATION
    # =========================================================================

    def create_task(self, raw_input: str, parents: list[str]) -> Task:
        """Create the Task (and subtree) for one requested name."""
        descriptor = parse_task_name(raw_input)

        if not descriptor.task_name:
            return self._invalid(
                descriptor,
                parents,
                TaskError(
                    type=TaskErrorType.INVALID_TASK_FORMAT,
                    name=raw_input,
                    message=f"'{raw_input}' is not a valid task name",
                ),
            )

        if descriptor.is_adaptor:
            return self._create_adaptor_task(descriptor, parents)

        if descriptor.task_name in parents:
            return self._invalid(
                descriptor,
                parents,
                TaskError(
                    type=TaskErrorType.CIRCULAR_REFERENCE,
                    name=descriptor.task_name,
                    message=(
                        "Circular reference: "
                        + " -> ".join([*parents, descriptor.task_name])
                    ),
                    path=[*parents, descriptor.task_name],
                ),
            )

        if descriptor.task_name in self._declared:
            task = self._create_from_declaration(
                descriptor, self._declared[descriptor.task_name], parents
            )
        else:
            task = self._create_external_task(descriptor, parents)

        if task.flags.get("skip"):
            self._mark_skipped(task)

        return task

    def _base_task(self, descriptor: TaskDescriptor, parents: list[str], **fields: Any) -> Task:
        values: dict[str, Any] = {
            "raw_input": descriptor.raw_input,
            "task_name": descriptor.task_name,
            "base_task_name": descriptor.base_task_name,
            "sub_tasks": list(descriptor.sub_tasks),
            "run_mode": descriptor.run_mode or TaskRunMode.SERIES,
            "query": dict(descriptor.query),
            "flags": dict(descriptor.flags),
            "parents": list(parents),
        }
        values.update(fields)
        return Task(**values)

    def _invalid(self, descriptor: TaskDescriptor, parents: list[str], error: TaskError) -> Task:
        logger.debug(f"Invalid task '{descriptor.raw_input}': {error}")
        return self._base_task(descriptor, parents, errors=[error])

    def _create_adaptor_task(
        self,
        descriptor: TaskDescriptor,
        parents: list[str],
        options: dict[str, Any] | None = None,
    ) -> Task:
        task = self._base_task(
            descriptor,
            parents,
            type=TaskType.ADAPTOR,
            adaptor=descriptor.adaptor,
            command=descriptor.command,
            options=options,
        )
        if descriptor.adaptor not in self.trigger.adaptors:
            task.errors.append(
                TaskError(
                    type=TaskErrorType.ADAPTOR_NOT_FOUND,
                    name=descriptor.adaptor,
                    message=(
                        f"'@{descriptor.adaptor}' is not a known adaptor "
                        f"(available: {', '.join(sorted(self.trigger.adaptors))})"
                    ),
                    path=[*parents, descriptor.task_name],
                )
            )
        return task

    def _create_external_task(self, descriptor: TaskDescriptor, parents: list[str]) -> Task:
        reference = self.trigger.loader.find(descriptor.task_name)
        if reference is None:
            error = module_not_found(descriptor.task_name)
            return self._invalid(
                descriptor,
                parents,
                error.model_copy(update={"path": [*parents, descriptor.task_name]}),
            )

        task = self._base_task(
            descriptor,
            parents,
            type=TaskType.EXTERNAL_MODULE,
            external_tasks=[reference],
        )
        self._validate_sub_tasks(task)
        return task

    def _create_inline_task(
        self,
        descriptor: TaskDescriptor,
        parents: list[str],
        functions: list[Callable[..., Any]],
        options: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> Task:
        task = self._base_task(
            descriptor,
            parents,
            type=TaskType.INLINE_FUNCTION,
            inline_functions=functions,
            options=options,
            description=description,
        )
        self._validate_sub_tasks(task)
        return task

    def _create_group(
        self,
        descriptor: TaskDescriptor,
        parents: list[str],
        children: list[Any],
        description: str | None = None,
    ) -> Task:
        child_parents = [*parents, descriptor.task_name]
        group = self._base_task(
            descriptor,
            parents,
            type=TaskType.GROUP,
            tasks=[
                self._create_child(child, index, descriptor.task_name, child_parents)
                for index, child in enumerate(children)
            ],
            description=description,
        )
        if group.sub_tasks:
            group.errors.append(
                TaskError(
                    type=TaskErrorType.INVALID_TASK_FORMAT,
                    name=":".join(group.sub_tasks),
                    message=(
                        f"'{group.raw_input}' selects sub tasks, but '{group.task_name}' "
                        "is a group of tasks"
                    ),
                    path=child_parents,
                )
            )
        return group

    def _create_child(self, child: Any, index: int, parent: str, parents: list[str]) -> Task:
        """One entry of a declared task list."""
        if isinstance(child, str):
            return self.create_task(child, parents)

        internal_name = create_internal_name(parent, index)
        descriptor = TaskDescriptor(
            raw_input=internal_name,
            task_name=internal_name,
            base_task_name=internal_name,
        )
        return self._create_from_declaration(descriptor, child, parents)

    # =========================================================================
    # DECLARATIONS
    # =========================================================================

    def _create_from_declaration(
        self,
        descriptor: TaskDescriptor,
        declared: Any,
        parents: list[str],
    ) -> Task:
        """Create a task from its entry in ``input.tasks``."""
        if isinstance(declared, str):
            return self._create_group(descriptor, parents, [declared])

        if isinstance(declared, (list, tuple)):
            return self._create_group(descriptor, parents, list(declared))

        if callable(declared):
            return self._create_inline_task(descriptor, parents, [declared])

        if isinstance(declared, dict):
            return self._create_object_literal_task(descriptor, declared, parents)

        return self._invalid(
            descriptor,
            parents,
            TaskError(
                type=TaskErrorType.INVALID_TASK_FORMAT,
                name=descriptor.task_name,
                message=f"Unsupported declaration for '{descriptor.task_name}': {declared!r}",
                path=[*parents, descriptor.task_name],
            ),
        )

    def _create_object_literal_task(
        self,
        descriptor: TaskDescriptor,
        declared: dict[str, Any],
        parents: list[str],
    ) -> Task:
        """
        Handle object-literal declarations.

        eg:
            js:     {tasks: build_js, options: {minify: true}}
            css:    {input: "@sh sass core.scss", env: {SASS_PATH: "scss"}}
            deploy: {tasks: ["build", "@sh rsync ..."], description: "Ship it"}
        """
        description = declared.get("description")
        options = declared.get("options")
        mode = declared.get("run_mode") or declared.get("runMode")
        if mode and descriptor.run_mode is None:
            descriptor.run_mode = TaskRunMode(mode)

        if isinstance(declared.get("input"), str):
            command_input = declared["input"]
            inner = parse_task_name(command_input)
            if inner.is_adaptor:
                adaptor_options = dict(options or {})
                if declared.get("env"):
                    adaptor_options["env"] = {**adaptor_options.get("env", {}), **declared["env"]}
                task = self._create_adaptor_task(
                    TaskDescriptor(
                        raw_input=descriptor.raw_input,
                        task_name=descriptor.task_name,
                        base_task_name=inner.base_task_name,
                        sub_tasks=descriptor.sub_tasks,
                        run_mode=descriptor.run_mode,
                        query=descriptor.query,
                        flags=descriptor.flags,
                        adaptor=inner.adaptor,
                        command=inner.command,
                    ),
                    parents,
                    options=adaptor_options,
                )
                task.description = description
            else:
                task = self._create_group(descriptor, parents, [command_input], description)

        elif "tasks" in declared:
            tasks = declared["tasks"]
            if callable(tasks):
                task = self._create_inline_task(descriptor, parents, [tasks], options, description)
            elif isinstance(tasks, (list, tuple)) and tasks and all(callable(t) for t in tasks):
                task = self._create_inline_task(
                    descriptor, parents, list(tasks), options, description
                )
            elif isinstance(tasks, (list, tuple, str)):
                children = [tasks] if isinstance(tasks, str) else list(tasks)
                task = self._create_group(descriptor, parents, children, description)
            else:
                return self._invalid(
                    descriptor,
                    parents,
                    TaskError(
                        type=TaskErrorType.INVALID_TASK_FORMAT,
                        name=descriptor.task_name,
                        message=f"'tasks' of '{descriptor.task_name}' must be callables or names",
                        path=[*parents, descriptor.task_name],
                    ),
                )
        else:
            return self._invalid(
                descriptor,
                parents,
                TaskError(
                    type=TaskErrorType.INVALID_TASK_FORMAT,
                    name=descriptor.task_name,
                    message=(
                        f"Object declaration for '{descriptor.task_name}' needs "
                        "either 'tasks' or 'input'"
                    ),
                    path=[*parents, descriptor.task_name],
                ),
            )

        if declared.get("skip"):
            self._mark_skipped(task)
        return task

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _validate_sub_tasks(self, task: Task) -> None:
        """Check requested sub tasks against the task's options object."""
        if not task.sub_tasks:
            return

        top_level = lookup_top_level_options(task.task_name, task.options, self._global_options)
        path = [*task.parents, task.task_name]

        if not top_level:
            if task.sub_tasks[0] == WILDCARD:
                task.errors.append(
                    TaskError(
                        type=TaskErrorType.SUBTASK_WILDCARD_NOT_AVAILABLE,
                        name=WILDCARD,
                        message=(
                            f"'{task.raw_input}' runs every sub task, but no options "
                            f"were found for '{task.task_name}'"
                        ),
                        path=path,
                    )
                )
            else:
                task.errors.append(
                    TaskError(
                        type=TaskErrorType.SUBTASKS_NOT_IN_CONFIG,
                        name=":".join(task.sub_tasks),
                        message=(
                            f"'{task.raw_input}' selects sub tasks, but no options "
                            f"were found for '{task.task_name}'"
                        ),
                        path=path,
                    )
                )
            return

        if task.sub_tasks[0] == WILDCARD:
            return

        for key in task.sub_tasks:
            if get_path(top_level, key) is MISSING:
                error = subtask_not_found(task.task_name, task.raw_input, key)
                task.errors.append(error.model_copy(update={"path": path}))

    @staticmethod
    def _mark_skipped(task: Task) -> None:
        for node in task.walk():
            node.skipped = True


def resolve_tasks(names: Sequence[str], trigger: Trigger) -> ResolvedTasks:
    """Resolve ``names`` against ``trigger.input``."""
    return TaskResolver(trigger).resolve(names)


def get_top_level_tasks(tasks: list[Task]) -> list[Task]:
    """Tasks a user can select by name (synthesized names excluded)."""
    return [task for task in tasks if not is_internal(task.base_task_name)]


def describe_task(task: Task) -> str:
    """One-line description used by task listings."""
    if task.description:
        return task.description
    if task.type == TaskType.ADAPTOR:
        return f"@{task.adaptor} {task.command}"
    if task.tasks:
        names = [child.task_name for child in task.tasks if not is_internal(child.task_name)]
        inline = len(task.tasks) - len(names)
        parts = names + ([f"{inline} inline function(s)"] if inline else [])
        joiner = " | " if task.run_mode == TaskRunMode.PARALLEL else " -> "
        return joiner.join(parts)
    if task.type == TaskType.INLINE_FUNCTION:
        return "inline function"
    return ", ".join(task.external_tasks)


def get_simple_task_list(tasks: list[Task]) -> list[tuple[str, str]]:
    """Two-column (name, description) rows for the task listing."""
    return [(task.base_task_name, describe_task(task)) for task in get_top_level_tasks(tasks)]
