"""Sequence builder - flattens a Task tree into executable SequenceItems.

Groups become series or parallel group items; leaves are bound to their
callable and to fully merged options. Sub task selection fans a leaf out
into one item per selected options key, and a module exporting a ``tasks``
list fans out again into one item per callable.
"""

from collections.abc import Sequence
from typing import Any

from loguru import logger

from arbalest.tasks.errors import (
    ModuleExportError,
    ModuleLoadError,
    TaskBuildError,
    TaskError,
    TaskErrorType,
    subtask_not_found,
)
from arbalest.tasks.models import (
    SequenceItem,
    Task,
    TaskFactory,
    TaskType,
    create_sequence_group,
    create_sequence_task_item,
    next_seq_uid,
)
from arbalest.tasks.options import (
    MISSING,
    deep_merge,
    get_path,
    lookup_top_level_options,
    merge_invocation_options,
)
from arbalest.tasks.parser import WILDCARD
from arbalest.tasks.trigger import Trigger
from arbalest.tasks.utils import get_function_name


class SequenceBuilder:
    """
    Build the executable sequence for a resolved Task tree.

    Build problems never abort the pass: the affected item is still emitted,
    with the diagnostic attached to it and to its Task, and with a factory
    that fails when run.

    Example:
        >>> builder = SequenceBuilder(trigger)
        >>> sequence = builder.flatten(resolved.valid)
        >>> [item.type for item in sequence]
        [<SequenceItemType.PARALLEL_GROUP: 'ParallelGroup'>]
    """

    def __init__(self, trigger: Trigger) -> None:
        self.trigger = trigger

    def flatten(self, tasks: Sequence[Task]) -> list[SequenceItem]:
        """Flatten ``tasks`` in order, pre-order uids."""
        items: list[SequenceItem] = []
        for task in tasks:
            items.extend(self._flatten_task(task))
        return items

    def _flatten_task(self, task: Task) -> list[SequenceItem]:
        """
        If the current task has child tasks, build a group for it; a task
        with children never runs a callable itself.
        """
        if task.tasks:
            seq_uid = next_seq_uid()
            return [
                create_sequence_group(
                    run_mode=task.run_mode,
                    task_name=task.task_name,
                    seq_uid=seq_uid,
                    items=self.flatten(task.tasks),
                    skipped=task.skipped,
                )
            ]

        if task.type == TaskType.ADAPTOR:
            return self._from_adaptor(task)

        local_options = lookup_top_level_options(
            task.task_name, task.options, self.trigger.input.options
        )

        try:
            imported = self._load_callable(task)
        except ModuleLoadError as e:
            error = TaskError(
                type=TaskErrorType.INVALID_MODULE_EXPORT
                if isinstance(e, ModuleExportError)
                else TaskErrorType.MODULE_NOT_FOUND,
                name=e.reference,
                message=str(e),
                path=[*task.parents, task.task_name],
            )
            logger.error(f"Could not build '{task.raw_input}': {e}")
            return [self._failed_item(task, [error])]

        return self._from_function(task, imported, local_options)

    # =========================================================================
    # LEAVES
    # =========================================================================

    def _from_adaptor(self, task: Task) -> list[SequenceItem]:
        adaptor = self.trigger.adaptors.get(task.adaptor or "")
        if adaptor is None:
            error = TaskError(
                type=TaskErrorType.ADAPTOR_NOT_FOUND,
                name=task.adaptor,
                message=f"'@{task.adaptor}' is not a known adaptor",
                path=[*task.parents, task.task_name],
            )
            return [self._failed_item(task, [error])]

        return self._items_with_options(task, adaptor.create(task, self.trigger), {})

    def _load_callable(self, task: Task) -> TaskFactory | list[TaskFactory]:
        if task.type == TaskType.INLINE_FUNCTION:
            if len(task.inline_functions) == 1:
                return task.inline_functions[0]
            return list(task.inline_functions)

        if not task.external_tasks:
            raise ModuleLoadError(task.task_name, "no module reference was resolved")
        return self.trigger.loader.load_export(task.external_tasks[0])

    def _from_function(
        self,
        task: Task,
        imported: TaskFactory | list[TaskFactory],
        local_options: dict[str, Any],
    ) -> list[SequenceItem]:
        """
        Create the items for a module or inline function leaf.

        Without sub tasks a single set of items runs with the top-level
        options:

            $ arbalest run sass
            options:
              sass: {input: core.scss}
            -> sass runs with {input: core.scss}

        With sub tasks, every selected key gets its own items, running with
        the options object found under that key. ``*`` selects every key:

            $ arbalest run sass:*
            options:
              sass:
                site:  {input: core.scss}
                debug: {input: debug.scss}
            -> sass:site and sass:debug
        """
        if not task.sub_tasks:
            return self._items_with_options(task, imported, local_options)

        if task.sub_tasks[0] == WILDCARD:
            lookup_keys = list(local_options.keys())
        else:
            lookup_keys = list(task.sub_tasks)

        items: list[SequenceItem] = []
        for option_key in lookup_keys:
            current = get_path(local_options, option_key)
            if current is MISSING:
                error = subtask_not_found(task.task_name, task.raw_input, option_key)
                error = error.model_copy(update={"path": [*task.parents, task.task_name]})
                if error not in task.errors:
                    task.errors.append(error)
                failed = self._failed_item(task, [error])
                failed.sub_task_name = option_key
                items.append(failed)
                continue

            sub_options = current if isinstance(current, dict) else {"value": current}
            for item in self._items_with_options(
                task, imported, sub_options, include_task_options=False
            ):
                item.sub_task_name = option_key
                items.append(item)
        return items

    def _items_with_options(
        self,
        task: Task,
        imported: TaskFactory | list[TaskFactory],
        options: dict[str, Any],
        include_task_options: bool = True,
    ) -> list[SequenceItem]:
        """
        Merge options with the task's own options, query and flags, then
        create one item per callable.

        Sub task items skip the task's inline options: those are the object
        the sub task options were selected from.

            $ arbalest run "sass?input=css/core.css --production"
            -> {input: css/core.css, production: True}
        """
        task_options = task.options if include_task_options else None
        merged = merge_invocation_options(options, task_options, task.query, task.flags)

        if isinstance(imported, list):
            return [
                create_sequence_task_item(
                    fn_name=get_function_name(fn, index + 1),
                    factory=fn,
                    task=task,
                    options=deep_merge(merged),
                )
                for index, fn in enumerate(imported)
            ]

        return [
            create_sequence_task_item(
                fn_name=get_function_name(imported, 0),
                factory=imported,
                task=task,
                options=merged,
            )
        ]

    def _failed_item(self, task: Task, errors: list[TaskError]) -> SequenceItem:
        """An item that reports ``errors`` when run."""
        for error in errors:
            if error not in task.errors:
                task.errors.append(error)

        def build_failed(options: dict[str, Any], ctx: dict[str, Any]) -> None:
            raise TaskBuildError(errors)

        return create_sequence_task_item(
            fn_name=task.task_name,
            factory=build_failed,
            task=task,
            options={},
            errors=errors,
        )


def create_flattened_sequence(tasks: Sequence[Task], trigger: Trigger) -> list[SequenceItem]:
    """Flatten a resolved Task tree into SequenceItems."""
    return SequenceBuilder(trigger).flatten(tasks)
