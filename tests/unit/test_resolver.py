"""Unit tests for TaskResolver."""

from pathlib import Path

import pytest

from arbalest.tasks.errors import TaskErrorType
from arbalest.tasks.models import TaskRunMode, TaskType
from arbalest.tasks.resolver import (
    TaskResolver,
    describe_task,
    get_simple_task_list,
    get_top_level_tasks,
    resolve_tasks,
)


def noop(options, ctx):
    pass


class TestResolveGroups:
    """Tests for declared groups."""

    def test_series_group(self, make_trigger, scenario_input) -> None:
        """A declared list becomes a series group of its children."""
        resolved = resolve_tasks(["build-all"], make_trigger(scenario_input))

        assert len(resolved.all) == 1
        assert resolved.invalid == []
        build_all = resolved.valid[0]
        assert build_all.type == TaskType.GROUP
        assert build_all.run_mode == TaskRunMode.SERIES
        assert [child.task_name for child in build_all.tasks] == ["js", "css"]

    def test_parallel_modifier(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["build-all@p"], make_trigger(scenario_input))

        build_all = resolved.valid[0]
        assert build_all.run_mode == TaskRunMode.PARALLEL
        # Children keep their own run mode
        assert all(child.run_mode == TaskRunMode.SERIES for child in build_all.tasks)

    def test_single_string_declaration(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["css"], make_trigger(scenario_input))

        css = resolved.valid[0]
        assert css.type == TaskType.GROUP
        assert len(css.tasks) == 1
        assert css.tasks[0].task_name == "moduleB"
        assert css.tasks[0].sub_tasks == ["first", "second"]
        assert css.tasks[0].parents == ["css"]

    def test_parents_are_recorded(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["build-all"], make_trigger(scenario_input))

        module_a = resolved.valid[0].tasks[0].tasks[0]
        assert module_a.parents == ["build-all", "js"]

    def test_inline_callables_get_internal_names(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"js": [noop, "@sh echo done"]}})

        js = resolve_tasks(["js"], trigger).valid[0]

        assert js.tasks[0].task_name == "js_internal_fn_0"
        assert js.tasks[0].type == TaskType.INLINE_FUNCTION
        assert js.tasks[1].type == TaskType.ADAPTOR
        assert [t.task_name for t in get_top_level_tasks(js.tasks)] == ["@sh echo done"]

    def test_duplicates_are_kept(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["js", "js"], make_trigger(scenario_input))

        assert len(resolved.valid) == 2

    def test_sub_tasks_on_a_group_are_invalid(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["build-all:first"], make_trigger(scenario_input))

        assert len(resolved.invalid) == 1
        errors = resolved.invalid[0].all_errors()
        assert errors[0].type == TaskErrorType.INVALID_TASK_FORMAT


class TestResolveDiagnostics:
    """Invalid tasks keep their place and carry diagnostics."""

    def test_unknown_module(self, make_trigger) -> None:
        resolved = resolve_tasks(["nope"], make_trigger({}))

        assert resolved.valid == []
        task = resolved.invalid[0]
        assert task.errors[0].type == TaskErrorType.MODULE_NOT_FOUND
        assert task.errors[0].name == "nope"

    def test_invalid_child_invalidates_parent(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"all": ["nope", "@sh true"]}})

        resolved = resolve_tasks(["all"], trigger)

        assert resolved.valid == []
        assert len(resolved.all) == 1
        errors = resolved.invalid[0].all_errors()
        assert [e.type for e in errors] == [TaskErrorType.MODULE_NOT_FOUND]
        assert errors[0].path == ["all", "nope"]

    def test_missing_sub_task(self, make_trigger, scenario_input) -> None:
        resolved = resolve_tasks(["moduleA:third"], make_trigger(scenario_input))

        error = resolved.invalid[0].errors[0]
        assert error.type == TaskErrorType.SUBTASK_NOT_FOUND
        assert error.name == "third"

    def test_wildcard_without_options(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"lint": noop}})

        resolved = resolve_tasks(["lint:*"], trigger)

        assert resolved.invalid[0].errors[0].type == (
            TaskErrorType.SUBTASK_WILDCARD_NOT_AVAILABLE
        )

    def test_named_sub_tasks_without_options(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"lint": noop}})

        resolved = resolve_tasks(["lint:strict"], trigger)

        assert resolved.invalid[0].errors[0].type == TaskErrorType.SUBTASKS_NOT_IN_CONFIG

    def test_unknown_adaptor(self, make_trigger) -> None:
        resolved = resolve_tasks(["@docker run app"], make_trigger({}))

        assert resolved.invalid[0].errors[0].type == TaskErrorType.ADAPTOR_NOT_FOUND

    def test_circular_reference(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"a": ["b"], "b": ["a"]}})

        resolved = resolve_tasks(["a"], trigger)

        errors = resolved.invalid[0].all_errors()
        assert errors[0].type == TaskErrorType.CIRCULAR_REFERENCE
        assert errors[0].path == ["a", "b", "a"]

    def test_empty_name(self, make_trigger) -> None:
        resolved = resolve_tasks([""], make_trigger({}))

        assert resolved.invalid[0].errors[0].type == TaskErrorType.INVALID_TASK_FORMAT

    def test_unsupported_declaration(self, make_trigger) -> None:
        resolved = resolve_tasks(["odd"], make_trigger({"tasks": {"odd": 42}}))

        assert resolved.invalid[0].errors[0].type == TaskErrorType.INVALID_TASK_FORMAT


class TestObjectLiterals:
    """Tests for object-literal declarations."""

    def test_adaptor_input_with_env(self, make_trigger) -> None:
        trigger = make_trigger(
            {"tasks": {"css": {"input": "@sh sass core.scss", "env": {"SASS_PATH": "scss"}}}}
        )

        css = resolve_tasks(["css"], trigger).valid[0]

        assert css.type == TaskType.ADAPTOR
        assert css.task_name == "css"
        assert css.command == "sass core.scss"
        assert css.options == {"env": {"SASS_PATH": "scss"}}

    def test_callable_tasks_with_options(self, make_trigger) -> None:
        trigger = make_trigger(
            {"tasks": {"js": {"tasks": noop, "options": {"minify": True}, "description": "JS"}}}
        )

        js = resolve_tasks(["js"], trigger).valid[0]

        assert js.type == TaskType.INLINE_FUNCTION
        assert js.inline_functions == [noop]
        assert js.options == {"minify": True}
        assert describe_task(js) == "JS"

    def test_list_of_callables(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"js": {"tasks": [noop, noop]}}})

        js = resolve_tasks(["js"], trigger).valid[0]

        assert js.type == TaskType.INLINE_FUNCTION
        assert len(js.inline_functions) == 2

    def test_names_with_run_mode(self, make_trigger) -> None:
        trigger = make_trigger(
            {"tasks": {"all": {"tasks": ["@sh true", "@sh true"], "run_mode": "parallel"}}}
        )

        group = resolve_tasks(["all"], trigger).valid[0]

        assert group.type == TaskType.GROUP
        assert group.run_mode == TaskRunMode.PARALLEL

    def test_needs_tasks_or_input(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"bad": {"options": {}}}})

        resolved = resolve_tasks(["bad"], trigger)

        assert resolved.invalid[0].errors[0].type == TaskErrorType.INVALID_TASK_FORMAT

    def test_skip_cascades(self, make_trigger) -> None:
        trigger = make_trigger({"tasks": {"all": {"tasks": ["@sh true"], "skip": True}}})

        group = resolve_tasks(["all"], trigger).valid[0]

        assert group.skipped
        assert group.tasks[0].skipped


class TestExternalModules:
    """Tests for task modules found on disk."""

    def test_module_in_tasks_dir(self, make_trigger, tasks_dir: Path) -> None:
        resolved = resolve_tasks(["clean"], make_trigger({}))

        task = resolved.valid[0]
        assert task.type == TaskType.EXTERNAL_MODULE
        assert task.external_tasks == [str((tasks_dir / "clean.py").resolve())]

    def test_skip_flag(self, make_trigger, tasks_dir: Path) -> None:
        task = resolve_tasks(["clean --skip"], make_trigger({})).valid[0]

        assert task.skipped

    def test_listing(self, make_trigger, scenario_input) -> None:
        resolved = TaskResolver(make_trigger(scenario_input)).resolve(["build-all@p", "js"])

        rows = get_simple_task_list(resolved.valid)

        assert rows[0] == ("build-all", "js | css")
        assert rows[1] == ("js", "moduleA")


@pytest.mark.parametrize("name", ["@sh echo hi", "@npm test"])
def test_builtin_adaptors_resolve(make_trigger, name: str) -> None:
    resolved = resolve_tasks([name], make_trigger({}))

    assert resolved.valid[0].type == TaskType.ADAPTOR
