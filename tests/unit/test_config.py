"""Unit tests for settings and run configuration."""

import pytest

from arbalest.core.config import (
    RunConfig,
    Settings,
    clear_settings_cache,
    get_settings,
    merge_config,
)
from arbalest.tasks.trigger import TaskInput, Trigger


class TestSettings:
    """Tests for environment driven settings."""

    def test_defaults(self, mock_settings: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ARBALEST_RUN_MODE", raising=False)

        settings = Settings(_env_file=None)

        assert settings.arbalest_run_mode == "series"
        assert settings.arbalest_exit_on_error is True
        assert settings.arbalest_env_prefix == "ARB"

    def test_environment_override(
        self, mock_settings: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ARBALEST_RUN_MODE", "parallel")
        monkeypatch.setenv("ARBALEST_EXIT_ON_ERROR", "false")

        settings = get_settings()

        assert settings.arbalest_run_mode == "parallel"
        assert settings.arbalest_exit_on_error is False

    def test_cached(self, mock_settings: None) -> None:
        assert get_settings() is get_settings()
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first


class TestRunConfig:
    """Tests for RunConfig and merge_config."""

    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            arbalest_run_mode="parallel",
            arbalest_tasks_dir="build/tasks",
            arbalest_env_prefix="CB",
        )

        config = RunConfig.from_settings(settings, dry_run=True)

        assert config.run_mode == "parallel"
        assert config.tasks_dir == ["build/tasks"]
        assert config.env_prefix == "CB"
        assert config.dry_run is True

    def test_flag_transforms(self) -> None:
        config = merge_config({"p": True, "s": True, "e": True})

        assert config.run_mode == "parallel"
        assert config.strict is True
        assert config.exit_on_error is True

    def test_false_flags_are_ignored(self) -> None:
        base = RunConfig(run_mode="parallel")

        config = merge_config({"p": False}, base=base)

        assert config.run_mode == "parallel"

    def test_overrides_and_unknown_keys(self) -> None:
        base = RunConfig(exit_on_error=True)

        config = merge_config(
            {"exit_on_error": False, "tasks_dir": "scripts", "colour": "blue", "dry_run": None},
            base=base,
        )

        assert config.exit_on_error is False
        assert config.tasks_dir == ["scripts"]
        assert config.dry_run is False
        assert base.exit_on_error is True


class TestTrigger:
    """Tests for TaskInput and Trigger."""

    def test_config_alias_for_options(self) -> None:
        data = TaskInput.from_dict({"config": {"sass": {"input": "a"}}})

        assert data.options == {"sass": {"input": "a"}}

    def test_input_env_is_merged_without_mutating_config(self) -> None:
        config = RunConfig(env={"A": "config"})

        trigger = Trigger(
            input=TaskInput(env={"A": "input", "B": "input"}),
            config=config,
        )

        assert trigger.config.env == {"A": "config", "B": "input"}
        assert config.env == {"A": "config"}
        assert trigger.loader is not None
        assert set(trigger.adaptors) == {"sh", "npm"}

    def test_env_values_are_coerced_to_strings(self) -> None:
        data = TaskInput.from_dict({"env": {"PORT": 8080, "DEBUG": True}})

        assert data.env == {"PORT": "8080", "DEBUG": "True"}

        trigger = Trigger(input=data, config=RunConfig(env={"WORKERS": 4}))

        assert trigger.config.env == {"PORT": "8080", "DEBUG": "True", "WORKERS": "4"}
