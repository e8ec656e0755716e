"""
Adaptors - built-in task providers for reserved ``@<id>`` syntax.

``@sh <command>`` runs a command through the shell. ``@npm <command>`` does
the same with ``node_modules/.bin`` on the ``PATH``. Each command runs as an
asyncio subprocess in the configured working directory; a non-zero exit
status fails the task.
"""

import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from arbalest.tasks.errors import CommandFailedError
from arbalest.tasks.models import RunContext, Task, TaskFactory
from arbalest.tasks.options import options_to_env

if TYPE_CHECKING:
    from arbalest.tasks.trigger import Trigger

STDERR_TAIL_LINES = 20


@dataclass
class CommandResult:
    """Outcome of an adaptor command."""

    command: str
    return_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    def is_success(self) -> bool:
        return self.return_code == 0


async def run_shell_command(
    command: str,
    cwd: str | Path,
    env: dict[str, str],
) -> CommandResult:
    """Run ``command`` through the shell and wait for it to exit.

    Raises:
        CommandFailedError: If the command exits with a non-zero status.
    """
    logger.info(f"+ {command}")
    started = time.monotonic()

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd),
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_bytes, stderr_bytes = await process.communicate()

    result = CommandResult(
        command=command,
        return_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout_bytes.decode(errors="replace"),
        stderr=stderr_bytes.decode(errors="replace"),
        duration_seconds=time.monotonic() - started,
    )

    for line in result.stdout.splitlines():
        logger.info(f"  {line}")

    if not result.is_success():
        tail = "\n".join(result.stderr.splitlines()[-STDERR_TAIL_LINES:])
        logger.error(f"Command '{command}' exited with code {result.return_code}")
        raise CommandFailedError(command, result.return_code, tail)

    logger.debug(f"Command '{command}' finished in {result.duration_seconds:.2f}s")
    return result


# =============================================================================
# ADAPTORS
# =============================================================================


class Adaptor(ABC):
    """Provides a task callable for an adaptor-prefixed task name."""

    name: str = ""

    @abstractmethod
    def create(self, task: Task, trigger: "Trigger") -> TaskFactory:
        """Build the callable that runs ``task``."""
        pass


class ShellAdaptor(Adaptor):
    """
    Run a shell command.

    The command sees the process environment, the run's configured ``env``,
    every global option exported as ``<PREFIX>_OPTIONS_<PATH>`` and finally
    the task's own ``env`` option.

    Example:
        >>> adaptor = ShellAdaptor()
        >>> fn = adaptor.create(task, trigger)   # task.command == "sleep 1"
        >>> await fn({}, {})
    """

    name = "sh"

    def build_env(self, task: Task, trigger: "Trigger") -> dict[str, str]:
        env = os.environ.copy()
        env.update({k: str(v) for k, v in trigger.config.env.items()})
        env.update(options_to_env(trigger.input.options, trigger.config.env_prefix))
        return env

    def create(self, task: Task, trigger: "Trigger") -> TaskFactory:
        command = task.command or ""
        base_env = self.build_env(task, trigger)
        cwd = trigger.config.cwd

        async def run_command(options: dict[str, Any], ctx: RunContext) -> CommandResult:
            env = dict(base_env)
            local_env = options.get("env") or {}
            env.update({str(k): str(v) for k, v in local_env.items()})
            return await run_shell_command(command, cwd, env)

        run_command.__name__ = task.task_name
        return run_command


class NpmAdaptor(ShellAdaptor):
    """Run a command with locally installed package binaries on the PATH."""

    name = "npm"

    def build_env(self, task: Task, trigger: "Trigger") -> dict[str, str]:
        env = super().build_env(task, trigger)
        bin_dir = Path(trigger.config.cwd) / "node_modules" / ".bin"
        env["PATH"] = os.pathsep.join(filter(None, [str(bin_dir), env.get("PATH", "")]))
        return env


def default_adaptors() -> dict[str, Adaptor]:
    """Fresh registry with the built-in adaptors."""
    return {adaptor.name: adaptor for adaptor in (ShellAdaptor(), NpmAdaptor())}
