"""Split a requested task name into its parts.

Supported syntax::

    build-all@p                 parallel children
    sass:site:debug             sub task selection
    sass:*                      every sub task
    sass?input=core.scss        query options
    sass --production           flag options
    @sh rm -rf dist             adaptor command
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

from loguru import logger

from arbalest.tasks.models import TaskRunMode

ADAPTOR_SIGIL = "@"
WILDCARD = "*"

_ADAPTOR_RE = re.compile(r"^@(\w[\w-]*)\s*(.*)$", re.DOTALL)
_RUN_MODE_RE = re.compile(r"^(.+)@(p|par|parallel|s|series)$")
_RUN_MODES = {
    "p": TaskRunMode.PARALLEL,
    "par": TaskRunMode.PARALLEL,
    "parallel": TaskRunMode.PARALLEL,
    "s": TaskRunMode.SERIES,
    "series": TaskRunMode.SERIES,
}


@dataclass
class TaskDescriptor:
    """Structured form of a requested name."""

    raw_input: str
    task_name: str
    base_task_name: str
    sub_tasks: list[str] = field(default_factory=list)
    run_mode: TaskRunMode | None = None
    query: dict[str, Any] = field(default_factory=dict)
    flags: dict[str, Any] = field(default_factory=dict)
    adaptor: str | None = None
    command: str | None = None

    @property
    def is_adaptor(self) -> bool:
        return self.adaptor is not None


def is_adaptor_name(name: str) -> bool:
    return name.strip().startswith(ADAPTOR_SIGIL)


def parse_flags(tokens: list[str]) -> dict[str, Any]:
    """``["--prod", "--level=2"]`` -> ``{"prod": True, "level": "2"}``."""
    flags: dict[str, Any] = {}
    for token in tokens:
        if not token.startswith("--") or len(token) == 2:
            logger.debug(f"Ignoring positional token '{token}' in task name")
            continue
        key, sep, value = token[2:].partition("=")
        flags[key] = value if sep else True
    return flags


def parse_task_name(raw_input: str) -> TaskDescriptor:
    """Parse one requested task name.

    Example:
        >>> d = parse_task_name("sass:site@p?input=a.scss --prod")
        >>> d.task_name, d.sub_tasks, d.run_mode, d.query, d.flags
        ('sass', ['site'], <TaskRunMode.PARALLEL: 'parallel'>, {'input': 'a.scss'}, {'prod': True})
    """
    text = raw_input.strip()

    adaptor_match = _ADAPTOR_RE.match(text)
    if adaptor_match:
        command = adaptor_match.group(2).strip()
        return TaskDescriptor(
            raw_input=raw_input,
            task_name=text,
            base_task_name=command,
            adaptor=adaptor_match.group(1),
            command=command,
        )

    try:
        tokens = shlex.split(text)
    except ValueError:
        tokens = text.split()

    if not tokens:
        return TaskDescriptor(raw_input=raw_input, task_name="", base_task_name="")

    head, flag_tokens = tokens[0], tokens[1:]
    head, _, query_string = head.partition("?")
    query = dict(parse_qsl(query_string, keep_blank_values=True)) if query_string else {}

    run_mode = None
    mode_match = _RUN_MODE_RE.match(head)
    if mode_match:
        head = mode_match.group(1)
        run_mode = _RUN_MODES[mode_match.group(2)]

    name, *sub_tasks = head.split(":")

    return TaskDescriptor(
        raw_input=raw_input,
        task_name=name,
        base_task_name=name,
        sub_tasks=[s for s in sub_tasks if s],
        run_mode=run_mode,
        query=query,
        flags=parse_flags(flag_tokens),
    )
