"""Core module - configuration and the run orchestrator.

The orchestrator is exported from the top-level package; importing it here
would make ``arbalest.tasks`` and ``arbalest.core`` import each other.
"""

from arbalest.core.config import RunConfig, Settings, get_settings, merge_config

__all__ = [
    "RunConfig",
    "Settings",
    "get_settings",
    "merge_config",
]
