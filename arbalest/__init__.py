"""
Arbalest - task runner and build orchestrator.

Declare tasks, select some of them by name and run them as a tree of
series and parallel groups with merged per-task options.
"""

__version__ = "0.1.0"
__author__ = "Arbalest Team"

from arbalest.core.orchestrator import Arbalest

__all__ = ["Arbalest", "__version__"]
