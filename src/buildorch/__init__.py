"""Configuration-driven build task orchestrator.

Provides the task decorator, a name-keyed task registry, workflow expansion from
the build configuration, dependency bootstrap through pip, and a Typer CLI.
"""

from .core import TaskRegistry, TaskRunner, TaskSpec, task  # re-export for convenience
from .orchestrator import BuildContext, BuildOptions, Orchestrator

__all__ = [
    "TaskSpec",
    "TaskRegistry",
    "TaskRunner",
    "task",
    "BuildContext",
    "BuildOptions",
    "Orchestrator",
]
