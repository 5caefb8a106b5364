"""Exception types raised while bootstrapping and running a build.

Only :class:`DependencyResolutionError` and the execution errors end a run;
the loader errors are caught where they happen, logged, and the build carries
on with whatever could be loaded.
"""

from __future__ import annotations


class BuildError(Exception):
    """Base class for every error raised by buildorch."""


class ConfigLoadError(BuildError):
    """The build configuration file could not be read or parsed."""


class ExtensionSourceLoadError(BuildError):
    """A module listed under ``ModuleBuildTasks`` could not be loaded."""


class LocalTaskFileError(BuildError):
    """A local ``*.build.py`` task file raised while being executed."""


class WorkflowParseError(BuildError):
    """A ``BuildWorkflow`` entry is malformed."""


class DependencyResolutionError(BuildError):
    """Installing the required packages failed."""


class RegistryFrozenError(BuildError, RuntimeError):
    """A task was registered after the registry was frozen."""


class TaskNotFoundError(BuildError, KeyError):
    def __init__(self, name: str, requested_by: str | None = None):
        self.name = name
        self.requested_by = requested_by
        msg = f"Task not found: {name}"
        if requested_by:
            msg += f" (required by {requested_by})"
        super().__init__(msg)

    def __str__(self) -> str:
        return self.args[0]


class TaskCycleError(BuildError):
    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__("Cycle detected in task prerequisites: " + " -> ".join(chain))


class TaskFailedError(BuildError):
    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f"Task '{name}' failed: {cause}")
