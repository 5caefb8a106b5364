"""Path resolution and the module search path used to find extension sources."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, MutableMapping

from .logging import get_logger


SEARCH_PATH_VAR = "PYTHONPATH"
INSTALL_SCOPES = ("CurrentUser", "AllUsers")

log = get_logger("buildorch.environment")


def install_scope(value: str | os.PathLike | None) -> str | None:
    """Return the canonical scope token if `value` names one, else None."""
    if value is None:
        return None
    text = str(value).strip()
    for scope in INSTALL_SCOPES:
        if text.casefold() == scope.casefold():
            return scope
    return None


def absolute_path(path: str | os.PathLike, base: Path) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    return Path(os.path.normpath(p))


class ModuleSearchPath:
    """Ordered list of directories searched for extension sources."""

    def __init__(self, entries: Iterable[str] | None = None):
        self.entries: list[str] = [e for e in (entries or []) if e]

    @classmethod
    def from_environ(
        cls, environ: MutableMapping[str, str] | None = None
    ) -> "ModuleSearchPath":
        environ = os.environ if environ is None else environ
        return cls(environ.get(SEARCH_PATH_VAR, "").split(os.pathsep))

    def __contains__(self, path: object) -> bool:
        return str(path) in self.entries

    def prepend(self, path: str | os.PathLike) -> bool:
        """Insert `path` first unless it is already listed."""
        p = str(path)
        if p in self.entries:
            return False
        self.entries.insert(0, p)
        return True

    def export(self, environ: MutableMapping[str, str] | None = None) -> None:
        """Write the list back to PYTHONPATH and to ``sys.path``."""
        environ = os.environ if environ is None else environ
        environ[SEARCH_PATH_VAR] = os.pathsep.join(self.entries)
        for entry in reversed(self.entries):
            if entry not in sys.path:
                sys.path.insert(0, entry)


@dataclass
class ResolvedEnvironment:
    project_root: Path
    output_directory: Path
    required_modules_directory: Path | None
    install_scope: str | None
    search_path: ModuleSearchPath = field(default_factory=ModuleSearchPath)

    @property
    def required_modules_target(self) -> str:
        if self.install_scope:
            return self.install_scope
        return str(self.required_modules_directory)


def resolve_environment(
    project_root: str | os.PathLike,
    output_directory: str | os.PathLike,
    required_modules_directory: str | os.PathLike,
    environ: MutableMapping[str, str] | None = None,
) -> ResolvedEnvironment:
    """Resolve directories, create them, and prepend them to the search path.

    The output directory ends up ahead of the required-modules directory,
    which ends up ahead of whatever the search path already held.
    """
    root = absolute_path(project_root, Path.cwd())
    output = absolute_path(output_directory, root)
    output.mkdir(parents=True, exist_ok=True)
    output = output.resolve()

    scope = install_scope(required_modules_directory)
    required: Path | None = None
    if scope is None:
        required = absolute_path(required_modules_directory, root)
        if not required.exists():
            log.info("Creating required modules directory %s", required)
            required.mkdir(parents=True, exist_ok=True)
        required = required.resolve()
    else:
        log.info("Required modules are installed to the %s scope", scope)

    search_path = ModuleSearchPath.from_environ(environ)
    if required is not None and search_path.prepend(required):
        log.debug("Prepended %s to %s", required, SEARCH_PATH_VAR)
    if search_path.prepend(output):
        log.debug("Prepended %s to %s", output, SEARCH_PATH_VAR)
    search_path.export(environ)

    return ResolvedEnvironment(
        project_root=root,
        output_directory=output,
        required_modules_directory=required,
        install_scope=scope,
        search_path=search_path,
    )
