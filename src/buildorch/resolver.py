"""Dependency bootstrap through ``pip``.

The resolver installs the build's required packages either into a directory
(``pip install --target``) or into an install scope: ``CurrentUser`` maps to
``pip install --user`` and ``AllUsers`` to a plain interpreter-wide install.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, Optional

from .environment import install_scope
from .errors import DependencyResolutionError
from .logging import get_logger


YAML_REQUIREMENT = "PyYAML"
DEFAULT_REQUIREMENTS_FILE = "requirements-build.txt"


@dataclass
class ResolverOptions:
    requirements_file: str = DEFAULT_REQUIREMENTS_FILE
    target: Optional[str] = None
    scope: Optional[str] = None
    index_url: Optional[str] = None
    pre: bool = False
    with_yaml: bool = False
    python: str = field(default_factory=lambda: sys.executable)
    extra_args: List[str] = field(default_factory=list)

    @classmethod
    def accepted(cls) -> list[str]:
        return [f.name for f in fields(cls)]


def merge_resolver_options(
    explicit: Mapping[str, Any] | None = None,
    local: Mapping[str, Any] | None = None,
) -> ResolverOptions:
    """Build options with precedence explicit > local > resolver default.

    Keys the resolver does not accept are ignored, and a None value counts
    as "not supplied" in both overlays.
    """
    explicit = explicit or {}
    local = local or {}
    params: dict[str, Any] = {}
    for name in ResolverOptions.accepted():
        if explicit.get(name) is not None:
            params[name] = explicit[name]
        elif local.get(name) is not None:
            params[name] = local[name]
    return ResolverOptions(**params)


class DependencyResolver:
    def __init__(self, runner=subprocess.run):
        self.runner = runner
        self.logger = get_logger("buildorch.resolver")

    def command(self, options: ResolverOptions) -> list[str]:
        cmd = [options.python, "-m", "pip", "install", "--disable-pip-version-check"]
        scope = install_scope(options.scope) if options.scope else None
        if options.scope and scope is None:
            raise DependencyResolutionError(
                f"Unknown install scope {options.scope!r}; expected CurrentUser or AllUsers"
            )
        if scope == "CurrentUser":
            cmd.append("--user")
        elif scope is None:
            if not options.target:
                raise DependencyResolutionError(
                    "Either a target directory or an install scope is required"
                )
            cmd += ["--target", str(options.target), "--upgrade"]
        if options.index_url:
            cmd += ["--index-url", options.index_url]
        if options.pre:
            cmd.append("--pre")

        requirements = Path(options.requirements_file)
        has_requirements = requirements.is_file()
        if has_requirements:
            cmd += ["--requirement", str(requirements)]
        else:
            self.logger.warning("Requirements file not found: %s", requirements)
        if options.with_yaml:
            cmd.append(YAML_REQUIREMENT)
        elif not has_requirements:
            return []
        cmd += list(options.extra_args)
        return cmd

    def resolve(self, options: ResolverOptions) -> None:
        cmd = self.command(options)
        if not cmd:
            self.logger.info("Nothing to install.")
            return
        where = options.scope or options.target
        self.logger.info("Resolving dependencies into %s", where)
        self.logger.debug("Running: %s", shlex.join(cmd))
        try:
            self.runner(cmd, check=True)
        except subprocess.CalledProcessError as e:
            raise DependencyResolutionError(
                f"pip exited with status {e.returncode} while resolving dependencies"
            ) from e
        except OSError as e:
            raise DependencyResolutionError(f"Could not run pip: {e}") from e
        self.logger.info("Dependencies resolved.")
