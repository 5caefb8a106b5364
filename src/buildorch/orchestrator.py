"""Top-level build sequence.

init → path_resolution → dependency_resolution → config_load →
registry_population → workflow_build → execution → exit

Only a failed dependency resolution aborts the run; every other stage
degrades to a warning and carries on.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

from .config import is_yaml_config, load_build_config
from .core import DEFAULT_HEADER, TaskRegistry, TaskRunner
from .discovery import DEFAULT_TASK, populate_registry
from .environment import ResolvedEnvironment, resolve_environment
from .errors import BuildError
from .logging import get_logger
from .resolver import (
    DEFAULT_REQUIREMENTS_FILE,
    DependencyResolver,
    merge_resolver_options,
)
from .utils import section
from .workflow import build_workflows


STATE_FILE_NAME = "build-state.json"


class Stage(str, Enum):
    INIT = "init"
    PATH_RESOLUTION = "path_resolution"
    DEPENDENCY_RESOLUTION = "dependency_resolution"
    CONFIG_LOAD = "config_load"
    REGISTRY_POPULATION = "registry_population"
    WORKFLOW_BUILD = "workflow_build"
    EXECUTION = "execution"
    EXIT = "exit"


@dataclass
class BuildOptions:
    tasks: List[str] = field(default_factory=lambda: [DEFAULT_TASK])
    build_config: str = "./build.yaml"
    output_directory: str = "output"
    required_modules_directory: str = "output/RequiredModules"
    project_root: Optional[str] = None
    tasks_directory: str = ".build"
    pester_tag: List[str] = field(default_factory=list)
    pester_exclude_tag: List[str] = field(default_factory=list)
    code_coverage_threshold: float = 50
    resolve_dependency: bool = False
    auto_restore: bool = False
    # Values given explicitly for the dependency resolver (see ResolverOptions)
    resolver_params: Dict[str, Any] = field(default_factory=dict)
    # Pre-supplied configuration, used instead of reading build_config
    build_info: Optional[Dict[str, Any]] = None


@dataclass
class BuildContext:
    """What every task body receives."""

    options: BuildOptions
    environment: ResolvedEnvironment
    config: Dict[str, Any]
    registry: TaskRegistry

    @property
    def project_root(self) -> Path:
        return self.environment.project_root

    @property
    def output_directory(self) -> Path:
        return self.environment.output_directory

    def section(self, key: str) -> Dict[str, Any]:
        return section(self.config, key)


class Orchestrator:
    def __init__(
        self,
        options: BuildOptions,
        resolver: DependencyResolver | None = None,
        environ: MutableMapping[str, str] | None = None,
    ):
        self.options = options
        self.resolver = resolver or DependencyResolver()
        self.environ = os.environ if environ is None else environ
        self.logger = get_logger("buildorch.orchestrator")
        self.stage = Stage.INIT
        self.environment: ResolvedEnvironment | None = None
        self.config: Dict[str, Any] = {}
        self.registry = TaskRegistry()

    def _enter(self, stage: Stage) -> None:
        self.logger.debug("Stage: %s → %s", self.stage.value, stage.value)
        self.stage = stage

    @property
    def project_root(self) -> Path:
        return Path(self.options.project_root or Path.cwd()).absolute()

    def project_path(self, value: str | os.PathLike) -> Path:
        """Resolve `value` against the project root unless it is absolute."""
        p = Path(value)
        return p if p.is_absolute() else self.project_root / p

    def config_path(self) -> Path:
        return self.project_path(self.options.build_config)

    def resolve_paths(self) -> ResolvedEnvironment:
        self._enter(Stage.PATH_RESOLUTION)
        self.environment = resolve_environment(
            self.project_root,
            self.options.output_directory,
            self.options.required_modules_directory,
            environ=self.environ,
        )
        return self.environment

    def _needs_restore(self) -> bool:
        if self.options.resolve_dependency:
            return True
        if not self.options.auto_restore:
            return False
        env = self.environment
        if env is None or env.required_modules_directory is None:
            return False
        return not any(env.required_modules_directory.iterdir())

    def resolve_dependencies(self) -> None:
        """Install required packages. Raises DependencyResolutionError."""
        self._enter(Stage.DEPENDENCY_RESOLUTION)
        env = self.environment or self.resolve_paths()
        local: Dict[str, Any] = {
            "requirements_file": str(self.project_path(DEFAULT_REQUIREMENTS_FILE)),
            "target": (
                str(env.required_modules_directory)
                if env.required_modules_directory is not None
                else None
            ),
            "scope": env.install_scope,
        }
        if is_yaml_config(self.options.build_config):
            local["with_yaml"] = True
        explicit = dict(self.options.resolver_params)
        if explicit.get("requirements_file") is not None:
            explicit["requirements_file"] = str(
                self.project_path(explicit["requirements_file"])
            )
        resolver_options = merge_resolver_options(explicit, local)
        self.resolver.resolve(resolver_options)

    def load_config(self) -> Dict[str, Any]:
        self._enter(Stage.CONFIG_LOAD)
        if self.options.build_info is not None:
            self.logger.debug("Using pre-supplied build configuration")
            self.config = dict(self.options.build_info)
        else:
            self.config = load_build_config(self.config_path())
        return self.config

    def populate(self) -> TaskRegistry:
        self._enter(Stage.REGISTRY_POPULATION)
        tasks_dir = self.project_path(self.options.tasks_directory)
        populate_registry(self.registry, self.config, tasks_dir)

        self._enter(Stage.WORKFLOW_BUILD)
        workflows = self.config.get("BuildWorkflow") or {}
        if isinstance(workflows, Mapping):
            build_workflows(self.registry, workflows)
        else:
            self.logger.warning(
                "BuildWorkflow must be a mapping, got %s", type(workflows).__name__
            )
        self.registry.freeze()
        return self.registry

    def prepare(self) -> TaskRegistry:
        """Run every stage up to execution."""
        self.resolve_paths()
        if self._needs_restore():
            self.resolve_dependencies()
        self.load_config()
        return self.populate()

    def execute(self, tasks: List[str] | None = None) -> int:
        self._enter(Stage.EXECUTION)
        env = self.environment or self.resolve_paths()
        names = list(tasks or self.options.tasks or [DEFAULT_TASK])
        header = self.config.get("TaskHeader")
        if header is not None and not isinstance(header, str):
            self.logger.warning("TaskHeader must be a string template; ignoring it")
            header = None
        context = BuildContext(
            options=self.options,
            environment=env,
            config=self.config,
            registry=self.registry,
        )
        runner = TaskRunner(
            self.registry,
            context=context,
            header=header or DEFAULT_HEADER,
            state_file=env.output_directory / STATE_FILE_NAME,
        )
        try:
            runner.run(names)
        except BuildError as e:
            self.logger.error("Build failed: %s", e)
            return 1
        self.logger.info("Build succeeded: %s", ", ".join(runner.executed))
        return 0

    def run(self) -> int:
        self.prepare()
        code = self.execute()
        self._enter(Stage.EXIT)
        return code
