"""Registry population: built-in tasks, extension sources, local task files."""

from __future__ import annotations

import fnmatch
import importlib
import pkgutil
import runpy
from dataclasses import replace
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Iterable, List, Mapping

from .core import TaskRegistry, TaskSpec, task
from .errors import ExtensionSourceLoadError, LocalTaskFileError
from .logging import get_logger
from .utils import as_list


log = get_logger("buildorch.discovery")

NOOP_TASK = "noop"
DEFAULT_TASK = "."
TASK_FILE_PATTERN = "*.build.py"


def _noop(context: Any) -> None:
    """Does nothing."""


def _default_placeholder(context: Any) -> None:
    """Default task; define a '.' workflow in BuildWorkflow to replace it."""
    log.warning(
        "No default workflow defined. Add a '%s' entry under BuildWorkflow "
        "in the build configuration.",
        DEFAULT_TASK,
    )


def register_builtin_tasks(registry: TaskRegistry) -> None:
    registry.register(NOOP_TASK, _noop, source="builtin")
    registry.register(DEFAULT_TASK, _default_placeholder, source="builtin")


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive wildcard match of `name` against any pattern."""
    folded = name.casefold()
    return any(fnmatch.fnmatchcase(folded, p.casefold()) for p in patterns)


def specs_in_namespace(namespace: Mapping[str, Any]) -> List[TaskSpec]:
    specs: List[TaskSpec] = []
    for obj in namespace.values():
        spec = getattr(obj, "_task_spec", None)
        if isinstance(spec, TaskSpec):
            specs.append(spec)
    return specs


def exported_tasks(module: ModuleType) -> Dict[str, TaskSpec]:
    """Collect decorated functions from a module, and its submodules if a package."""
    specs: Dict[str, TaskSpec] = {}
    modules = [module]
    if hasattr(module, "__path__"):
        for m in pkgutil.iter_modules(module.__path__, prefix=f"{module.__name__}."):
            modules.append(importlib.import_module(m.name))
    for mod in modules:
        for attr_name in dir(mod):
            spec = getattr(getattr(mod, attr_name), "_task_spec", None)
            if isinstance(spec, TaskSpec):
                specs[spec.name] = spec
    return specs


def load_extension_source(
    registry: TaskRegistry, source: str, patterns: Iterable[str]
) -> List[str]:
    """Register the tasks exported by `source` whose names match `patterns`."""
    patterns = list(patterns)
    try:
        module = importlib.import_module(source)
        specs = exported_tasks(module)
    except Exception as e:  # noqa: BLE001
        raise ExtensionSourceLoadError(
            f"Failed to load extension source {source}: {e}"
        ) from e
    registered: List[str] = []
    for name in sorted(specs):
        if matches_any(name, patterns):
            registry.add(specs[name])
            registered.append(name)
    if not registered:
        log.warning(
            "Extension source %s exports no task matching %s", source, patterns
        )
    return registered


def load_extension_sources(
    registry: TaskRegistry, module_build_tasks: Mapping[str, Any]
) -> None:
    for source, patterns in module_build_tasks.items():
        try:
            names = load_extension_source(registry, str(source), as_list(patterns))
        except ExtensionSourceLoadError as e:
            log.warning("%s. Skipping its tasks.", e)
            continue
        log.info("Imported %d task(s) from %s", len(names), source)


def find_task_files(directory: Path, pattern: str = TASK_FILE_PATTERN) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.rglob(pattern) if p.is_file()),
        key=lambda p: p.as_posix(),
    )


def load_task_file(registry: TaskRegistry, path: Path) -> List[str]:
    """Execute a local task file with `registry` and `task` in its globals."""
    try:
        namespace = runpy.run_path(
            str(path),
            init_globals={"registry": registry, "task": task},
            run_name=f"buildorch.local.{path.stem.replace('.', '_')}",
        )
    except Exception as e:  # noqa: BLE001
        raise LocalTaskFileError(f"Task file {path} failed: {e}") from e
    names: List[str] = []
    for spec in specs_in_namespace(namespace):
        registry.add(replace(spec, source=str(path)))
        names.append(spec.name)
    return names


def load_local_task_files(
    registry: TaskRegistry, directory: Path, pattern: str = TASK_FILE_PATTERN
) -> None:
    for path in find_task_files(directory, pattern):
        try:
            names = load_task_file(registry, path)
        except LocalTaskFileError as e:
            log.error("%s. Skipping it.", e)
            continue
        log.debug("Loaded %s: %s", path, ", ".join(names) or "<no decorated tasks>")


def populate_registry(
    registry: TaskRegistry,
    config: Mapping[str, Any],
    tasks_directory: Path | None = None,
) -> TaskRegistry:
    register_builtin_tasks(registry)
    module_build_tasks = config.get("ModuleBuildTasks") or {}
    if isinstance(module_build_tasks, Mapping):
        load_extension_sources(registry, module_build_tasks)
    else:
        log.warning(
            "ModuleBuildTasks must be a mapping of module name to patterns, got %s",
            type(module_build_tasks).__name__,
        )
    if tasks_directory is not None:
        load_local_task_files(registry, tasks_directory)
    return registry
