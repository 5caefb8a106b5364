from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

from .errors import (
    RegistryFrozenError,
    TaskCycleError,
    TaskFailedError,
    TaskNotFoundError,
)
from .logging import get_logger


TaskBody = Callable[[Any], None]

DEFAULT_HEADER = "Task {name}"


@dataclass
class TaskSpec:
    name: str
    fn: Optional[TaskBody] = None
    prerequisites: list[str] = field(default_factory=list)
    source: str = ""
    description: str = ""

    @property
    def is_composite(self) -> bool:
        return self.fn is None


def _first_doc_line(fn: Callable | None) -> str:
    doc = (getattr(fn, "__doc__", None) or "").strip()
    return doc.splitlines()[0] if doc else ""


def task(name: str | None = None, depends: Iterable[str] = ()):
    """Decorator to declare a task on a function.

    The wrapped function receives the build context as its only argument.
    `depends` lists task names that must run before it. The function name is
    used when `name` is omitted.
    """

    def deco(fn: TaskBody):
        spec = TaskSpec(
            name=name or fn.__name__,
            fn=fn,
            prerequisites=list(depends),
            source=getattr(fn, "__module__", "") or "",
            description=_first_doc_line(fn),
        )
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


class TaskRegistry:
    """Named tasks, last registration wins.

    Populated once per invocation, then frozen for the execution phase.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskSpec] = {}
        self._frozen = False
        self.logger = get_logger("buildorch.registry")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add(self, spec: TaskSpec) -> TaskSpec:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register task '{spec.name}': registry is frozen"
            )
        previous = self._tasks.get(spec.name)
        if previous is not None:
            self.logger.debug(
                "Task %s from %s overrides definition from %s",
                spec.name,
                spec.source or "<unknown>",
                previous.source or "<unknown>",
            )
        self._tasks[spec.name] = spec
        return spec

    def register(
        self,
        name: str,
        fn: TaskBody | None = None,
        prerequisites: Iterable[str] | None = None,
        source: str = "",
        description: str | None = None,
    ) -> TaskSpec:
        spec = TaskSpec(
            name=name,
            fn=fn,
            prerequisites=list(prerequisites or []),
            source=source,
            description=_first_doc_line(fn) if description is None else description,
        )
        return self.add(spec)

    def get(self, name: str) -> TaskSpec | None:
        return self._tasks.get(name)

    def names(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[TaskSpec]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)


class TaskRunner:
    """Runs tasks by name, prerequisites first, each at most once."""

    def __init__(
        self,
        registry: TaskRegistry,
        context: Any = None,
        header: str | None = None,
        state_file: Path | None = None,
    ):
        self.registry = registry
        self.context = context
        self.header = header or DEFAULT_HEADER
        self.state_file = state_file
        self.executed: list[str] = []
        self.logger = get_logger("buildorch.runner")
        self.state: dict = {
            "run_id": time.strftime("%Y%m%d-%H%M%S"),
            "tasks": [],
        }

    def run(self, names: Iterable[str]) -> None:
        names = list(names)
        self.state["requested"] = names
        self.logger.info("Requested tasks: %s", " → ".join(names))
        for name in names:
            self._invoke(name, [], None)

    def _invoke(self, name: str, stack: list[str], parent: str | None) -> None:
        if name in self.executed:
            return
        if name in stack:
            raise TaskCycleError(stack[stack.index(name):] + [name])
        spec = self.registry.get(name)
        if spec is None:
            raise TaskNotFoundError(name, requested_by=parent)

        stack.append(name)
        for prereq in spec.prerequisites:
            self._invoke(prereq, stack, name)
        stack.pop()

        self.logger.info("%s", self._render_header(spec))
        if spec.fn is not None:
            try:
                spec.fn(self.context)
            except Exception as e:  # noqa: BLE001
                self.logger.exception("Task failed: %s", name)
                self.state["tasks"].append(
                    {"name": name, "status": "error", "error": str(e)}
                )
                self._write_state()
                raise TaskFailedError(name, e) from e
        self.executed.append(name)
        self.state["tasks"].append({"name": name, "status": "ok"})
        self._write_state()

    def _render_header(self, spec: TaskSpec) -> str:
        values = {
            "name": spec.name,
            "description": spec.description,
            "source": spec.source,
            "prerequisites": ", ".join(spec.prerequisites),
        }
        try:
            return self.header.format_map(values)
        except (KeyError, IndexError, ValueError, AttributeError, TypeError) as e:
            self.logger.warning("Invalid TaskHeader template %r: %s", self.header, e)
            self.header = DEFAULT_HEADER
            return DEFAULT_HEADER.format_map(values)

    def _write_state(self) -> None:
        if self.state_file is None:
            return
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w", encoding="utf-8") as f:
            json.dump(self.state, f, indent=2)
