"""Expand ``BuildWorkflow`` entries into registered tasks.

A workflow value is either a list of task names (a composite task), a single
task name, or an inline body delimited by braces::

    BuildWorkflow:
      ".": [build, test]
      build: [clean, build_package]
      hello: "{ echo Hello; mkdir output/reports }"

Inline bodies are not evaluated as Python. They are compiled from a small
statement language, one statement per line or separated by ``;``:

    echo TEXT...          print the arguments joined by spaces
    run PROGRAM ARGS...   run a program (no shell), failing on non-zero exit
    mkdir PATH...         create directories, relative to the project root
    remove PATH...        delete files or directory trees if they exist
    env NAME=VALUE...     set environment variables for later tasks

``#`` has no special meaning, so ``echo Build #42`` prints both words. Paths
given to ``mkdir`` and ``remove`` must stay inside the project root: absolute
paths and ``..`` components are rejected.
"""

from __future__ import annotations

import os
import re
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import typer

from .core import TaskBody, TaskRegistry
from .errors import WorkflowParseError
from .logging import get_logger


log = get_logger("buildorch.workflow")

_INLINE_BODY = re.compile(r"^\{(?P<body>[\s\S]*)\}$")
_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Statement = Tuple[str, List[str]]


def _project_root(context: Any) -> Path:
    root = getattr(context, "project_root", None)
    return Path(root) if root is not None else Path.cwd()


def _echo(args: List[str], context: Any) -> None:
    typer.echo(" ".join(args))


def _run(args: List[str], context: Any) -> None:
    log.info("Running: %s", shlex.join(args))
    subprocess.run(args, check=True, cwd=_project_root(context))


def _mkdir(args: List[str], context: Any) -> None:
    root = _project_root(context)
    for a in args:
        (root / a).mkdir(parents=True, exist_ok=True)


def _remove(args: List[str], context: Any) -> None:
    root = _project_root(context)
    for a in args:
        p = root / a
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        elif p.exists() or p.is_symlink():
            p.unlink()


def _env(args: List[str], context: Any) -> None:
    for a in args:
        name, _, value = a.partition("=")
        os.environ[name] = value


def _check_env(args: List[str]) -> None:
    for a in args:
        name, sep, _ = a.partition("=")
        if not sep or not _ENV_NAME.match(name):
            raise WorkflowParseError(f"env expects NAME=VALUE, got {a!r}")


def _check_paths(verb: str, args: List[str]) -> None:
    for a in args:
        p = Path(a)
        if p.is_absolute() or ".." in p.parts:
            raise WorkflowParseError(
                f"{verb} paths must be relative to the project root, got {a!r}"
            )


_STATEMENTS: Dict[str, Callable[[List[str], Any], None]] = {
    "echo": _echo,
    "run": _run,
    "mkdir": _mkdir,
    "remove": _remove,
    "env": _env,
}

# Statements that take at least one argument
_NEEDS_ARGS = {"run", "mkdir", "remove", "env"}


def parse_statements(body: str) -> List[Statement]:
    statements: List[Statement] = []
    for line in body.splitlines():
        lexer = shlex.shlex(line, posix=True, punctuation_chars=";")
        lexer.whitespace_split = True
        lexer.commenters = ""
        current: List[str] = []
        try:
            tokens = list(lexer)
        except ValueError as e:
            raise WorkflowParseError(f"Cannot tokenize {line.strip()!r}: {e}") from e
        for tok in tokens + [";"]:
            if tok and set(tok) == {";"}:
                if current:
                    statements.append((current[0], current[1:]))
                current = []
            else:
                current.append(tok)
    for verb, args in statements:
        if verb not in _STATEMENTS:
            raise WorkflowParseError(
                f"Unknown statement {verb!r}; expected one of "
                + ", ".join(sorted(_STATEMENTS))
            )
        if verb in _NEEDS_ARGS and not args:
            raise WorkflowParseError(f"{verb} requires at least one argument")
        if verb == "env":
            _check_env(args)
        elif verb in ("mkdir", "remove"):
            _check_paths(verb, args)
    return statements


def compile_inline_body(body: str) -> TaskBody:
    """Compile the interior of a ``{...}`` workflow value into a task body."""
    statements = parse_statements(body)

    def inline_body(context: Any) -> None:
        for verb, args in statements:
            _STATEMENTS[verb](args, context)

    return inline_body


def inline_body_text(value: str) -> str | None:
    """Return the text between the braces, or None if `value` is not inline."""
    text = value.strip()
    match = _INLINE_BODY.match(text)
    if match:
        return match.group("body")
    if text.startswith("{") or text.endswith("}"):
        raise WorkflowParseError(f"Unbalanced braces in inline body {value!r}")
    return None


def register_workflow(registry: TaskRegistry, name: str, value: Any) -> None:
    if isinstance(value, str):
        body = inline_body_text(value)
        if body is not None:
            registry.register(
                name,
                compile_inline_body(body),
                source="BuildWorkflow",
                description=" ".join(body.split()),
            )
            return
        if not value.strip():
            raise WorkflowParseError("empty task name")
        value = [value.strip()]
    if isinstance(value, Mapping):
        raise WorkflowParseError(
            "got a mapping; quote inline bodies in YAML, "
            "e.g. hello: \"{ echo hi }\""
        )
    if not isinstance(value, Sequence) or isinstance(value, (bytes, bytearray)):
        raise WorkflowParseError(
            f"expected a list of task names or an inline {{...}} body, "
            f"got {type(value).__name__}"
        )
    names: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise WorkflowParseError(f"task names must be non-empty strings, got {item!r}")
        names.append(item.strip())
    registry.register(
        name,
        None,
        prerequisites=names,
        source="BuildWorkflow",
    )


def build_workflows(registry: TaskRegistry, workflows: Mapping[str, Any]) -> List[str]:
    """Register every workflow; a malformed one is logged and skipped."""
    built: List[str] = []
    for name, value in workflows.items():
        name = str(name)
        try:
            register_workflow(registry, name, value)
        except WorkflowParseError as e:
            log.error("Skipping workflow %s: %s", name, e)
            continue
        built.append(name)
    return built
