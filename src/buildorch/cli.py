from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import find_dotenv, load_dotenv

from .discovery import DEFAULT_TASK
from .errors import DependencyResolutionError
from .logging import configure_logging
from .orchestrator import BuildOptions, Orchestrator


app = typer.Typer(add_completion=False, help="Configuration-driven build task orchestrator")


@app.callback()
def _startup():
    load_dotenv(find_dotenv(usecwd=True))


def _parse_build_info(text: str | None) -> dict | None:
    if text is None:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        typer.echo(f"--build-info is not valid JSON: {e}", err=True)
        raise typer.Exit(code=2)
    if not isinstance(data, dict):
        typer.echo("--build-info must be a JSON object", err=True)
        raise typer.Exit(code=2)
    return data


@app.command()
def run(
    tasks: Optional[List[str]] = typer.Argument(None, help="Task names to run (default: '.')"),
    build_config: str = typer.Option("./build.yaml", help="Build configuration file (.yaml, .yml, .json, .jsonc, .toml)"),
    output_directory: str = typer.Option("output", help="Output directory"),
    required_modules_directory: str = typer.Option(
        "output/RequiredModules",
        help="Directory for required packages, or the CurrentUser/AllUsers scope",
    ),
    project_root: Optional[str] = typer.Option(None, help="Directory relative paths resolve against (default: cwd)"),
    tasks_directory: str = typer.Option(".build", help="Directory searched for *.build.py task files"),
    pester_tag: Optional[List[str]] = typer.Option(None, help="Test tags to include"),
    pester_exclude_tag: Optional[List[str]] = typer.Option(None, help="Test tags to exclude"),
    code_coverage_threshold: float = typer.Option(50, help="Minimum code coverage percentage"),
    resolve_dependency: bool = typer.Option(False, help="Install required packages before building"),
    auto_restore: bool = typer.Option(False, help="Resolve dependencies when the required modules directory is empty"),
    requirements_file: Optional[str] = typer.Option(None, help="Requirements file for dependency resolution (relative to the project root)"),
    index_url: Optional[str] = typer.Option(None, help="Package index used for dependency resolution"),
    pre: bool = typer.Option(False, help="Allow pre-release packages"),
    log_level: Optional[str] = typer.Option(None, help="Log level (overrides BUILDORCH_LOG_LEVEL)"),
    log_file: Optional[Path] = typer.Option(None, help="Also write logs to this file"),
    build_info: Optional[str] = typer.Option(None, hidden=True),
):
    """Bootstrap the environment and run tasks by name."""
    configure_logging(log_level, log_file)
    resolver_params = {
        "requirements_file": requirements_file,
        "index_url": index_url,
        "pre": pre or None,
    }
    options = BuildOptions(
        tasks=list(tasks or [DEFAULT_TASK]),
        build_config=build_config,
        output_directory=output_directory,
        required_modules_directory=required_modules_directory,
        project_root=project_root,
        tasks_directory=tasks_directory,
        pester_tag=list(pester_tag or []),
        pester_exclude_tag=list(pester_exclude_tag or []),
        code_coverage_threshold=code_coverage_threshold,
        resolve_dependency=resolve_dependency,
        auto_restore=auto_restore,
        resolver_params={k: v for k, v in resolver_params.items() if v is not None},
        build_info=_parse_build_info(build_info),
    )
    try:
        code = Orchestrator(options).run()
    except DependencyResolutionError as e:
        typer.echo(f"Dependency resolution failed: {e}", err=True)
        raise typer.Exit(code=1)
    raise typer.Exit(code=code)


@app.command("list")
def list_tasks(
    build_config: str = typer.Option("./build.yaml", help="Build configuration file"),
    project_root: Optional[str] = typer.Option(None, help="Directory relative paths resolve against (default: cwd)"),
    output_directory: str = typer.Option("output", help="Output directory"),
    required_modules_directory: str = typer.Option("output/RequiredModules", help="Required packages directory or scope"),
    tasks_directory: str = typer.Option(".build", help="Directory searched for *.build.py task files"),
):
    """List the tasks a build with this configuration would know about."""
    options = BuildOptions(
        build_config=build_config,
        project_root=project_root,
        output_directory=output_directory,
        required_modules_directory=required_modules_directory,
        tasks_directory=tasks_directory,
    )
    orch = Orchestrator(options)
    orch.resolve_paths()
    orch.load_config()
    registry = orch.populate()
    typer.echo("Available tasks:")
    for spec in sorted(registry, key=lambda s: s.name):
        line = f"- {spec.name}"
        if spec.prerequisites:
            line += f" [{', '.join(spec.prerequisites)}]"
        if spec.description:
            line += f"  {spec.description}"
        typer.echo(line)


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
