"""Print the resolved build environment."""

import typer

from buildorch import task
from buildorch.environment import SEARCH_PATH_VAR


@task(name="info")
def info(ctx):
    """Show resolved paths, the module search path and the known tasks."""
    env = ctx.environment
    typer.echo(f"Project root:      {env.project_root}")
    typer.echo(f"Output directory:  {env.output_directory}")
    typer.echo(f"Required modules:  {env.required_modules_target}")
    typer.echo(f"{SEARCH_PATH_VAR}:")
    for entry in env.search_path.entries:
        typer.echo(f"  {entry}")
    typer.echo(f"Tasks: {', '.join(sorted(ctx.registry.names()))}")
