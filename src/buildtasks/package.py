"""Package task: build sdist and wheel into ``<output>/dist``."""

from __future__ import annotations

import subprocess
import sys

from buildorch import task
from buildorch.logging import get_logger


@task(name="build_package")
def build_package(ctx):
    """Build distributions with `python -m build`."""
    logger = get_logger("buildtasks.package")
    root = ctx.project_root
    if not (root / "pyproject.toml").exists() and not (root / "setup.py").exists():
        raise FileNotFoundError(f"No pyproject.toml or setup.py in {root}")
    dist = ctx.output_directory / "dist"
    cmd = [sys.executable, "-m", "build", "--outdir", str(dist), str(root)]
    logger.info("Building distributions into %s", dist)
    subprocess.run(cmd, check=True, cwd=root)
