"""Clean task: empty the output directory.

The required modules directory is kept when it lives inside the output
directory, so a clean build does not force dependencies to be reinstalled.
"""

from __future__ import annotations

import shutil

from buildorch import task
from buildorch.logging import get_logger


@task(name="clean")
def clean(ctx):
    """Remove everything under the output directory except required modules."""
    logger = get_logger("buildtasks.clean")
    env = ctx.environment
    keep = env.required_modules_directory
    removed = 0
    for child in sorted(env.output_directory.iterdir()):
        if keep is not None and keep.is_relative_to(child.resolve()):
            continue
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
        removed += 1
    logger.info("Removed %d item(s) from %s", removed, env.output_directory)
