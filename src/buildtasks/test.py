"""Test task: run pytest with tag filters and a coverage threshold.

Reads the optional ``Pytest`` section of the build configuration:

    Pytest:
      Path: [tests]            # test paths, default "tests"
      CoverageSource: [src/pkg] # enables pytest-cov when set
      ExtraArgs: ["-q"]

Tags come from ``--pester-tag`` / ``--pester-exclude-tag`` and map onto a
pytest ``-m`` marker expression.
"""

from __future__ import annotations

import subprocess
import sys
from typing import List

from buildorch import task
from buildorch.logging import get_logger
from buildorch.utils import as_list


def marker_expression(include: List[str], exclude: List[str]) -> str:
    parts: List[str] = []
    if include:
        parts.append("(" + " or ".join(include) + ")" if len(include) > 1 else include[0])
    parts.extend(f"not {t}" for t in exclude)
    return " and ".join(parts)


def pytest_command(ctx) -> List[str]:
    conf = ctx.section("Pytest")
    opts = ctx.options
    cmd = [sys.executable, "-m", "pytest"]
    cmd += as_list(conf.get("Path")) or ["tests"]
    expr = marker_expression(list(opts.pester_tag), list(opts.pester_exclude_tag))
    if expr:
        cmd += ["-m", expr]
    sources = as_list(conf.get("CoverageSource"))
    if sources:
        cmd += [f"--cov={s}" for s in sources]
        cmd += ["--cov-report=term", f"--cov-fail-under={opts.code_coverage_threshold:g}"]
    results = ctx.output_directory / "testResults" / "junit.xml"
    results.parent.mkdir(parents=True, exist_ok=True)
    cmd.append(f"--junitxml={results}")
    cmd += as_list(conf.get("ExtraArgs"))
    return cmd


@task(name="test")
def test(ctx):
    """Run the project's tests with pytest."""
    logger = get_logger("buildtasks.test")
    cmd = pytest_command(ctx)
    logger.info("Running: %s", " ".join(cmd))
    subprocess.run(cmd, check=True, cwd=ctx.project_root)
