import subprocess
import sys
from unittest.mock import patch

import pytest

from buildorch.core import TaskRegistry
from buildorch.environment import resolve_environment
from buildorch.orchestrator import BuildContext, BuildOptions
from buildtasks.clean import clean
from buildtasks.info import info
from buildtasks.package import build_package
from buildtasks.test import marker_expression, pytest_command, test as run_tests


@pytest.fixture
def make_context(tmp_path):
    def _make(config=None, **options):
        opts = BuildOptions(project_root=str(tmp_path), **options)
        env = resolve_environment(
            tmp_path, opts.output_directory, opts.required_modules_directory, environ={}
        )
        return BuildContext(
            options=opts, environment=env, config=config or {}, registry=TaskRegistry()
        )

    return _make


class TestClean:
    def test_keeps_required_modules(self, make_context):
        ctx = make_context()
        out = ctx.output_directory
        (out / "dist").mkdir()
        (out / "dist" / "pkg.whl").write_text("")
        (out / "build-state.json").write_text("{}")
        (out / "RequiredModules" / "dep").mkdir()

        clean(ctx)
        assert sorted(p.name for p in out.iterdir()) == ["RequiredModules"]
        assert (out / "RequiredModules" / "dep").is_dir()


class TestMarkerExpression:
    @pytest.mark.parametrize(
        "include, exclude, expected",
        [
            ([], [], ""),
            (["unit"], [], "unit"),
            (["unit", "fast"], [], "(unit or fast)"),
            ([], ["slow"], "not slow"),
            (["unit", "fast"], ["slow", "gpu"], "(unit or fast) and not slow and not gpu"),
        ],
    )
    def test_expression(self, include, exclude, expected):
        assert marker_expression(include, exclude) == expected


class TestPytestTask:
    def test_command(self, make_context):
        ctx = make_context(
            config={"Pytest": {"Path": ["tests/unit"], "CoverageSource": "src/pkg", "ExtraArgs": ["-q"]}},
            pester_tag=["unit"],
            pester_exclude_tag=["slow"],
            code_coverage_threshold=85,
        )
        cmd = pytest_command(ctx)
        assert cmd[:4] == [sys.executable, "-m", "pytest", "tests/unit"]
        assert cmd[cmd.index("-m", 3) + 1] == "unit and not slow"
        assert "--cov=src/pkg" in cmd
        assert "--cov-fail-under=85" in cmd
        junit = ctx.output_directory / "testResults" / "junit.xml"
        assert f"--junitxml={junit}" in cmd
        assert junit.parent.is_dir()
        assert cmd[-1] == "-q"

    def test_defaults(self, make_context):
        cmd = pytest_command(make_context())
        assert cmd[3] == "tests"
        assert not any(c.startswith("--cov") for c in cmd)
        assert cmd.count("-m") == 1

    def test_runs_pytest(self, make_context):
        ctx = make_context()
        with patch("buildtasks.test.subprocess.run") as run:
            run_tests(ctx)
        run.assert_called_once_with(pytest_command(ctx), check=True, cwd=ctx.project_root)

    def test_failures_propagate(self, make_context):
        ctx = make_context()
        error = subprocess.CalledProcessError(1, ["pytest"])
        with patch("buildtasks.test.subprocess.run", side_effect=error):
            with pytest.raises(subprocess.CalledProcessError):
                run_tests(ctx)


class TestBuildPackage:
    def test_requires_project_metadata(self, make_context):
        with pytest.raises(FileNotFoundError):
            build_package(make_context())

    def test_builds_into_output(self, make_context, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
        ctx = make_context()
        with patch("buildtasks.package.subprocess.run") as run:
            build_package(ctx)
        cmd = run.call_args.args[0]
        assert cmd[1:3] == ["-m", "build"]
        assert cmd[cmd.index("--outdir") + 1] == str(ctx.output_directory / "dist")


def test_info(make_context, capsys):
    ctx = make_context()
    ctx.registry.register("noop")
    info(ctx)
    out = capsys.readouterr().out
    assert f"Output directory:  {ctx.output_directory}" in out
    assert "Tasks: noop" in out
