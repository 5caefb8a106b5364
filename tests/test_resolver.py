import subprocess
import sys
from unittest.mock import MagicMock

import pytest

from buildorch.errors import DependencyResolutionError
from buildorch.resolver import (
    DependencyResolver,
    ResolverOptions,
    YAML_REQUIREMENT,
    merge_resolver_options,
)


@pytest.fixture
def requirements(tmp_path):
    path = tmp_path / "requirements-build.txt"
    path.write_text("pytest\n")
    return str(path)


class TestMergeResolverOptions:
    def test_explicit_beats_local_beats_default(self):
        opts = merge_resolver_options(
            explicit={"index_url": "https://mirror/simple", "target": "/explicit"},
            local={"target": "/local", "scope": None, "with_yaml": True},
        )
        assert opts.index_url == "https://mirror/simple"
        assert opts.target == "/explicit"
        assert opts.with_yaml is True
        assert opts.scope is None
        assert opts.pre is False
        assert opts.python == sys.executable

    def test_none_counts_as_not_supplied(self):
        opts = merge_resolver_options(explicit={"target": None}, local={"target": "/local"})
        assert opts.target == "/local"

    def test_unknown_keys_are_ignored(self):
        opts = merge_resolver_options(explicit={"colour": "blue"}, local={"verbose": True})
        assert opts == ResolverOptions()


class TestCommand:
    def test_target_directory(self, requirements):
        cmd = DependencyResolver().command(
            ResolverOptions(requirements_file=requirements, target="/mods", python="py")
        )
        assert cmd[:4] == ["py", "-m", "pip", "install"]
        assert cmd[cmd.index("--target") + 1] == "/mods"
        assert "--user" not in cmd
        assert cmd[cmd.index("--requirement") + 1] == requirements

    def test_current_user_scope(self, requirements):
        cmd = DependencyResolver().command(
            ResolverOptions(requirements_file=requirements, scope="CurrentUser", target="/ignored")
        )
        assert "--user" in cmd
        assert "--target" not in cmd

    def test_all_users_scope(self, requirements):
        cmd = DependencyResolver().command(
            ResolverOptions(requirements_file=requirements, scope="allusers")
        )
        assert "--user" not in cmd
        assert "--target" not in cmd

    def test_flags(self, requirements):
        cmd = DependencyResolver().command(
            ResolverOptions(
                requirements_file=requirements,
                target="/mods",
                index_url="https://mirror/simple",
                pre=True,
                with_yaml=True,
                extra_args=["--no-cache-dir"],
            )
        )
        assert cmd[cmd.index("--index-url") + 1] == "https://mirror/simple"
        assert "--pre" in cmd
        assert YAML_REQUIREMENT in cmd
        assert cmd[-1] == "--no-cache-dir"

    def test_unknown_scope(self, requirements):
        with pytest.raises(DependencyResolutionError):
            DependencyResolver().command(
                ResolverOptions(requirements_file=requirements, scope="Machine")
            )

    def test_needs_target_or_scope(self, requirements):
        with pytest.raises(DependencyResolutionError):
            DependencyResolver().command(ResolverOptions(requirements_file=requirements))


class TestResolve:
    def test_runs_pip(self, requirements):
        runner = MagicMock()
        opts = ResolverOptions(requirements_file=requirements, target="/mods")
        resolver = DependencyResolver(runner=runner)
        resolver.resolve(opts)
        runner.assert_called_once_with(resolver.command(opts), check=True)

    def test_nothing_to_install(self, tmp_path):
        runner = MagicMock()
        DependencyResolver(runner=runner).resolve(
            ResolverOptions(requirements_file=str(tmp_path / "missing.txt"), target="/mods")
        )
        runner.assert_not_called()

    def test_missing_requirements_with_yaml_still_installs_yaml(self, tmp_path):
        runner = MagicMock()
        DependencyResolver(runner=runner).resolve(
            ResolverOptions(
                requirements_file=str(tmp_path / "missing.txt"), target="/mods", with_yaml=True
            )
        )
        cmd = runner.call_args.args[0]
        assert cmd[-1] == YAML_REQUIREMENT
        assert "--requirement" not in cmd

    def test_pip_failure_is_fatal(self, requirements):
        runner = MagicMock(side_effect=subprocess.CalledProcessError(1, ["pip"]))
        with pytest.raises(DependencyResolutionError, match="status 1"):
            DependencyResolver(runner=runner).resolve(
                ResolverOptions(requirements_file=requirements, target="/mods")
            )

    def test_missing_interpreter_is_fatal(self, requirements):
        runner = MagicMock(side_effect=FileNotFoundError("no such file"))
        with pytest.raises(DependencyResolutionError):
            DependencyResolver(runner=runner).resolve(
                ResolverOptions(requirements_file=requirements, target="/mods")
            )
