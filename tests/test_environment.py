import os
import sys

from buildorch.environment import (
    SEARCH_PATH_VAR,
    ModuleSearchPath,
    absolute_path,
    install_scope,
    resolve_environment,
)


class TestModuleSearchPath:
    def test_prepend_is_idempotent(self):
        sp = ModuleSearchPath(["/existing"])
        assert sp.prepend("/opt/mods") is True
        assert sp.prepend("/opt/mods") is False
        assert sp.entries == ["/opt/mods", "/existing"]

    def test_from_environ_drops_empty_entries(self):
        env = {SEARCH_PATH_VAR: os.pathsep.join(["/a", "", "/b"])}
        assert ModuleSearchPath.from_environ(env).entries == ["/a", "/b"]

    def test_export_updates_environ_and_sys_path(self, tmp_path):
        env = {}
        sp = ModuleSearchPath([str(tmp_path / "x"), str(tmp_path / "y")])
        sp.export(env)
        assert env[SEARCH_PATH_VAR] == os.pathsep.join(sp.entries)
        assert sys.path[:2] == sp.entries


class TestInstallScope:
    def test_tokens_are_case_insensitive(self):
        assert install_scope("currentuser") == "CurrentUser"
        assert install_scope(" AllUsers ") == "AllUsers"
        assert install_scope("output/RequiredModules") is None
        assert install_scope(None) is None


class TestResolveEnvironment:
    def test_relative_paths_resolve_against_project_root(self, tmp_path):
        env = {SEARCH_PATH_VAR: "/prior"}
        resolved = resolve_environment(tmp_path, "output", "output/RequiredModules", environ=env)

        out = (tmp_path / "output").resolve()
        req = (tmp_path / "output" / "RequiredModules").resolve()
        assert resolved.output_directory == out
        assert resolved.required_modules_directory == req
        assert out.is_dir() and req.is_dir()
        assert resolved.install_scope is None
        assert resolved.required_modules_target == str(req)
        # output resolves before required modules, which resolve before prior entries
        assert env[SEARCH_PATH_VAR].split(os.pathsep) == [str(out), str(req), "/prior"]

    def test_absolute_paths_are_kept(self, tmp_path):
        out = tmp_path / "elsewhere" / "out"
        resolved = resolve_environment(tmp_path / "proj", out, tmp_path / "mods", environ={})
        assert resolved.output_directory == out.resolve()
        assert resolved.required_modules_directory == (tmp_path / "mods").resolve()

    def test_repeated_resolution_does_not_duplicate_entries(self, tmp_path):
        env = {}
        resolve_environment(tmp_path, "output", "output/RequiredModules", environ=env)
        resolve_environment(tmp_path, "output", "output/RequiredModules", environ=env)
        entries = env[SEARCH_PATH_VAR].split(os.pathsep)
        assert len(entries) == 2
        assert len(set(entries)) == 2

    def test_scope_token_skips_directory(self, tmp_path):
        env = {}
        resolved = resolve_environment(tmp_path, "output", "CurrentUser", environ=env)
        assert resolved.install_scope == "CurrentUser"
        assert resolved.required_modules_directory is None
        assert resolved.required_modules_target == "CurrentUser"
        assert not (tmp_path / "CurrentUser").exists()
        assert env[SEARCH_PATH_VAR] == str((tmp_path / "output").resolve())


def test_absolute_path_normalizes(tmp_path):
    assert absolute_path("a/../b", tmp_path) == tmp_path / "b"
