"""
Tests for the fetch and build modes that run inside the sandbox.
"""

import json

import pytest
from unittest.mock import AsyncMock, patch

from extrunner.config.global_config_loader import GlobalConfig
from extrunner.core.exceptions import CommandError, ConfigurationError, PackagingError
from extrunner.group.build import INSTALL_ARGS, resolve_output_dir, run_build
from extrunner.group.fetch import run_fetch
from extrunner.group.workspace import GroupWorkspace
from extrunner.utils.asar import read_header

REPO = "https://example.com/a.git"


@pytest.fixture
def workspace(tmp_path):
    group_dir = tmp_path / "group"
    (group_dir / "source").mkdir(parents=True)
    (group_dir / "output").mkdir()
    (group_dir / "state.json").write_text(json.dumps({
        'repository': REPO,
        'commit': "abc123",
        'scripts': ["build", "package"],
        'outputs': {'foo': "packages/foo/dist", 'bar': "packages/bar/dist"},
    }))
    (group_dir / "result.json").write_text(json.dumps({'errors': [], 'manifests': {}}))
    return GroupWorkspace(group_dir, tmp_path / "store")


def write_output(workspace, output, manifest):
    directory = workspace.source_dir / output
    directory.mkdir(parents=True)
    (directory / "manifest.json").write_text(json.dumps(manifest))
    (directory / "index.js").write_text("export default {};\n")
    return directory


def fail_on(command, first_arg):
    async def _run(cmd, args=(), **kwargs):
        if cmd == command and args and args[0] == first_arg:
            raise CommandError(cmd, args, 1)
    return _run


def written_result(workspace):
    return json.loads(workspace.result_path.read_text())


class TestWorkspace:
    def test_from_config_requires_group_dir(self, tmp_path):
        config = GlobalConfig.default()
        config.paths.group_dir = str(tmp_path / "missing")

        with pytest.raises(ConfigurationError):
            GroupWorkspace.from_config(config)

    def test_pnpm_env_points_at_store(self, workspace, tmp_path):
        assert workspace.pnpm_env() == {'NPM_CONFIG_STORE_DIR': str(tmp_path / "store")}


class TestFetch:
    @pytest.mark.asyncio
    async def test_clones_pinned_commit_then_fetches(self, workspace):
        with patch("extrunner.group.fetch.run_command", new=AsyncMock()) as run:
            result = await run_fetch(workspace)

        assert result.errors == []
        git_calls = [c.args[1] for c in run.call_args_list if c.args[0] == "git"]
        assert ["remote", "add", "origin", REPO] in git_calls
        assert ["fetch", "origin", "abc123"] in git_calls
        assert ["reset", "--hard", "FETCH_HEAD"] in git_calls
        last = run.call_args_list[-1]
        assert last.args == ("pnpm", ["fetch"])
        assert last.kwargs['env'] == workspace.pnpm_env()
        assert written_result(workspace) == {'errors': [], 'manifests': {}}

    @pytest.mark.asyncio
    async def test_clone_failure(self, workspace):
        with patch("extrunner.group.fetch.run_command", new=AsyncMock(side_effect=fail_on("git", "fetch"))) as run:
            await run_fetch(workspace)

        assert [e['type'] for e in written_result(workspace)['errors']] == ["cloneFailed"]
        assert all(c.args[0] == "git" for c in run.call_args_list)

    @pytest.mark.asyncio
    async def test_fetch_failure(self, workspace):
        with patch("extrunner.group.fetch.run_command", new=AsyncMock(side_effect=fail_on("pnpm", "fetch"))):
            await run_fetch(workspace)

        errors = written_result(workspace)['errors']
        assert errors == [{'type': "fetchFailed", 'err': "Process pnpm exited with code 1"}]


class TestBuild:
    @pytest.mark.asyncio
    async def test_builds_and_packages_every_member(self, workspace):
        write_output(workspace, "packages/foo/dist", {'id': "foo", 'version': "1.0.0", 'apiLevel': 2, 'authors': []})
        write_output(workspace, "packages/bar/dist", {'id': "bar", 'version': "0.2.0", 'apiLevel': 2})

        with patch("extrunner.group.build.run_command", new=AsyncMock()) as run:
            result = await run_build(workspace)

        assert [c.args[1] for c in run.call_args_list] == [INSTALL_ARGS, ["run", "build"], ["run", "package"]]
        assert result.errors == []
        assert written_result(workspace)['manifests'] == {
            'foo': {'id': "foo", 'version': "1.0.0", 'apiLevel': 2},
            'bar': {'id': "bar", 'version': "0.2.0", 'apiLevel': 2},
        }
        header = read_header(workspace.output_dir / "foo.asar")
        assert set(header['files']) == {"index.js", "manifest.json"}

    @pytest.mark.asyncio
    async def test_install_failure_stops_build(self, workspace):
        with patch("extrunner.group.build.run_command", new=AsyncMock(side_effect=fail_on("pnpm", "install"))) as run:
            await run_build(workspace)

        assert [e['type'] for e in written_result(workspace)['errors']] == ["installFailed"]
        assert run.await_count == 1

    @pytest.mark.asyncio
    async def test_first_script_failure_stops_build(self, workspace):
        async def _run(cmd, args=(), **kwargs):
            if list(args) == ["run", "build"]:
                raise CommandError(cmd, args, 2)
        with patch("extrunner.group.build.run_command", new=AsyncMock(side_effect=_run)) as run:
            await run_build(workspace)

        assert written_result(workspace)['errors'] == [
            {'type': "scriptFailed", 'script': "build", 'err': "Process pnpm exited with code 2"},
        ]
        assert ["run", "package"] not in [c.args[1] for c in run.call_args_list]
        assert list(workspace.output_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_package_failure_is_per_member(self, workspace):
        write_output(workspace, "packages/bar/dist", {'id': "bar", 'version': "0.2.0"})

        with patch("extrunner.group.build.run_command", new=AsyncMock()):
            await run_build(workspace)

        result = written_result(workspace)
        assert [(e['type'], e['ext']) for e in result['errors']] == [("packageFailed", "foo")]
        assert list(result['manifests']) == ["bar"]
        assert (workspace.output_dir / "bar.asar").exists()
        assert not (workspace.output_dir / "foo.asar").exists()

    @pytest.mark.asyncio
    async def test_invalid_package_manifest(self, workspace):
        write_output(workspace, "packages/foo/dist", {'version': "1.0.0"})
        write_output(workspace, "packages/bar/dist", {'id': "bar"})

        with patch("extrunner.group.build.run_command", new=AsyncMock()):
            await run_build(workspace)

        result = written_result(workspace)
        assert [e['ext'] for e in result['errors']] == ["foo"]
        assert result['manifests'] == {'bar': {'id': "bar"}}


class TestResolveOutputDir:
    @pytest.mark.parametrize("output", ["../elsewhere", "/etc", "dist/../../x", ".."])
    def test_rejects_traversal(self, tmp_path, output):
        with pytest.raises(PackagingError):
            resolve_output_dir(tmp_path, output)

    def test_rejects_symlink_escape(self, tmp_path):
        source = tmp_path / "source"
        source.mkdir()
        (source / "dist").symlink_to(tmp_path)

        with pytest.raises(PackagingError):
            resolve_output_dir(source, "dist")

    def test_resolves_inside_source(self, tmp_path):
        assert resolve_output_dir(tmp_path, "packages/./foo/dist") == (tmp_path / "packages/foo/dist").resolve()
