"""
End-to-end tests for a run with the sandbox replaced by a fake executor.
"""

import json

import pytest

from conftest import REPO, FakeExecutor
from extrunner.build.manager import ExtensionBuildManager
from extrunner.core.enums import ChangeType, ErrorType, GroupPhase, RunMode, RunnerErrorType
from extrunner.core.exceptions import InsecureRepositoryError
from extrunner.core.schemas import GroupResult
from extrunner.sandbox.executor import PhaseResult


def read_state(config):
    return json.loads(config.paths.state_path.read_text())


class FailingFirstExecutor(FakeExecutor):
    async def execute(self, group):
        if group.index == 0:
            self.executed.append(group)
            raise RuntimeError("container runtime went away")
        return await super().execute(group)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_new_extension_is_built(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123", owners=["alice"])
        executor = FakeExecutor()
        manager = ExtensionBuildManager(global_config, executor=executor)

        runner_state = await manager.run()

        change = runner_state.changes['foo']
        assert change.type == ChangeType.ADD
        assert change.warnings == []
        assert change.errors == []
        assert not runner_state.should_fail()
        assert read_state(global_config) == {
            'foo': {'version': "1.0.0", 'manifest': {'repository': REPO, 'commit': "abc123", 'owners': ["alice"]}},
        }
        assert (global_config.paths.dist_exts_dir / "foo.asar").exists()
        assert (manager.output_dir / "foo.asar").exists()

    @pytest.mark.asyncio
    async def test_monorepo_extensions_share_one_group(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123", owners=["alice"], output="packages/foo/dist")
        write_manifest("bar", repository=REPO, commit="abc123", owners=["alice"], output="packages/bar/dist")
        executor = FakeExecutor()

        runner_state = await ExtensionBuildManager(global_config, executor=executor).run()

        assert len(executor.executed) == 1
        assert sorted(executor.executed[0].extensions) == ["bar", "foo"]
        assert sorted(p.name for p in global_config.paths.dist_exts_dir.iterdir()) == ["bar.asar", "foo.asar"]
        assert not runner_state.should_fail()

    @pytest.mark.asyncio
    async def test_removed_extension_is_deleted(self, global_config, write_state):
        write_state({'baz': {'version': "1.0.0", 'manifest': {'repository': REPO, 'commit': "abc123"}}})
        archive = global_config.paths.dist_exts_dir / "baz.asar"
        archive.write_bytes(b"old")
        executor = FakeExecutor()

        runner_state = await ExtensionBuildManager(global_config, executor=executor).run()

        assert runner_state.changes['baz'].type == ChangeType.REMOVE
        assert not archive.exists()
        assert read_state(global_config) == {}
        assert executor.executed == []
        assert not runner_state.should_fail()


class TestRun:
    @pytest.mark.asyncio
    async def test_owners_only_change_updates_state_without_building(self, global_config, write_manifest, write_state):
        write_state({'foo': {'version': "1.0.0", 'manifest': {'repository': REPO, 'commit': "abc123", 'owners': ["alice"]}}})
        write_manifest("foo", repository=REPO, commit="abc123", owners=["alice", "bob"])
        executor = FakeExecutor()

        runner_state = await ExtensionBuildManager(global_config, executor=executor).run()

        assert runner_state.changes['foo'].type == ChangeType.UPDATE_NO_BUILD
        assert executor.executed == []
        assert read_state(global_config)['foo'] == {
            'version': "1.0.0",
            'manifest': {'repository': REPO, 'commit': "abc123", 'owners': ["alice", "bob"]},
        }

    @pytest.mark.asyncio
    async def test_failed_group_keeps_prior_state_and_other_groups_run(self, global_config, write_manifest, write_state):
        write_state({'foo': {'version': "1.0.0", 'manifest': {'repository': REPO, 'commit': "abc123"}}})
        write_manifest("foo", repository=REPO, commit="def456")
        write_manifest("qux", repository="https://example.com/q.git", commit="abc123")
        executor = FailingFirstExecutor()

        runner_state = await ExtensionBuildManager(global_config, executor=executor).run()

        assert len(executor.executed) == 2
        foo_errors = runner_state.changes['foo'].errors
        assert [(e.type, e.err) for e in foo_errors] == [(ErrorType.UNKNOWN, "container runtime went away")]
        assert runner_state.changes['qux'].errors == []
        assert runner_state.should_fail()
        state = read_state(global_config)
        assert state['foo']['manifest']['commit'] == "abc123"
        assert state['qux']['version'] == "1.0.0"

    @pytest.mark.asyncio
    async def test_reported_failure_fails_run_and_keeps_work_dirs(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123")
        executor = FakeExecutor()
        executor.on_execute = lambda group: PhaseResult(
            phase=GroupPhase.FETCH,
            exit_code=0,
            result=GroupResult.model_validate_json(json.dumps({
                'errors': [{'type': "cloneFailed", 'err': "no route to host"}],
                'manifests': {},
            })),
        )
        manager = ExtensionBuildManager(global_config, executor=executor)

        runner_state = await manager.run()

        assert runner_state.should_fail()
        assert [e.type for e in runner_state.changes['foo'].errors] == [ErrorType.CLONE_FAILED]
        assert read_state(global_config) == {}
        assert manager.group_dir.exists()
        assert "Do not merge." not in manager.summary_path.read_text()

    @pytest.mark.asyncio
    async def test_success_cleans_group_and_store(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123")
        manager = ExtensionBuildManager(global_config, executor=FakeExecutor())

        await manager.run()

        assert not manager.group_dir.exists()
        assert not manager.store_dir.exists()
        assert manager.output_dir.exists()
        assert manager.summary_path.exists()
        assert json.loads(manager.runner_state_path.read_text())['mode'] == "push"

    @pytest.mark.asyncio
    async def test_group_log_collected(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123")
        executor = FakeExecutor()
        executor.on_execute = lambda group: PhaseResult(
            phase=GroupPhase.BUILD,
            exit_code=2,
            result=GroupResult.empty(),
        )
        manager = ExtensionBuildManager(global_config, executor=executor)

        await manager.run()

        log = (manager.group_dir / "0" / "build.log").read_text()
        assert "Group 0 failed in build phase" in log

    @pytest.mark.asyncio
    async def test_broken_manifest_fails_run(self, global_config, write_manifest):
        write_manifest("foo", repository=REPO, commit="abc123")
        (global_config.paths.manifests_exts_dir / "bad.json").write_text("{")

        runner_state = await ExtensionBuildManager(global_config, executor=FakeExecutor()).run()

        assert [e.type for e in runner_state.errors] == [RunnerErrorType.PARSE_MANIFEST_FAILED]
        assert runner_state.changes['foo'].errors == []
        assert runner_state.should_fail()

    @pytest.mark.asyncio
    async def test_insecure_repository_aborts(self, global_config, write_manifest):
        write_manifest("foo", repository="http://example.com/a.git", commit="abc123")
        executor = FakeExecutor()

        with pytest.raises(InsecureRepositoryError):
            await ExtensionBuildManager(global_config, executor=executor).run()
        assert executor.executed == []
        assert not global_config.paths.state_path.exists()

    @pytest.mark.asyncio
    async def test_pull_request_summary(self, global_config, write_manifest, author):
        global_config.mode = RunMode.PULL_REQUEST
        global_config.author = author
        write_manifest("foo", repository=REPO, commit="abc123", owners=["bob"])
        manager = ExtensionBuildManager(global_config, executor=FakeExecutor())

        await manager.run()

        summary = manager.summary_path.read_text()
        assert "Running on behalf of `alice` for PR 42." in summary
        assert "Review all warnings before merging." in summary
        assert "**Author not in owners.**" in summary
