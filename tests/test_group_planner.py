"""
Tests for build group planning.
"""

import pytest

from conftest import make_manifest, make_state
from extrunner.build.group_planner import GroupPlanner, group_key
from extrunner.core.enums import ChangeType, GroupState, RunMode
from extrunner.core.models import ExtensionChange, RunnerState


@pytest.fixture
def planner(tmp_path):
    return GroupPlanner(tmp_path / "group", tmp_path / "host" / "group")


def state_with(changes):
    runner_state = RunnerState.create(RunMode.PUSH, {})
    runner_state.changes.update(changes)
    return runner_state


def add(**fields):
    return ExtensionChange(type=ChangeType.ADD, new_manifest=make_manifest(**fields))


class TestGroupKey:
    def test_key_format(self):
        assert group_key("https://example.com/a.git", "abc", ["build"]) == 'https://example.com/a.git-abc-["build"]'

    def test_script_order_matters(self):
        assert group_key("r", "c", ["a", "b"]) != group_key("r", "c", ["b", "a"])

    def test_key_is_pure(self):
        assert group_key("r", "c", ("a",)) == group_key("r", "c", ["a"])


class TestGroupPlanner:
    def test_shared_checkout_makes_one_group(self, planner):
        runner_state = state_with({
            'foo': add(output="packages/foo/dist"),
            'bar': add(output="packages/bar/dist"),
        })

        groups = planner.plan(runner_state)

        assert len(groups) == 1
        group = groups[0]
        assert group.index == 0
        assert group.extensions == ['foo', 'bar']
        assert group.outputs == {'foo': "packages/foo/dist", 'bar': "packages/bar/dist"}
        assert group.state == GroupState.PENDING

    def test_different_commit_or_scripts_split_groups(self, planner):
        runner_state = state_with({
            'foo': add(commit="abc"),
            'bar': add(commit="def"),
            'baz': add(commit="abc", scripts=["build", "package"]),
            'qux': add(commit="abc"),
        })

        groups = planner.plan(runner_state)

        assert [g.extensions for g in groups] == [['foo', 'qux'], ['bar'], ['baz']]
        assert [g.index for g in groups] == [0, 1, 2]

    def test_defaults(self, planner):
        groups = planner.plan(state_with({'foo': add()}))

        assert groups[0].scripts == ["build"]
        assert groups[0].outputs == {'foo': "dist/foo"}

    def test_explicit_default_scripts_share_group(self, planner):
        groups = planner.plan(state_with({'foo': add(), 'bar': add(scripts=["build"])}))

        assert len(groups) == 1

    def test_non_buildable_changes_skipped(self, planner):
        old = make_manifest(owners=["alice"])
        runner_state = state_with({
            'gone': ExtensionChange(type=ChangeType.REMOVE, old_manifest=old),
            'owners': ExtensionChange(
                type=ChangeType.UPDATE_NO_BUILD,
                old_manifest=old,
                new_manifest=make_manifest(owners=["bob"]),
            ),
        })

        assert planner.plan(runner_state) == []

    def test_group_directories_created_clean(self, planner, tmp_path):
        stale = tmp_path / "group" / "0" / "source" / "stale.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("left over")

        group = planner.plan(state_with({'foo': add()}))[0]

        assert group.directory == tmp_path / "group" / "0"
        assert group.host_directory == tmp_path / "host" / "group" / "0"
        assert group.source_dir.is_dir()
        assert group.output_dir.is_dir()
        assert not stale.exists()

    def test_custom_default_scripts(self, tmp_path):
        planner = GroupPlanner(tmp_path / "group", tmp_path / "host", default_scripts=["dist"])

        groups = planner.plan(state_with({'foo': add()}))

        assert groups[0].scripts == ["dist"]

    def test_instructions_only_carry_sandbox_needs(self, planner):
        runner_state = RunnerState.create(RunMode.PUSH, {'foo': make_state(make_manifest(commit="abc"))})
        runner_state.changes['foo'] = ExtensionChange(
            type=ChangeType.UPDATE,
            old_manifest=make_manifest(commit="abc"),
            new_manifest=make_manifest(commit="def", owners=["alice"]),
        )

        instructions = planner.plan(runner_state)[0].instructions()

        assert instructions.model_dump() == {
            'repository': "https://example.com/a.git",
            'commit': "def",
            'scripts': ["build"],
            'outputs': {'foo': "dist/foo"},
        }
