"""Pytest configuration and fixtures for extrunner tests."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from extrunner.config.global_config_loader import GlobalConfig
from extrunner.core.enums import GroupPhase, GroupState
from extrunner.core.models import BuildGroup, RunnerAuthor
from extrunner.core.schemas import BuildManifest, ExtensionState, GroupResult
from extrunner.sandbox.executor import PhaseResult

# Configure logging
logging.basicConfig(level=logging.INFO)

REPO = "https://example.com/a.git"


def make_manifest(
    repository: str = REPO,
    commit: str = "abc123",
    owners: Optional[List[str]] = None,
    scripts: Optional[List[str]] = None,
    output: Optional[str] = None,
) -> BuildManifest:
    data: Dict[str, Any] = {'repository': repository, 'commit': commit}
    if owners is not None:
        data['owners'] = owners
    if scripts is not None:
        data['scripts'] = scripts
    if output is not None:
        data['output'] = output
    return BuildManifest.model_validate(data)


def make_state(manifest: BuildManifest, version: Optional[str] = "1.0.0") -> ExtensionState:
    return ExtensionState(version=version, manifest=manifest)


class FakeExecutor:
    """
    Stands in for the sandbox. For every group it writes an archive per
    member and reports the configured package manifests.
    """

    def __init__(self, manifests: Optional[Dict[str, Dict[str, Any]]] = None):
        self.manifests = manifests or {}
        self.executed: List[BuildGroup] = []
        self.on_execute: Optional[Callable[[BuildGroup], PhaseResult]] = None

    async def execute(self, group: BuildGroup) -> PhaseResult:
        self.executed.append(group)
        if self.on_execute is not None:
            return self.on_execute(group)

        result = {'errors': [], 'manifests': {}}
        for ext in group.extensions:
            manifest = self.manifests.get(ext, {'id': ext, 'version': '1.0.0', 'apiLevel': 2})
            result['manifests'][ext] = manifest
            (group.output_dir / f"{ext}.asar").write_bytes(b"archive " + ext.encode())

        group.state = GroupState.BUILT
        return PhaseResult(
            phase=GroupPhase.BUILD,
            exit_code=0,
            result=GroupResult.model_validate_json(json.dumps(result)),
        )


@pytest.fixture
def global_config(tmp_path) -> GlobalConfig:
    """Config with every directory under tmp_path"""
    config = GlobalConfig.default()
    config.paths.manifests_dir = str(tmp_path / "manifests")
    config.paths.dist_dir = str(tmp_path / "dist")
    config.paths.work_dir = str(tmp_path / "work")
    config.paths.work_host_dir = "/host/work"
    config.lock.timeout = 1
    (tmp_path / "manifests" / "exts").mkdir(parents=True)
    (tmp_path / "dist" / "exts").mkdir(parents=True)
    return config


@pytest.fixture
def write_manifest(global_config):
    def _write(ext: str, **fields) -> Path:
        path = global_config.paths.manifests_exts_dir / f"{ext}.json"
        path.write_text(json.dumps(fields))
        return path
    return _write


@pytest.fixture
def write_state(global_config):
    def _write(state: Dict[str, Dict[str, Any]]) -> Path:
        path = global_config.paths.state_path
        path.write_text(json.dumps(state, indent=2))
        return path
    return _write


@pytest.fixture
def author() -> RunnerAuthor:
    return RunnerAuthor(username="alice", id="1001", pr="42")
