"""
Runs a build group through its fetch and build containers.
"""
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..core.enums import GroupMode, GroupPhase, GroupState
from ..core.exceptions import GroupResultError
from ..core.models import BuildGroup
from ..core.schemas import GroupResult, parse_group_result
from ..utils.fs import ensure_dir, write_json_atomic, write_text_atomic
from .docker_client import ContainerSpec, DockerClient, Mount

BUILD_MODE_ENV = "EXTRUNNER_BUILD_MODE"


@dataclass
class PhaseResult:
    """Outcome of one container phase"""
    phase: GroupPhase
    exit_code: int
    result: GroupResult

    @property
    def failed(self) -> bool:
        return self.exit_code != 0 or bool(self.result.errors)


class SandboxExecutor:
    """
    Executes groups in two isolated containers.

    The fetch phase has network access and a writable dependency store.
    The build phase has no network, a read-only store and a writable output
    directory. The store is trusted not to be poisoned by the fetch phase.
    """

    def __init__(
        self,
        docker: DockerClient,
        image: str,
        store_host_dir: Path,
        container_group_dir: str = "/extrunner/group",
        container_store_dir: str = "/extrunner/store"
    ):
        """
        Initialize sandbox executor.

        Args:
            docker: Client for the host's docker daemon
            image: Runner image started for both phases
            store_host_dir: Dependency store as the docker host sees it
            container_group_dir: Where the group directory is mounted
            container_store_dir: Where the dependency store is mounted
        """
        self.docker = docker
        self.image = image
        self.store_host_dir = Path(store_host_dir)
        self.container_group_dir = container_group_dir
        self.container_store_dir = container_store_dir
        self.logger = logging.getLogger(__name__)

    def _target(self, name: str) -> str:
        return posixpath.join(self.container_group_dir, name)

    def _env(self, mode: GroupMode) -> List[str]:
        return [
            f"{BUILD_MODE_ENV}={mode.value}",
            f"EXTRUNNER_GROUP_PATH={self.container_group_dir}",
            f"EXTRUNNER_STORE_PATH={self.container_store_dir}",
        ]

    def fetch_mounts(self, group: BuildGroup) -> List[Mount]:
        host = group.host_directory
        return [
            Mount(target=self._target("state.json"), source=str(host / "state.json"), read_only=True),
            Mount(target=self._target("result.json"), source=str(host / "result.json")),
            # pnpm fetch still writes node_modules, so the source stays writable
            Mount(target=self._target("source"), source=str(host / "source")),
            Mount(target=self.container_store_dir, source=str(self.store_host_dir)),
        ]

    def build_mounts(self, group: BuildGroup) -> List[Mount]:
        host = group.host_directory
        return [
            Mount(target=self._target("state.json"), source=str(host / "state.json"), read_only=True),
            Mount(target=self._target("result.json"), source=str(host / "result.json")),
            Mount(target=self._target("source"), source=str(host / "source")),
            Mount(target=self.container_store_dir, source=str(self.store_host_dir), read_only=True),
            Mount(target=self._target("output"), source=str(host / "output")),
        ]

    def fetch_spec(self, group: BuildGroup) -> ContainerSpec:
        return ContainerSpec(
            image=self.image,
            env=self._env(GroupMode.FETCH),
            mounts=self.fetch_mounts(group),
            labels={'extrunner.group': str(group.index), 'extrunner.phase': GroupPhase.FETCH.value},
        )

    def build_spec(self, group: BuildGroup) -> ContainerSpec:
        return ContainerSpec(
            image=self.image,
            env=self._env(GroupMode.BUILD),
            mounts=self.build_mounts(group),
            network_disabled=True,
            labels={'extrunner.group': str(group.index), 'extrunner.phase': GroupPhase.BUILD.value},
        )

    def prepare(self, group: BuildGroup) -> None:
        """Write the instructions and an empty result so both can be mounted"""
        write_json_atomic(group.instructions_path, group.instructions().model_dump(mode="json"))
        write_text_atomic(group.result_path, GroupResult.empty().to_json())
        ensure_dir(group.output_dir, clean=True)

    def read_result(self, group: BuildGroup) -> GroupResult:
        """
        Re-read the result after a phase.

        Raises:
            GroupResultError: If the file is missing or malformed
        """
        try:
            raw = group.result_path.read_bytes()
        except FileNotFoundError as e:
            raise GroupResultError(f"Group result missing: {group.result_path}") from e
        return parse_group_result(raw)

    async def run_phase(self, group: BuildGroup, phase: GroupPhase) -> PhaseResult:
        spec = self.fetch_spec(group) if phase == GroupPhase.FETCH else self.build_spec(group)
        self.logger.info(f"Running {phase.value} phase for group {group.index} ({group.repository}@{group.commit})")

        exit_code = await self.docker.run_container(spec)
        return PhaseResult(phase=phase, exit_code=exit_code, result=self.read_result(group))

    async def execute(self, group: BuildGroup) -> PhaseResult:
        """
        Fetch then build a group. Build never starts if fetch failed.

        Returns:
            The outcome of the last phase that ran
        """
        self.prepare(group)

        group.state = GroupState.FETCHING
        try:
            fetch = await self.run_phase(group, GroupPhase.FETCH)
        except Exception:
            group.state = GroupState.FETCH_FAILED
            raise
        group.result = fetch.result

        if fetch.failed:
            group.state = GroupState.FETCH_FAILED
            self.logger.error(f"Fetch failed for group {group.index}: exit code {fetch.exit_code}")
            return fetch
        group.state = GroupState.FETCHED

        group.state = GroupState.BUILDING
        try:
            build = await self.run_phase(group, GroupPhase.BUILD)
        except Exception:
            group.state = GroupState.BUILD_FAILED
            raise
        group.result = build.result

        if build.failed:
            group.state = GroupState.BUILD_FAILED
            self.logger.error(f"Build failed for group {group.index}: exit code {build.exit_code}")
        else:
            group.state = GroupState.BUILT
            self.logger.info(f"Group {group.index} built")
        return build
