"""
Main build manager that orchestrates an extensions run.
"""
import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from ..config.global_config_loader import GlobalConfig
from ..core.enums import ChangeType, RunnerErrorType
from ..core.models import BuildGroup, RunnerError, RunnerState
from ..core.schemas import ExtensionState
from ..monitoring.logging_collector import LoggingCollector
from ..sandbox.docker_client import DockerClient
from ..sandbox.executor import SandboxExecutor
from ..utils.fs import ensure_dir, write_json_atomic
from .change_detector import ChangeDetector
from .group_planner import GroupPlanner
from .lock import StoreLock
from .manifest_store import ManifestStore
from .reconciler import ResultReconciler
from .report import SummaryWriter


class ExtensionBuildManager:
    """
    Main orchestrator for a run: diff, build, reconcile, persist, report.
    """

    def __init__(self, config: GlobalConfig, executor: Optional[SandboxExecutor] = None):
        """
        Initialize extension build manager.

        Args:
            config: Loaded global configuration
            executor: Group executor to use instead of one backed by the
                host's docker daemon
        """
        self.config = config
        self.paths = config.paths
        self.executor = executor
        self.logger = logging.getLogger(__name__)

        self.work_dir = Path(self.paths.work_dir)
        self.group_dir = self.work_dir / "group"
        self.store_dir = self.work_dir / "store"
        self.output_dir = self.work_dir / "output"
        self.runner_state_path = self.work_dir / "runnerState.json"
        self.summary_path = self.work_dir / "summary.md"

        # Initialize components
        self.manifest_store = ManifestStore(self.paths.manifests_exts_dir, self.paths.state_path)
        self.change_detector = ChangeDetector(config.mode, config.extensions.reviewers)
        self.reconciler = ResultReconciler(
            dist_exts_dir=self.paths.dist_exts_dir,
            artifact_output_dir=self.output_dir,
            api_level=config.extensions.api_level,
            archive_extension=config.extensions.archive_extension,
        )
        self.summary_writer = SummaryWriter(config.extensions.api_level)
        self.logging_collector = LoggingCollector()
        self.lock = StoreLock.for_work_dir(self.work_dir, timeout=config.lock.timeout)

    async def run(self) -> RunnerState:
        """
        Main entry point for a run.

        Returns:
            The final runner state; check should_fail() for the exit status

        Raises:
            InsecureRepositoryError: If any manifest has a disallowed repository
        """
        self.logger.info(f"Starting run in {self.config.mode.value} mode...")

        # Held for the whole run since the work directory is cleaned up front
        async with self.lock:
            ensure_dir(self.work_dir, clean=True)
            ensure_dir(self.output_dir)
            ensure_dir(self.group_dir)

            runner_state = self.compute_state()
            await self.build_groups(runner_state)
            self.apply_manifest_updates(runner_state)
            self.delete_removed(runner_state)
            self.write_outputs(runner_state)

            if runner_state.should_fail():
                self.logger.error("Run completed with errors")
            else:
                self.logger.info("Run completed successfully")
                self._cleanup()

        return runner_state

    def compute_state(self) -> RunnerState:
        """Load the prior state and manifests and classify every change"""
        old_build_state = self.manifest_store.load_build_state()
        runner_state = RunnerState.create(self.config.mode, old_build_state, self.config.author)

        self.change_detector.check_author(runner_state)
        manifests = self.manifest_store.load_manifests(runner_state)
        self.change_detector.detect_changes(runner_state, manifests)

        return runner_state

    def plan_groups(self, runner_state: RunnerState) -> List[BuildGroup]:
        planner = GroupPlanner(
            self.group_dir,
            self.paths.require_work_host_dir() / "group",
            self.config.extensions.default_scripts,
        )
        return planner.plan(runner_state)

    async def build_groups(self, runner_state: RunnerState) -> None:
        """
        Execute and reconcile every group, one at a time.

        A failure while handling one group is attributed to its members and
        never stops the remaining groups.
        """
        if not any(change.buildable for change in runner_state.changes.values()):
            self.logger.info("No extensions require building")
            return

        groups = self.plan_groups(runner_state)
        ensure_dir(self.store_dir)
        self.logger.info(f"Building {len(groups)} groups...")

        async with self._open_executor() as executor:
            for group in groups:
                with self.logging_collector.capture(group):
                    try:
                        outcome = await executor.execute(group)
                        self.reconciler.reconcile(runner_state, group, outcome)
                    except Exception as e:
                        self.logger.exception(f"Failed to build group {group.index}")
                        self.reconciler.apply_uncaught(runner_state, group, e)

    @asynccontextmanager
    async def _open_executor(self) -> AsyncIterator[SandboxExecutor]:
        if self.executor is not None:
            yield self.executor
            return

        sandbox = self.config.sandbox
        async with DockerClient(sandbox.docker_socket, sandbox.api_version) as docker:
            yield SandboxExecutor(
                docker=docker,
                image=sandbox.image,
                store_host_dir=self.paths.require_work_host_dir() / "store",
                container_group_dir=sandbox.container_group_dir,
                container_store_dir=sandbox.container_store_dir,
            )

    def apply_manifest_updates(self, runner_state: RunnerState) -> None:
        """Record new manifests for changes that need no rebuild"""
        for ext, change in runner_state.changes.items():
            if change.type != ChangeType.UPDATE_NO_BUILD:
                continue
            old_state = runner_state.old_build_state[ext]
            runner_state.build_state[ext] = ExtensionState(
                version=old_state.version,
                manifest=change.new_manifest,
            )
            self.logger.info(f"Updated build manifest of {ext} without rebuilding")

    def delete_removed(self, runner_state: RunnerState) -> None:
        """Remove archives and state of deleted extensions, after all builds"""
        for ext, change in runner_state.changes.items():
            if change.type != ChangeType.REMOVE:
                continue

            archive = self.paths.dist_exts_dir / self.reconciler.archive_name(ext)
            try:
                if archive.exists():
                    archive.unlink()
            except OSError as e:
                self.logger.error(f"Failed to delete {ext}: {e}")
                runner_state.errors.append(RunnerError(
                    type=RunnerErrorType.DELETE_CHANGE_FAILED,
                    ext=ext,
                    err=str(e),
                ))
                continue

            runner_state.build_state.pop(ext, None)
            self.logger.info(f"Removed extension: {ext}")

    def write_outputs(self, runner_state: RunnerState) -> None:
        # Local debugging aid, not published
        write_json_atomic(self.runner_state_path, runner_state.to_dict())
        self.manifest_store.save_build_state(runner_state.build_state)
        self.summary_writer.write(runner_state, self.summary_path)
        self.logger.info(f"Summary written to {self.summary_path}")

    def _cleanup(self) -> None:
        # Output, summary and state stay for CI
        for directory in (self.group_dir, self.store_dir):
            if directory.exists():
                shutil.rmtree(directory)
