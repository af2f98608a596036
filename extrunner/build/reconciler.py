"""
Applies a sandbox group result to the runner state.
"""
import logging
import shutil
from pathlib import Path
from typing import AbstractSet, List, Optional, Set, Tuple

from ..core.enums import GROUP_SCOPED_ERRORS, ChangeType, ErrorType, RunnerWarningType
from ..core.models import BuildGroup, ExtensionChange, ExtensionError, RunnerState, RunnerWarning
from ..core.schemas import ExtensionState, GroupResult, ResultPackageManifest
from ..sandbox.executor import PhaseResult
from .version import VersionAnalyzer


class ResultReconciler:
    """
    Turns what a sandbox reported into errors, warnings and build state.

    Failures are attributed as narrowly as possible: packageFailed affects a
    single extension, everything else the sandbox reports affects the whole
    group.
    """

    def __init__(
        self,
        dist_exts_dir: Path,
        artifact_output_dir: Path,
        api_level: int,
        archive_extension: str = ".asar"
    ):
        """
        Initialize result reconciler.

        Args:
            dist_exts_dir: Published archives directory
            artifact_output_dir: CI artifact directory for this run
            api_level: API level built extensions are expected to declare
            archive_extension: File extension of packaged archives
        """
        self.dist_exts_dir = Path(dist_exts_dir)
        self.artifact_output_dir = Path(artifact_output_dir)
        self.archive_extension = archive_extension
        self.version_analyzer = VersionAnalyzer(api_level)
        self.logger = logging.getLogger(__name__)

    def archive_name(self, ext: str) -> str:
        return f"{ext}{self.archive_extension}"

    def reconcile(self, runner_state: RunnerState, group: BuildGroup, outcome: PhaseResult) -> None:
        """
        Record the outcome of the last phase that ran for a group.

        Args:
            runner_state: State of this run
            group: The group that was executed
            outcome: Exit code and parsed result of the last phase
        """
        result = outcome.result
        errored = self._apply_errors(runner_state, group, result)

        group_failed = any(ErrorType(record.type) in GROUP_SCOPED_ERRORS for record in result.errors)
        if outcome.exit_code != 0:
            # Members without an error of their own still did not build
            self._add_to_members(runner_state, group, ExtensionError(
                type=ErrorType.UNKNOWN,
                err=f"{outcome.phase.value} container exited with code {outcome.exit_code}",
            ), skip=errored)
            group_failed = True

        if group_failed:
            self.logger.error(f"Group {group.index} failed in {outcome.phase.value} phase")
            return

        self._apply_manifests(runner_state, group, result, errored)

    def apply_uncaught(self, runner_state: RunnerState, group: BuildGroup, exc: BaseException) -> None:
        """Attribute an unexpected failure to every member of the group"""
        self.logger.error(f"Failed to build group {group.index}: {exc}")
        failed = self._add_to_members(runner_state, group, ExtensionError(type=ErrorType.UNKNOWN, err=str(exc)))

        # A failed member keeps its last good state
        for ext in failed:
            old_state = runner_state.old_build_state.get(ext)
            if old_state is None:
                runner_state.build_state.pop(ext, None)
            else:
                runner_state.build_state[ext] = old_state

    def _apply_errors(self, runner_state: RunnerState, group: BuildGroup, result: GroupResult) -> Set[str]:
        errored: Set[str] = set()

        for record in result.errors:
            error_type = ErrorType(record.type)

            if error_type in GROUP_SCOPED_ERRORS:
                error = ExtensionError(
                    type=error_type,
                    err=record.err,
                    script=getattr(record, 'script', None),
                )
                errored.update(self._add_to_members(runner_state, group, error))
                continue

            # packageFailed names a single extension
            if record.ext not in group.extensions or record.ext not in runner_state.changes:
                self._unknown_warning(
                    runner_state,
                    f"Group {group.index} reported a package failure for unknown extension {record.ext}",
                )
                continue

            runner_state.changes[record.ext].add_error(ExtensionError(type=error_type, err=record.err))
            errored.add(record.ext)

        return errored

    def _apply_manifests(
        self,
        runner_state: RunnerState,
        group: BuildGroup,
        result: GroupResult,
        errored: Set[str]
    ) -> None:
        built: List[Tuple[str, ExtensionChange, ResultPackageManifest, Path]] = []
        for ext, manifest in result.manifests.items():
            if ext not in group.extensions:
                self._unknown_warning(runner_state, f"Group {group.index} built unknown extension {ext}")
                continue
            if ext in errored:
                continue

            change = runner_state.changes.get(ext)
            if change is None or change.type not in (ChangeType.ADD, ChangeType.UPDATE):
                self._unknown_warning(runner_state, f"Build result for {ext} does not match a buildable change")
                continue

            archive = group.output_dir / self.archive_name(ext)
            if not archive.is_file():
                self.logger.warning(f"Output archive does not exist for {ext}: {archive}")
                change.add_error(ExtensionError(type=ErrorType.PACKAGE_FAILED, err="Output archive does not exist"))
                continue
            built.append((ext, change, manifest, archive))

        # State is only recorded once every archive of the group is in place
        self.dist_exts_dir.mkdir(parents=True, exist_ok=True)
        self.artifact_output_dir.mkdir(parents=True, exist_ok=True)
        for _, _, _, archive in built:
            shutil.copyfile(archive, self.dist_exts_dir / archive.name)
            shutil.copyfile(archive, self.artifact_output_dir / archive.name)

        for ext, change, manifest, _ in built:
            old_state = runner_state.old_build_state.get(ext)
            runner_state.build_state[ext] = ExtensionState(version=manifest.version, manifest=change.new_manifest)
            self.version_analyzer.analyze(ext, change, manifest, old_state)
            self.logger.info(f"Built {ext} version {manifest.version}")

        for ext in group.extensions:
            if ext in errored or ext in result.manifests:
                continue
            change = runner_state.changes.get(ext)
            if change is None:
                continue
            self.logger.warning(f"Sandbox reported neither a manifest nor an error for {ext}")
            change.add_error(ExtensionError(
                type=ErrorType.PACKAGE_FAILED,
                err="Build result has no manifest for this extension",
            ))

    def _add_to_members(
        self,
        runner_state: RunnerState,
        group: BuildGroup,
        error: ExtensionError,
        skip: AbstractSet[str] = frozenset()
    ) -> Set[str]:
        applied: Set[str] = set()
        for ext in group.extensions:
            if ext in skip:
                continue
            change = runner_state.changes.get(ext)
            if change is None:
                self._unknown_warning(runner_state, f"Group {group.index} member {ext} has no change")
                continue
            change.add_error(ExtensionError(type=error.type, err=error.err, script=error.script))
            applied.add(ext)
        return applied

    def _unknown_warning(self, runner_state: RunnerState, detail: Optional[str] = None) -> None:
        self.logger.warning(detail)
        runner_state.warnings.append(RunnerWarning(type=RunnerWarningType.UNKNOWN, detail=detail))
