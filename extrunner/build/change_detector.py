"""
Detects changes between build manifests and the last successful build state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlparse
import logging

from ..core.enums import ChangeType, RunMode, RunnerWarningType, WarningType
from ..core.exceptions import InsecureRepositoryError
from ..core.models import ExtensionChange, ExtensionWarning, RunnerAuthor, RunnerState, RunnerWarning
from ..core.schemas import BuildManifest


def validate_repository(ext: str, repository: str) -> None:
    """
    Only anonymous HTTPS clones are allowed.

    Raises:
        InsecureRepositoryError: For any other scheme or embedded credentials
    """
    parsed = urlparse(repository)
    if parsed.scheme != "https":
        raise InsecureRepositoryError(ext, repository, "Only HTTPS Git URLs are supported")
    if parsed.username is not None or parsed.password is not None:
        raise InsecureRepositoryError(ext, repository, "Cannot provide credentials to Git repository")


def has_changed(old: Any, new: Any) -> bool:
    """Compare two optional manifest fields; lists compare by position"""
    if old is None or new is None:
        return old is not new
    return old != new


def author_can_edit(manifest: BuildManifest, author: RunnerAuthor, reviewers: Iterable[str]) -> bool:
    return (
        manifest.owners is None
        or author.id in reviewers
        or any(owner == author.username or owner == f"id:{author.id}" for owner in manifest.owners)
    )


@dataclass(frozen=True)
class ManifestDiff:
    """Field-level comparison of an old and a new build manifest"""
    repository_changed: bool
    commit_changed: bool
    build_config_changed: bool
    owners_changed: bool

    @property
    def source_changed(self) -> bool:
        # A new repository forces a rebuild even if the hash happens to match
        return self.repository_changed or self.commit_changed

    @classmethod
    def compare(cls, old: BuildManifest, new: BuildManifest) -> 'ManifestDiff':
        return cls(
            repository_changed=has_changed(old.repository, new.repository),
            commit_changed=has_changed(old.commit, new.commit),
            build_config_changed=has_changed(old.scripts, new.scripts) or has_changed(old.output, new.output),
            owners_changed=has_changed(old.owners, new.owners),
        )


class ChangeDetector:
    """Classifies every extension into an add/update/updateNoBuild/remove change"""

    def __init__(self, mode: RunMode, reviewers: Optional[Iterable[str]] = None):
        """
        Initialize change detector.

        Args:
            mode: How the runner was triggered; force-all rebuilds everything
            reviewers: Author IDs that may edit any manifest
        """
        self.mode = mode
        self.reviewers = frozenset(reviewers or ())
        self.logger = logging.getLogger(__name__)

    def check_author(self, runner_state: RunnerState) -> None:
        if self.mode == RunMode.PULL_REQUEST and runner_state.author is None:
            # CI isn't providing the author (maybe the workflow is broken?)
            self.logger.warning("Running for a pull request without author context")
            runner_state.warnings.append(RunnerWarning(type=RunnerWarningType.MISSING_AUTHOR))

    def detect_changes(
        self,
        runner_state: RunnerState,
        manifests: Dict[str, BuildManifest]
    ) -> Dict[str, ExtensionChange]:
        """
        Detect changes and record them on the runner state.

        Args:
            runner_state: State of this run; old_build_state is the baseline
            manifests: Current manifests keyed by extension ID

        Returns:
            The recorded changes keyed by extension ID

        Raises:
            InsecureRepositoryError: If any manifest has a disallowed repository URL
        """
        for ext, manifest in manifests.items():
            validate_repository(ext, manifest.repository)

        for ext, new_manifest in manifests.items():
            old_state = runner_state.old_build_state.get(ext)

            if old_state is None:
                change = self._added(new_manifest, runner_state.author)
                self.logger.info(f"New extension detected: {ext}")
            else:
                change = self._updated(old_state.manifest, new_manifest, runner_state.author)
                if change is None:
                    self.logger.debug(f"Extension unchanged: {ext}")
                    continue
                self.logger.info(f"Changed extension detected: {ext} ({change.type.value})")

            runner_state.changes[ext] = change

        for ext, old_state in runner_state.old_build_state.items():
            if ext not in manifests:
                self.logger.info(f"Removed extension detected: {ext}")
                runner_state.changes[ext] = ExtensionChange(
                    type=ChangeType.REMOVE,
                    old_manifest=old_state.manifest,
                )

        counts = {t: 0 for t in ChangeType}
        for change in runner_state.changes.values():
            counts[change.type] += 1
        self.logger.info(
            "Change detection complete: "
            + ", ".join(f"{t.value}={n}" for t, n in counts.items())
        )

        return runner_state.changes

    def _added(self, new_manifest: BuildManifest, author: Optional[RunnerAuthor]) -> ExtensionChange:
        change = ExtensionChange(type=ChangeType.ADD, new_manifest=new_manifest)

        if new_manifest.owners is None:
            # Author forgot to add an owner list
            change.add_warning(ExtensionWarning(type=WarningType.NO_OWNERS_SPECIFIED))
        elif author is not None and not author_can_edit(new_manifest, author, self.reviewers):
            # Author forgot to add themselves to the owner list
            change.add_warning(ExtensionWarning(type=WarningType.AUTHOR_NOT_IN_OWNERS))

        return change

    def _updated(
        self,
        old_manifest: BuildManifest,
        new_manifest: BuildManifest,
        author: Optional[RunnerAuthor]
    ) -> Optional[ExtensionChange]:
        diff = ManifestDiff.compare(old_manifest, new_manifest)
        should_build = (
            self.mode == RunMode.FORCE_ALL
            or diff.source_changed
            or diff.build_config_changed
        )

        if should_build:
            change_type = ChangeType.UPDATE
        elif diff.owners_changed:
            # Nothing to build, but the change still needs a warning
            change_type = ChangeType.UPDATE_NO_BUILD
        else:
            return None

        change = ExtensionChange(
            type=change_type,
            old_manifest=old_manifest,
            new_manifest=new_manifest,
        )

        if new_manifest.owners is None:
            change.add_warning(ExtensionWarning(type=WarningType.NO_OWNERS_SPECIFIED))
        if diff.repository_changed:
            change.add_warning(ExtensionWarning(type=WarningType.REPOSITORY_CHANGED))
        if diff.build_config_changed:
            change.add_warning(ExtensionWarning(type=WarningType.BUILD_CONFIG_CHANGED))
        if diff.owners_changed:
            change.add_warning(ExtensionWarning(type=WarningType.OWNERS_CHANGED))

        if author is not None:
            owner_for_old = author_can_edit(old_manifest, author, self.reviewers)
            owner_for_new = author_can_edit(new_manifest, author, self.reviewers)

            if not owner_for_new:
                change.add_warning(ExtensionWarning(type=WarningType.AUTHOR_NOT_IN_OWNERS))
            if not owner_for_old and owner_for_new:
                # Author granted themselves access; flag it for review
                change.add_warning(ExtensionWarning(type=WarningType.AUTHOR_ADDED_TO_OWNERS))

        return change
