"""
Run report: console summary and the markdown summary posted by CI.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from ..core.enums import ChangeStatus, ChangeType, ErrorType, RunMode, RunnerErrorType, RunnerWarningType, WarningType
from ..core.models import ExtensionChange, ExtensionError, ExtensionWarning, RunnerState
from ..utils.fs import write_text_atomic
from ..utils.git import get_commit_diff, get_commit_link, get_commit_tree, maybe_wrap_link

MODE_EMOJIS: Dict[RunMode, Tuple[str, str]] = {
    RunMode.PUSH: (":shipit:", "push"),
    RunMode.PULL_REQUEST: (":hammer:", "PR"),
    RunMode.FORCE_ALL: (":recycle:", "force-all"),
}

CHANGE_EMOJIS: Dict[ChangeType, Tuple[str, str]] = {
    ChangeType.ADD: (":new:", "New extension."),
    ChangeType.UPDATE: (":repeat:", "Updating extension."),
    ChangeType.UPDATE_NO_BUILD: (":repeat_one:", "Updating build manifest."),
    ChangeType.REMOVE: (":put_litter_in_its_place:", "Deleting extension."),
}

WARNING_MERGE_MESSAGE = "Review all warnings before merging."
ERROR_MERGE_MESSAGE = "Do not merge."

RUNNER_WARNING_LINES = {
    RunnerWarningType.UNKNOWN: "**Unknown warning.** Check the build log for more info.",
    RunnerWarningType.MISSING_AUTHOR: "**Author context is missing.** Check that the build workflows are correct.",
}

RUNNER_ERROR_LINES = {
    RunnerErrorType.PARSE_MANIFEST_FAILED: "**Build manifests failed to parse.** Check that all manifests are valid.",
    RunnerErrorType.DELETE_CHANGE_FAILED: "**Failed to delete extensions.** Check the build log for more info.",
}

BROKEN_REPOSITORY = "The extension repository might be broken, or this might be a bug in the runner."

T = TypeVar('T')


def unique_by_type(values: Sequence[T]) -> List[T]:
    """First entry of every tag, in order of appearance"""
    seen = set()
    unique: List[T] = []
    for value in values:
        if value.type not in seen:
            seen.add(value.type)
            unique.append(value)
    return unique


def format_commit(repository: str, commit: str, old_commit: Optional[str] = None) -> str:
    result = maybe_wrap_link(commit, get_commit_link(repository, commit))

    tree = get_commit_tree(repository, commit)
    if tree is not None:
        result += f" ([Tree]({tree}))"

    if old_commit is not None:
        diff = get_commit_diff(repository, old_commit, commit)
        if diff is not None:
            result += f" ([Diff]({diff}))"

    return result


def describe_warning(ext: str, warning: ExtensionWarning, api_level: int) -> str:
    if warning.type == WarningType.INVALID_API_LEVEL:
        got = warning.value if warning.value is not None else "none"
        return f"**Invalid API level** (expected {api_level}, got {got}). This extension will not load."
    if warning.type == WarningType.INVALID_ID:
        return f"**Mismatched IDs** (expected {ext}, got {warning.value}). Ensure the same ID is used across all manifests."
    if warning.type == WarningType.IRREGULAR_VERSION:
        if warning.value is None:
            return "**Missing version.** Updates may fail for users."
        return (
            f"**Irregular version** (got {warning.value}). This does not currently cause issues, "
            "but using a standard version format may be required in the future."
        )
    if warning.type == WarningType.SAME_OR_LOWER_VERSION:
        if warning.new_version == warning.old_version:
            return "**Same version.** Updates will fail for users."
        return (
            "**Downgraded version.** This does not currently cause issues, "
            "but always incrementing versions may be required in the future."
        )
    if warning.type == WarningType.NO_OWNERS_SPECIFIED:
        return "**No owners specified.** This should be set to prevent extension hijacking."
    if warning.type == WarningType.REPOSITORY_CHANGED:
        return "**Repository changed.** Check that the new repository is not malicious."
    if warning.type == WarningType.BUILD_CONFIG_CHANGED:
        return "**Build config changed.** Recheck the build script and output artifact."
    if warning.type == WarningType.AUTHOR_NOT_IN_OWNERS:
        return "**Author not in owners.** Check that the author has permission to update this extension."
    if warning.type == WarningType.OWNERS_CHANGED:
        return "**Owners changed.** Check that all owners should be able to update this extension."
    return "**Author added themselves to owners.** Check that the author has permission to adopt this extension."


def describe_error(error: ExtensionError) -> str:
    if error.type == ErrorType.CLONE_FAILED:
        return "**Clone failed.** Check that the target Git forge is online."
    if error.type == ErrorType.FETCH_FAILED:
        return f"**Fetch failed.** Check that the lockfile is up to date. {BROKEN_REPOSITORY}"
    if error.type == ErrorType.INSTALL_FAILED:
        return f"**Install failed.** Check that the lockfile is up to date. {BROKEN_REPOSITORY}"
    if error.type == ErrorType.SCRIPT_FAILED:
        return f"**Running script {error.script} failed.** {BROKEN_REPOSITORY}"
    if error.type == ErrorType.PACKAGE_FAILED:
        return "**Package failed.** Check that the output path is correct. This might be a bug in the runner."
    return "**Unknown error.** Check the build log for more info."


@dataclass
class BuildReport:
    """Outcome of a run, grouped by change status"""
    mode: RunMode
    successful: List[str] = field(default_factory=list)
    with_warnings: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    runner_warnings: int = 0
    runner_errors: int = 0

    @classmethod
    def from_runner_state(cls, runner_state: RunnerState) -> 'BuildReport':
        report = cls(
            mode=runner_state.mode,
            runner_warnings=len(runner_state.warnings),
            runner_errors=len(runner_state.errors),
        )
        for ext, change in runner_state.changes.items():
            if change.status == ChangeStatus.FAILED:
                report.failed.append(ext)
            elif change.status == ChangeStatus.WARNINGS:
                report.with_warnings.append(ext)
            else:
                report.successful.append(ext)
        return report

    def total_changes(self) -> int:
        return len(self.successful) + len(self.with_warnings) + len(self.failed)

    def has_issues(self) -> bool:
        return bool(self.failed or self.runner_errors)

    def print_summary(self):
        """Print human-readable summary"""
        print(f"\n{'='*80}")
        print(f"EXTENSIONS REPORT ({self.mode.value})")
        print(f"{'='*80}")
        print(f"✅ Built successfully: {len(self.successful)} extensions")
        for ext in self.successful:
            print(f"   - {ext}")

        if self.with_warnings:
            print(f"\n⚠️  Built with warnings: {len(self.with_warnings)} extensions")
            for ext in self.with_warnings:
                print(f"   - {ext}")

        if self.failed:
            print(f"\n❌ Failed: {len(self.failed)} extensions")
            for ext in self.failed:
                print(f"   - {ext}")

        if self.runner_warnings or self.runner_errors:
            print(f"\nRunner: {self.runner_warnings} warning(s), {self.runner_errors} error(s)")

        print(f"{'='*80}\n")


class SummaryWriter:
    """Renders the markdown summary of a run"""

    def __init__(self, api_level: int):
        self.api_level = api_level

    def render(self, runner_state: RunnerState) -> str:
        pr_mode = runner_state.mode == RunMode.PULL_REQUEST
        summary = "# Extensions state\n\n"

        emoji, mode_name = MODE_EMOJIS[runner_state.mode]
        summary += f"- {emoji} Running in {mode_name} mode.\n"
        author = runner_state.author
        if author is not None:
            if author.pr is not None:
                summary += f"  - Running on behalf of `{author.username}` for PR {author.pr}.\n"
            else:
                summary += f"  - Running on behalf of `{author.username}`.\n"

        report = BuildReport.from_runner_state(runner_state)
        if report.total_changes():
            summary += f"- Processed {report.total_changes()} extension change(s).\n"
            if report.successful:
                summary += f"  - :white_check_mark: {len(report.successful)} extension(s) built successfully.\n"
            if report.with_warnings:
                summary += f"  - :warning: {len(report.with_warnings)} extension(s) **built with warnings**."
                summary += f" {WARNING_MERGE_MESSAGE}\n" if pr_mode else "\n"
            if report.failed:
                summary += f"  - :x: {len(report.failed)} extension(s) **failed to build**."
                summary += f" {ERROR_MERGE_MESSAGE}\n" if pr_mode else "\n"
        else:
            summary += "- No extension changes.\n"

        if runner_state.warnings:
            summary += f"- :warning: Runner completed with **{len(runner_state.warnings)} warning(s).**\n"
            for warning in unique_by_type(runner_state.warnings):
                summary += f"  - {RUNNER_WARNING_LINES[warning.type]}\n"

        if runner_state.errors:
            summary += f"- :x: Runner completed with **{len(runner_state.errors)} error(s).**\n"
            for error in unique_by_type(runner_state.errors):
                summary += f"  - {RUNNER_ERROR_LINES[error.type]}\n"

        summary += "\n"

        for ext, change in runner_state.changes.items():
            summary += self._render_change(runner_state, ext, change, pr_mode)

        return summary.strip() + "\n"

    def _render_change(self, runner_state: RunnerState, ext: str, change: ExtensionChange, pr_mode: bool) -> str:
        section = f"## {ext}\n\n"

        emoji, type_name = CHANGE_EMOJIS[change.type]
        section += f"- {emoji} {type_name}\n"

        if change.type in (ChangeType.ADD, ChangeType.REMOVE):
            manifest = change.manifest
            section += f"- Repository: <{manifest.repository}>\n"
            section += f"- Commit: {format_commit(manifest.repository, manifest.commit)}\n"
        else:
            old, new = change.old_manifest, change.new_manifest
            if old.repository != new.repository:
                section += f"- Old repository: <{old.repository}>\n"
                section += f"- New repository: <{new.repository}>\n"
            else:
                section += f"- Repository: <{new.repository}>\n"

            if old.commit != new.commit:
                section += f"- Old commit: {format_commit(old.repository, old.commit)}\n"
                # A diff across repositories is meaningless
                old_commit = old.commit if old.repository == new.repository else None
                section += f"- New commit: {format_commit(new.repository, new.commit, old_commit)}\n"
            else:
                section += f"- Commit: {format_commit(new.repository, new.commit)}\n"

            old_state = runner_state.old_build_state.get(ext)
            new_state = runner_state.build_state.get(ext)
            if new_state is not None and new_state.version is not None:
                if old_state is not None and old_state.version is not None:
                    section += f"- Old version: {old_state.version}\n"
                    section += f"- New version: {new_state.version}\n"
                else:
                    section += f"- Version: {new_state.version}\n"

        if change.type == ChangeType.ADD:
            new_state = runner_state.build_state.get(ext)
            if new_state is not None and new_state.version is not None:
                section += f"- Version: {new_state.version}\n"

        status = change.status
        if status == ChangeStatus.SUCCESS:
            section += "- :white_check_mark: Built successfully.\n"
        elif status == ChangeStatus.WARNINGS:
            section += "- :warning: **Built with warnings.**"
            section += f" {WARNING_MERGE_MESSAGE}\n" if pr_mode else "\n"
        else:
            section += "- :x: **Failed to build.**"
            section += f" {ERROR_MERGE_MESSAGE}\n" if pr_mode else "\n"

        for warning in unique_by_type(change.warnings):
            section += f"  - {describe_warning(ext, warning, self.api_level)}\n"
        for error in unique_by_type(change.errors):
            section += f"  - {describe_error(error)}\n"

        return section + "\n"

    def write(self, runner_state: RunnerState, path: Path) -> None:
        write_text_atomic(path, self.render(runner_state))
