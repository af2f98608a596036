"""
Runtime models for a single runner invocation.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .enums import (
    ChangeStatus,
    ChangeType,
    ErrorType,
    GroupState,
    RunMode,
    RunnerErrorType,
    RunnerWarningType,
    WarningType,
)
from .schemas import BuildManifest, ExtensionState, GroupInstructions, GroupResult


@dataclass
class ExtensionError:
    """A fatal problem attached to one extension change"""
    type: ErrorType
    err: Optional[str] = None
    script: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type.value}
        if self.script is not None:
            data['script'] = self.script
        if self.err is not None:
            data['err'] = self.err
        return data


@dataclass
class ExtensionWarning:
    """A non-fatal finding attached to one extension change"""
    type: WarningType
    value: Any = None
    old_version: Optional[str] = None
    new_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type.value}
        if self.value is not None:
            data['value'] = self.value
        if self.old_version is not None:
            data['oldVersion'] = self.old_version
        if self.new_version is not None:
            data['newVersion'] = self.new_version
        return data


@dataclass
class ExtensionChange:
    """What happens to one extension in this run"""
    type: ChangeType
    old_manifest: Optional[BuildManifest] = None
    new_manifest: Optional[BuildManifest] = None
    errors: List[ExtensionError] = field(default_factory=list)
    warnings: List[ExtensionWarning] = field(default_factory=list)

    def __post_init__(self):
        needs_old = self.type != ChangeType.ADD
        needs_new = self.type != ChangeType.REMOVE
        if needs_old != (self.old_manifest is not None):
            raise ValueError(f"{self.type.value} change must {'' if needs_old else 'not '}carry an old manifest")
        if needs_new != (self.new_manifest is not None):
            raise ValueError(f"{self.type.value} change must {'' if needs_new else 'not '}carry a new manifest")

    @property
    def buildable(self) -> bool:
        return self.type in (ChangeType.ADD, ChangeType.UPDATE)

    @property
    def manifest(self) -> BuildManifest:
        """The manifest that best describes this change"""
        return self.new_manifest if self.new_manifest is not None else self.old_manifest

    @property
    def status(self) -> ChangeStatus:
        if self.errors:
            return ChangeStatus.FAILED
        if self.warnings:
            return ChangeStatus.WARNINGS
        return ChangeStatus.SUCCESS

    def add_error(self, error: ExtensionError) -> None:
        self.errors.append(error)

    def add_warning(self, warning: ExtensionWarning) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type.value}
        if self.old_manifest is not None:
            data['oldManifest'] = self.old_manifest.to_dict()
        if self.new_manifest is not None:
            data['newManifest'] = self.new_manifest.to_dict()
        data['errors'] = [e.to_dict() for e in self.errors]
        data['warnings'] = [w.to_dict() for w in self.warnings]
        return data


@dataclass
class RunnerAuthor:
    """Identity of whoever triggered the run (supplied by CI, not verified)"""
    username: str
    id: str
    pr: Optional[str] = None


@dataclass
class RunnerWarning:
    type: RunnerWarningType
    detail: Optional[str] = None


@dataclass
class RunnerError:
    type: RunnerErrorType
    err: str
    ext: Optional[str] = None


@dataclass
class BuildGroup:
    """A deduplicated unit of sandboxed work"""
    key: str
    index: int
    directory: Path
    host_directory: Path
    repository: str
    commit: str
    scripts: List[str]
    extensions: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    state: GroupState = GroupState.PENDING
    result: Optional[GroupResult] = None

    @property
    def instructions_path(self) -> Path:
        return self.directory / "state.json"

    @property
    def result_path(self) -> Path:
        return self.directory / "result.json"

    @property
    def source_dir(self) -> Path:
        return self.directory / "source"

    @property
    def output_dir(self) -> Path:
        return self.directory / "output"

    @property
    def log_path(self) -> Path:
        return self.directory / "build.log"

    def add_member(self, ext: str, output: str) -> None:
        self.extensions.append(ext)
        self.outputs[ext] = output

    def instructions(self) -> GroupInstructions:
        """Only what the sandbox needs to know"""
        return GroupInstructions(
            repository=self.repository,
            commit=self.commit,
            scripts=list(self.scripts),
            outputs=dict(self.outputs),
        )


@dataclass
class RunnerState:
    """Everything one invocation knows, threaded through every stage"""
    mode: RunMode
    old_build_state: Dict[str, ExtensionState]
    build_state: Dict[str, ExtensionState]
    author: Optional[RunnerAuthor] = None
    warnings: List[RunnerWarning] = field(default_factory=list)
    errors: List[RunnerError] = field(default_factory=list)
    changes: Dict[str, ExtensionChange] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        mode: RunMode,
        old_build_state: Dict[str, ExtensionState],
        author: Optional[RunnerAuthor] = None
    ) -> 'RunnerState':
        """Start a run from the persisted build state"""
        return cls(
            mode=mode,
            old_build_state=old_build_state,
            build_state=dict(old_build_state),
            author=author,
        )

    def should_fail(self) -> bool:
        return bool(self.errors) or any(change.errors for change in self.changes.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'author': vars(self.author) if self.author else None,
            'warnings': [{'type': w.type.value, 'detail': w.detail} for w in self.warnings],
            'errors': [{'type': e.type.value, 'ext': e.ext, 'err': e.err} for e in self.errors],
            'oldBuildState': {ext: s.to_dict() for ext, s in self.old_build_state.items()},
            'buildState': {ext: s.to_dict() for ext, s in self.build_state.items()},
            'changes': {ext: c.to_dict() for ext, c in self.changes.items()},
        }
