from .enums import (
    ChangeStatus,
    ChangeType,
    ErrorType,
    GroupMode,
    GroupPhase,
    GroupState,
    RunMode,
    RunnerErrorType,
    RunnerWarningType,
    WarningType,
)
from .models import (
    BuildGroup,
    ExtensionChange,
    ExtensionError,
    ExtensionWarning,
    RunnerAuthor,
    RunnerError,
    RunnerState,
    RunnerWarning,
)
from .schemas import (
    BuildManifest,
    ExtensionState,
    GroupInstructions,
    GroupResult,
    PackageManifest,
    parse_group_result,
)

__all__ = [
    'ChangeStatus',
    'ChangeType',
    'ErrorType',
    'GroupMode',
    'GroupPhase',
    'GroupState',
    'RunMode',
    'RunnerErrorType',
    'RunnerWarningType',
    'WarningType',
    'BuildGroup',
    'ExtensionChange',
    'ExtensionError',
    'ExtensionWarning',
    'RunnerAuthor',
    'RunnerError',
    'RunnerState',
    'RunnerWarning',
    'BuildManifest',
    'ExtensionState',
    'GroupInstructions',
    'GroupResult',
    'PackageManifest',
    'parse_group_result',
]
