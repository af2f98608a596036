from enum import Enum


class RunMode(str, Enum):
    """How the runner was triggered"""
    PUSH = "push"
    PULL_REQUEST = "pull-request"
    FORCE_ALL = "force-all"


class GroupMode(str, Enum):
    """Modes executed inside the sandbox container"""
    FETCH = "fetch"
    BUILD = "build"


class ChangeType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    UPDATE_NO_BUILD = "updateNoBuild"
    REMOVE = "remove"


class ErrorType(str, Enum):
    """Fatal per-extension failures"""
    UNKNOWN = "unknown"
    CLONE_FAILED = "cloneFailed"
    FETCH_FAILED = "fetchFailed"
    INSTALL_FAILED = "installFailed"
    SCRIPT_FAILED = "scriptFailed"
    PACKAGE_FAILED = "packageFailed"


# Errors reported by the sandbox that affect every member of a group
GROUP_SCOPED_ERRORS = frozenset({
    ErrorType.CLONE_FAILED,
    ErrorType.FETCH_FAILED,
    ErrorType.INSTALL_FAILED,
    ErrorType.SCRIPT_FAILED,
})


class WarningType(str, Enum):
    """Non-fatal per-extension findings"""

    # Package manifest warnings
    INVALID_API_LEVEL = "invalidApiLevel"
    INVALID_ID = "invalidId"
    IRREGULAR_VERSION = "irregularVersion"
    SAME_OR_LOWER_VERSION = "sameOrLowerVersion"

    # Build manifest warnings
    NO_OWNERS_SPECIFIED = "noOwnersSpecified"
    REPOSITORY_CHANGED = "repositoryChanged"
    BUILD_CONFIG_CHANGED = "buildConfigChanged"
    AUTHOR_NOT_IN_OWNERS = "authorNotInOwners"
    OWNERS_CHANGED = "ownersChanged"
    AUTHOR_ADDED_TO_OWNERS = "authorAddedToOwners"


class RunnerWarningType(str, Enum):
    UNKNOWN = "unknown"
    MISSING_AUTHOR = "missingAuthor"


class RunnerErrorType(str, Enum):
    PARSE_MANIFEST_FAILED = "parseManifestFailed"
    DELETE_CHANGE_FAILED = "deleteChangeFailed"


class GroupPhase(str, Enum):
    FETCH = "fetch"
    BUILD = "build"


class GroupState(str, Enum):
    """Lifecycle of a build group inside one run"""
    PENDING = "pending"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch_failed"
    FETCHED = "fetched"
    BUILDING = "building"
    BUILD_FAILED = "build_failed"
    BUILT = "built"


class ChangeStatus(str, Enum):
    """Outcome of a change as shown in the report"""
    SUCCESS = "success"
    WARNINGS = "warnings"
    FAILED = "failed"
