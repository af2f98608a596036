"""
Schemas for every document the runner reads or writes.

Build manifests and the persisted build state come from trusted repositories.
Group results are written by untrusted build scripts running inside the
sandbox, so they are parsed strictly: unknown keys, unknown error tags and
coerced types are all rejected.
"""
import re
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .exceptions import GroupResultError

GIT_HASH_PATTERN = re.compile(r"^[a-f0-9]+$")


class BuildManifest(BaseModel):
    """Declarative description of how to build one extension"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    repository: str
    commit: str
    owners: Optional[Tuple[str, ...]] = None
    scripts: Optional[Tuple[str, ...]] = None
    output: Optional[str] = None

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Repository '{v}' is not an absolute URL")
        return v

    @field_validator("commit")
    @classmethod
    def validate_commit(cls, v: str) -> str:
        if not GIT_HASH_PATTERN.match(v):
            raise ValueError(f"Commit '{v}' is not a lowercase hex git hash")
        return v

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class ExtensionState(BaseModel):
    """Last successfully built record of one extension"""
    model_config = ConfigDict(extra="forbid")

    version: Optional[str] = None
    manifest: BuildManifest

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


BuildStateAdapter = TypeAdapter(Dict[str, ExtensionState])


class ExtensionMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    source: Optional[str] = None


class PackageManifest(BaseModel):
    """
    The manifest.json shipped inside an extension's build output.

    Read leniently inside the sandbox; extension authors put plenty of
    fields in here that the runner does not care about.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    version: Optional[str] = None
    api_level: Optional[int] = Field(default=None, alias="apiLevel")
    meta: Optional[ExtensionMeta] = None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ResultExtensionMeta(ExtensionMeta):
    model_config = ConfigDict(extra="forbid", strict=True)


class ResultPackageManifest(PackageManifest):
    """A package manifest as reported back through a group result"""
    model_config = ConfigDict(extra="forbid", strict=True)

    meta: Optional[ResultExtensionMeta] = None


class GroupInstructions(BaseModel):
    """What a sandbox needs to know to fetch and build one group"""
    model_config = ConfigDict(extra="forbid")

    repository: str
    commit: str
    scripts: List[str]
    outputs: Dict[str, str]


class _ResultRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)


class CloneFailedRecord(_ResultRecord):
    type: Literal["cloneFailed"] = "cloneFailed"
    err: str


class FetchFailedRecord(_ResultRecord):
    type: Literal["fetchFailed"] = "fetchFailed"
    err: str


class InstallFailedRecord(_ResultRecord):
    type: Literal["installFailed"] = "installFailed"
    err: str


class ScriptFailedRecord(_ResultRecord):
    type: Literal["scriptFailed"] = "scriptFailed"
    script: str
    err: str


class PackageFailedRecord(_ResultRecord):
    type: Literal["packageFailed"] = "packageFailed"
    ext: str
    err: str


GroupErrorRecord = Annotated[
    Union[
        CloneFailedRecord,
        FetchFailedRecord,
        InstallFailedRecord,
        ScriptFailedRecord,
        PackageFailedRecord,
    ],
    Field(discriminator="type"),
]


class GroupResult(BaseModel):
    """Structured outcome of a sandbox phase. Untrusted."""
    model_config = ConfigDict(extra="forbid", strict=True)

    errors: List[GroupErrorRecord]
    manifests: Dict[str, ResultPackageManifest]

    @classmethod
    def empty(cls) -> "GroupResult":
        return cls(errors=[], manifests={})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def parse_group_result(raw: Union[str, bytes]) -> GroupResult:
    """
    Parse a group result written by the sandbox.

    Raises:
        GroupResultError: If the document is not exactly a GroupResult
    """
    try:
        return GroupResult.model_validate_json(raw)
    except ValidationError as e:
        raise GroupResultError(f"Malformed group result: {e}") from e
