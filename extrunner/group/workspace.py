"""
The group directory as seen from inside the sandbox.
"""
import logging
from pathlib import Path
from typing import Dict

from ..config.global_config_loader import ENV_VARIABLES, GlobalConfig
from ..core.exceptions import ConfigurationError
from ..core.schemas import GroupInstructions, GroupResult, PackageManifest, ResultPackageManifest, parse_group_result
from ..utils.fs import write_text_atomic

logger = logging.getLogger(__name__)


class GroupWorkspace:
    """Mounted group files plus the shared dependency store"""

    def __init__(self, group_dir: Path, store_dir: Path):
        self.group_dir = Path(group_dir)
        self.store_dir = Path(store_dir)

    @classmethod
    def from_config(cls, config: GlobalConfig) -> 'GroupWorkspace':
        group_dir = Path(config.paths.group_dir)
        if not group_dir.is_dir():
            raise ConfigurationError(
                f"Group directory not found: {group_dir} (set {ENV_VARIABLES['group_path']})"
            )
        return cls(group_dir, Path(config.paths.store_dir))

    @property
    def instructions_path(self) -> Path:
        return self.group_dir / "state.json"

    @property
    def result_path(self) -> Path:
        return self.group_dir / "result.json"

    @property
    def source_dir(self) -> Path:
        return self.group_dir / "source"

    @property
    def output_dir(self) -> Path:
        return self.group_dir / "output"

    def pnpm_env(self) -> Dict[str, str]:
        return {ENV_VARIABLES['npm_store_dir']: str(self.store_dir)}

    def read_instructions(self) -> GroupInstructions:
        with open(self.instructions_path, 'r', encoding='utf-8') as f:
            return GroupInstructions.model_validate_json(f.read())

    def read_result(self) -> GroupResult:
        return parse_group_result(self.result_path.read_bytes())

    def write_result(self, result: GroupResult) -> None:
        # result.json is a single-file bind mount, so it is rewritten in place
        if self.result_path.exists():
            with open(self.result_path, 'w', encoding='utf-8') as f:
                f.write(result.to_json())
        else:
            write_text_atomic(self.result_path, result.to_json())
        logger.info(f"Wrote group result: {len(result.errors)} errors, {len(result.manifests)} manifests")


def to_result_manifest(manifest: PackageManifest) -> ResultPackageManifest:
    """Narrow a leniently parsed package manifest to what the result carries"""
    return ResultPackageManifest.model_validate_json(manifest.model_dump_json(by_alias=True, exclude_none=True))
