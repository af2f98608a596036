"""
Loads build manifests and reads/writes the persisted build state.
"""
import json
import logging
from pathlib import Path
from typing import Dict

from pydantic import ValidationError

from ..core.enums import RunnerErrorType
from ..core.exceptions import ManifestError
from ..core.models import RunnerError, RunnerState
from ..core.schemas import BuildManifest, BuildStateAdapter, ExtensionState
from ..utils.fs import write_json_atomic


class ManifestStore:
    """Reads build manifests and manages the build state file"""

    def __init__(self, manifests_dir: Path, state_path: Path):
        """
        Initialize manifest store.

        Args:
            manifests_dir: Directory holding one <extension id>.json per extension
            state_path: Path to the persisted build state
        """
        self.manifests_dir = Path(manifests_dir)
        self.state_path = Path(state_path)
        self.logger = logging.getLogger(__name__)

    def scan_manifests(self) -> Dict[str, Path]:
        """Map extension ID to manifest path, in filename order"""
        if not self.manifests_dir.exists():
            self.logger.warning(f"Manifest directory does not exist: {self.manifests_dir}")
            return {}

        return {
            path.name[:-len(".json")]: path
            for path in sorted(self.manifests_dir.glob("*.json"))
            if path.is_file()
        }

    def load_manifest(self, ext: str, path: Path) -> BuildManifest:
        """
        Parse and validate a single build manifest.

        Raises:
            ManifestError: If the file is not valid JSON or fails validation
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return BuildManifest.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ManifestError(ext, str(e)) from e

    def load_manifests(self, runner_state: RunnerState) -> Dict[str, BuildManifest]:
        """
        Load every manifest, recording failures on the runner state.

        A broken manifest does not stop the others from loading; it is
        reported as a run-level error so the run fails.
        """
        manifests: Dict[str, BuildManifest] = {}

        for ext, path in self.scan_manifests().items():
            try:
                manifests[ext] = self.load_manifest(ext, path)
            except ManifestError as e:
                self.logger.error(str(e))
                runner_state.errors.append(RunnerError(
                    type=RunnerErrorType.PARSE_MANIFEST_FAILED,
                    ext=ext,
                    err=str(e),
                ))

        self.logger.info(f"Loaded {len(manifests)} manifests from {self.manifests_dir}")
        return manifests

    def load_build_state(self) -> Dict[str, ExtensionState]:
        """Load the last successful build state, or an empty one"""
        if not self.state_path.exists():
            self.logger.info(f"No build state at {self.state_path}, starting fresh")
            return {}

        with open(self.state_path, 'r', encoding='utf-8') as f:
            state = BuildStateAdapter.validate_json(f.read())

        self.logger.info(f"Loaded {len(state)} state entries")
        return state

    def save_build_state(self, build_state: Dict[str, ExtensionState]) -> None:
        """Replace the build state file in one step"""
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        data = {ext: state.to_dict() for ext, state in build_state.items()}
        write_json_atomic(self.state_path, data)
        self.logger.info(f"Saved {len(data)} state entries to {self.state_path}")
