"""
Partitions buildable changes into build groups.

Extensions that share a repository, commit and script list are built from the
same checkout by one sandbox run.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..core.models import BuildGroup, RunnerState
from ..utils.fs import ensure_dir

DEFAULT_SCRIPTS = ("build",)


def default_output(ext: str) -> str:
    return f"dist/{ext}"


def group_key(repository: str, commit: str, scripts: Sequence[str]) -> str:
    """Stable key identifying one (repository, commit, scripts) combination"""
    return f"{repository}-{commit}-{json.dumps(list(scripts), separators=(',', ':'))}"


class GroupPlanner:
    """Builds the group list for a run"""

    def __init__(
        self,
        group_dir: Path,
        group_host_dir: Path,
        default_scripts: Optional[Sequence[str]] = None
    ):
        """
        Initialize group planner.

        Args:
            group_dir: Where group directories are created (runner's view)
            group_host_dir: The same directory as the docker host sees it
            default_scripts: Scripts run when a manifest doesn't list any
        """
        self.group_dir = Path(group_dir)
        self.group_host_dir = Path(group_host_dir)
        self.default_scripts = tuple(default_scripts or DEFAULT_SCRIPTS)
        self.logger = logging.getLogger(__name__)

    def plan(self, runner_state: RunnerState) -> List[BuildGroup]:
        """
        Group every buildable change, creating a clean directory per group.

        Returns:
            Groups in the order their first member appears
        """
        groups: Dict[str, BuildGroup] = {}
        ensure_dir(self.group_dir)

        for ext, change in runner_state.changes.items():
            if not change.buildable:
                continue

            manifest = change.new_manifest
            scripts = list(manifest.scripts) if manifest.scripts is not None else list(self.default_scripts)
            output = manifest.output if manifest.output is not None else default_output(ext)
            key = group_key(manifest.repository, manifest.commit, scripts)

            group = groups.get(key)
            if group is None:
                group = self._create_group(key, len(groups), manifest.repository, manifest.commit, scripts)
                groups[key] = group
                self.logger.info(f"Creating group {group.index} for key {key}")

            self.logger.info(f"Adding extension {ext} to group {group.index}")
            group.add_member(ext, output)

        self.logger.info(f"Planned {len(groups)} groups")
        return list(groups.values())

    def _create_group(
        self,
        key: str,
        index: int,
        repository: str,
        commit: str,
        scripts: List[str]
    ) -> BuildGroup:
        group = BuildGroup(
            key=key,
            index=index,
            directory=self.group_dir / str(index),
            host_directory=self.group_host_dir / str(index),
            repository=repository,
            commit=commit,
            scripts=scripts,
        )
        ensure_dir(group.directory, clean=True)
        ensure_dir(group.source_dir)
        ensure_dir(group.output_dir)
        return group
