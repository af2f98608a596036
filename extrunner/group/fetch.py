"""
Fetch mode: clone the pinned commit and prefetch dependencies.

Runs inside the sandbox with network access. Failures are reported through
the group result, never through the exit code.
"""
import logging

from ..core.exceptions import CommandError
from ..core.schemas import CloneFailedRecord, FetchFailedRecord, GroupResult
from ..utils.exec import run_command
from ..utils.fs import ensure_dir
from .workspace import GroupWorkspace

logger = logging.getLogger(__name__)


async def clone(workspace: GroupWorkspace, repository: str, commit: str) -> None:
    source_dir = workspace.source_dir
    for args in (
        ["init", "--initial-branch=main"],
        ["remote", "add", "origin", repository],
        ["fetch", "origin", commit],
        ["reset", "--hard", "FETCH_HEAD"],
        ["submodule", "update", "--init", "--recursive"],
    ):
        await run_command("git", args, cwd=source_dir)


async def run_fetch(workspace: GroupWorkspace) -> GroupResult:
    instructions = workspace.read_instructions()
    result = GroupResult.empty()

    ensure_dir(workspace.source_dir, clean=True)

    try:
        await clone(workspace, instructions.repository, instructions.commit)
    except (CommandError, OSError) as e:
        logger.error(f"Failed to clone {instructions.repository}@{instructions.commit}: {e}")
        result.errors.append(CloneFailedRecord(err=str(e)))
    else:
        try:
            await run_command("pnpm", ["fetch"], cwd=workspace.source_dir, env=workspace.pnpm_env())
        except (CommandError, OSError) as e:
            logger.error(f"Failed to fetch dependencies: {e}")
            result.errors.append(FetchFailedRecord(err=str(e)))

    workspace.write_result(result)
    return result
