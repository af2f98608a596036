"""
Build mode: install offline, run the build scripts and package every member.

Runs inside the sandbox without network access and with a read-only
dependency store.
"""
import json
import logging
import posixpath
from pathlib import Path

from pydantic import ValidationError

from ..core.exceptions import CommandError, PackagingError
from ..core.schemas import (
    GroupResult,
    InstallFailedRecord,
    PackageFailedRecord,
    PackageManifest,
    ResultPackageManifest,
    ScriptFailedRecord,
)
from ..utils.asar import create_package
from ..utils.exec import run_command
from .workspace import GroupWorkspace, to_result_manifest

logger = logging.getLogger(__name__)

INSTALL_ARGS = [
    "install",
    "--frozen-lockfile",
    "--offline",
    # Auto-confirm recreating node_modules left behind by the fetch phase
    "--config.confirmModulesPurge=false",
    # Pinning the package manager version needs the network
    "--config.managePackageManagerVersions=false",
]

ARCHIVE_EXTENSION = ".asar"


def resolve_output_dir(source_dir: Path, output: str) -> Path:
    """
    Resolve a member's output path inside the source tree.

    Raises:
        PackagingError: If the path escapes the source tree
    """
    normalized = posixpath.normpath(output)
    if posixpath.isabs(normalized) or normalized == ".." or normalized.startswith("../"):
        raise PackagingError(f"Detected possible path traversal: {normalized}")

    root = source_dir.resolve()
    resolved = (root / normalized).resolve()
    if resolved != root and root not in resolved.parents:
        raise PackagingError(f"Detected possible path traversal: {normalized}")
    return resolved


def package_extension(workspace: GroupWorkspace, ext: str, output: str) -> ResultPackageManifest:
    """
    Validate one member's build output and pack it into output/<ext>.asar.

    Raises:
        PackagingError: If the output directory or its manifest is missing
    """
    ext_output_dir = resolve_output_dir(workspace.source_dir, output)
    if not ext_output_dir.is_dir():
        raise PackagingError(f"Missing output directory: {ext_output_dir}")

    manifest_path = ext_output_dir / "manifest.json"
    if not manifest_path.is_file():
        raise PackagingError(f"Missing manifest: {manifest_path}")

    with open(manifest_path, 'r', encoding='utf-8') as f:
        manifest = PackageManifest.model_validate(json.load(f))

    create_package(ext_output_dir, workspace.output_dir / f"{ext}{ARCHIVE_EXTENSION}")
    logger.info(f"Packaged {ext} version {manifest.version}")
    return to_result_manifest(manifest)


async def run_build(workspace: GroupWorkspace) -> GroupResult:
    instructions = workspace.read_instructions()
    result = workspace.read_result()
    source_dir = workspace.source_dir
    env = workspace.pnpm_env()

    try:
        await run_command("pnpm", INSTALL_ARGS, cwd=source_dir, env=env)
    except (CommandError, OSError) as e:
        logger.error(f"Failed to install dependencies: {e}")
        result.errors.append(InstallFailedRecord(err=str(e)))
        workspace.write_result(result)
        return result

    for script in instructions.scripts:
        try:
            await run_command("pnpm", ["run", script], cwd=source_dir, env=env)
        except (CommandError, OSError) as e:
            logger.error(f"Failed to run script {script}: {e}")
            result.errors.append(ScriptFailedRecord(script=script, err=str(e)))
            workspace.write_result(result)
            return result

    for ext, output in instructions.outputs.items():
        try:
            result.manifests[ext] = package_extension(workspace, ext, output)
        except (PackagingError, OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to package {ext}: {e}")
            result.errors.append(PackageFailedRecord(ext=ext, err=str(e)))

    workspace.write_result(result)
    return result
