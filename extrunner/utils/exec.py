"""
Thin async wrapper around child processes.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from ..core.exceptions import CommandError

logger = logging.getLogger(__name__)


async def run_command(
    command: str,
    args: Sequence[str] = (),
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
    inherit_env: bool = False,
) -> None:
    """
    Run a command with inherited stdio and wait for it.

    Args:
        command: Executable to run
        args: Arguments passed to the executable
        cwd: Working directory
        env: Environment for the child. Only PATH is forwarded from the
            parent unless inherit_env is set.
        inherit_env: Start from the parent's full environment

    Raises:
        CommandError: If the process exits with a non-zero code
    """
    child_env = dict(os.environ) if inherit_env else {'PATH': os.environ.get('PATH', '')}
    if env:
        child_env.update(env)

    logger.info(f"Running {command} {' '.join(args)}" + (f" in {cwd}" if cwd else ""))
    proc = await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=str(cwd) if cwd is not None else None,
        env=child_env,
    )
    exit_code = await proc.wait()

    if exit_code != 0:
        raise CommandError(command, args, exit_code)
