#!/usr/bin/env python3
"""
Container entry point. Dispatches on EXTRUNNER_BUILD_MODE: the run modes
(push, pr, all) orchestrate a run, fetch and build are the sandbox modes.
"""
import asyncio
import logging
import sys

from .build.manager import ExtensionBuildManager
from .config.global_config_loader import RUN_MODE_ALIASES, get_build_mode, load_global_config
from .core.enums import GroupMode
from .core.exceptions import ExtRunnerError
from .group.build import run_build
from .group.fetch import run_fetch
from .group.workspace import GroupWorkspace


def setup_logging(level: int = logging.INFO):
    """Set up logging configuration."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def dispatch(build_mode: str) -> int:
    config = load_global_config()

    if build_mode == GroupMode.FETCH.value:
        await run_fetch(GroupWorkspace.from_config(config))
        return 0
    if build_mode == GroupMode.BUILD.value:
        await run_build(GroupWorkspace.from_config(config))
        return 0

    runner_state = await ExtensionBuildManager(config).run()
    return 1 if runner_state.should_fail() else 0


def main():
    setup_logging()
    logger = logging.getLogger(__name__)

    build_mode = get_build_mode()
    valid_modes = set(RUN_MODE_ALIASES) | {mode.value for mode in GroupMode}
    if build_mode not in valid_modes:
        logger.error(f"Invalid build mode: {build_mode}")
        sys.exit(1)

    try:
        exit_code = asyncio.run(dispatch(build_mode))
    except ExtRunnerError as e:
        logger.error(str(e))
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
