#!/usr/bin/env python3
"""
CLI for the extensions runner and its in-sandbox group modes
"""

import asyncio
import click
import logging
import sys
from typing import Optional

from ..build.change_detector import ChangeDetector
from ..build.manager import ExtensionBuildManager
from ..build.manifest_store import ManifestStore
from ..build.report import BuildReport
from ..config.global_config_loader import GlobalConfig, load_global_config, parse_run_mode
from ..core.enums import ChangeType
from ..core.exceptions import ExtRunnerError
from ..core.models import RunnerState
from ..group.build import run_build
from ..group.fetch import run_fetch
from ..group.workspace import GroupWorkspace


def setup_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class RunnerCLI:
    """Command-line interface for runs and dry runs"""

    def __init__(self, global_config: GlobalConfig):
        self.global_config = global_config
        self.logger = logging.getLogger(__name__)

    async def run(self) -> int:
        """Build every changed extension; returns the process exit code"""
        manager = ExtensionBuildManager(self.global_config)
        runner_state = await manager.run()

        BuildReport.from_runner_state(runner_state).print_summary()
        click.echo(f"Summary written to {manager.summary_path}")

        if runner_state.should_fail():
            click.echo("Exiting with errors", err=True)
            return 1
        return 0

    def diff(self) -> RunnerState:
        """Classify changes without building anything"""
        paths = self.global_config.paths
        store = ManifestStore(paths.manifests_exts_dir, paths.state_path)
        detector = ChangeDetector(self.global_config.mode, self.global_config.extensions.reviewers)

        runner_state = RunnerState.create(
            self.global_config.mode,
            store.load_build_state(),
            self.global_config.author,
        )
        detector.check_author(runner_state)
        detector.detect_changes(runner_state, store.load_manifests(runner_state))
        return runner_state

    def print_diff(self, runner_state: RunnerState) -> None:
        if not runner_state.changes:
            click.echo("No extension changes")

        for ext, change in runner_state.changes.items():
            build_note = "" if change.type in (ChangeType.ADD, ChangeType.UPDATE) else " (no build)"
            click.echo(f"{ext}: {change.type.value}{build_note}")
            for warning in change.warnings:
                click.echo(f"  ⚠️  {warning.type.value}")

        for warning in runner_state.warnings:
            click.echo(f"Runner warning: {warning.type.value}")
        for error in runner_state.errors:
            click.echo(f"Runner error: {error.type.value} {error.ext or ''}: {error.err}", err=True)


@click.group()
@click.option('--global-config', default=None, help='Path to global config YAML')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Set the logging level')
@click.pass_context
def cli(ctx, global_config, log_level):
    """Extensions runner - builds extensions from their build manifests"""
    setup_logging(log_level)

    try:
        global_cfg = load_global_config(global_config)
    except ExtRunnerError as e:
        raise click.ClickException(str(e))

    ctx.ensure_object(dict)
    ctx.obj['global_config'] = global_cfg
    ctx.obj['cli'] = RunnerCLI(global_cfg)


def _apply_mode(ctx, mode: Optional[str]) -> None:
    if mode:
        try:
            ctx.obj['global_config'].mode = parse_run_mode(mode)
        except ExtRunnerError as e:
            raise click.BadParameter(str(e), param_hint='--mode')


@cli.command()
@click.option('--mode', default=None,
              type=click.Choice(['push', 'pr', 'pull-request', 'all', 'force-all']),
              help='Run mode (overrides config and EXTRUNNER_BUILD_MODE)')
@click.pass_context
def run(ctx, mode):
    """Detect changes, build in the sandbox and write the state and summary"""
    _apply_mode(ctx, mode)
    cli_instance = ctx.obj['cli']

    try:
        return_code = asyncio.run(cli_instance.run())
    except ExtRunnerError as e:
        raise click.ClickException(str(e))
    sys.exit(return_code)


@cli.command()
@click.option('--mode', default=None,
              type=click.Choice(['push', 'pr', 'pull-request', 'all', 'force-all']),
              help='Run mode to classify changes with')
@click.pass_context
def diff(ctx, mode):
    """Show what a run would build without building anything"""
    _apply_mode(ctx, mode)
    cli_instance = ctx.obj['cli']

    try:
        runner_state = cli_instance.diff()
    except ExtRunnerError as e:
        raise click.ClickException(str(e))
    cli_instance.print_diff(runner_state)
    sys.exit(1 if runner_state.errors else 0)


@cli.command()
@click.pass_context
def fetch(ctx):
    """Sandbox mode: clone the group's commit and prefetch dependencies"""
    try:
        workspace = GroupWorkspace.from_config(ctx.obj['global_config'])
    except ExtRunnerError as e:
        raise click.ClickException(str(e))
    asyncio.run(run_fetch(workspace))


@cli.command()
@click.pass_context
def build(ctx):
    """Sandbox mode: install offline, run scripts and package outputs"""
    try:
        workspace = GroupWorkspace.from_config(ctx.obj['global_config'])
    except ExtRunnerError as e:
        raise click.ClickException(str(e))
    asyncio.run(run_build(workspace))


if __name__ == '__main__':
    cli()
