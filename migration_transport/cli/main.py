"""
Main CLI entry point for the migration transport engine.

This module provides the command-line interface using Click with Rich
formatting. Every command loads the engine configuration, connects both
endpoints and runs one synchronizer or runner operation.
"""

import asyncio
import os
import sys
import tempfile
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from migration_transport import __version__
from migration_transport.core.error_handler import ErrorHandler
from migration_transport.core.exceptions import CommandExecutionError, MigrationTransportError
from migration_transport.engine import SOURCE, TARGET, TransferEngine
from migration_transport.models.config import EngineConfig
from migration_transport.transfer.base import TransferResult
from migration_transport.utils.helpers import expand_remote_home, format_bytes, format_duration
from migration_transport.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger("cli")

EngineOperation = Callable[[TransferEngine, EngineConfig], Awaitable[Any]]


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--source-prefix', default='SOURCE', show_default=True,
              help='Environment variable prefix of the source endpoint')
@click.option('--target-prefix', default='TARGET', show_default=True,
              help='Environment variable prefix of the target endpoint')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool, config: Optional[str],
         source_prefix: str, target_prefix: str):
    """
    Migration Transport

    Copy directory trees and run commands between the source and target
    servers of a platform migration over SFTP and SSH.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config'] = config
    ctx.obj['source_prefix'] = source_prefix
    ctx.obj['target_prefix'] = target_prefix

    if version:
        console.print(f"Migration Transport version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def _load_config(ctx: click.Context) -> EngineConfig:
    if ctx.obj.get('config'):
        return EngineConfig.load(ctx.obj['config'])
    return EngineConfig.from_env(ctx.obj['source_prefix'], ctx.obj['target_prefix'])


def _print_error(error: Exception, verbose: bool) -> None:
    info = ErrorHandler().categorize_error(error)
    console.print(f"[red]Error ({info.category.value}): {escape(str(error))}[/red]")
    if verbose:
        for step in info.remediation_steps:
            console.print(f"  • [dim]{step}[/dim]")


def _run_with_engine(ctx: click.Context, operation: EngineOperation) -> Any:
    """Load configuration, connect both endpoints and run ``operation``."""
    verbose = ctx.obj.get('verbose', False)

    try:
        config = _load_config(ctx)
    except MigrationTransportError as e:
        _print_error(e, verbose)
        sys.exit(1)

    setup_logging(
        level="DEBUG" if verbose else config.logging.level,
        log_file=config.logging.log_file,
        rich_console=config.logging.rich_console,
        structured_logging=config.logging.structured,
    )
    logger.debug(f"Source {config.source.address}, target {config.target.address}")

    async def execute():
        async with TransferEngine.from_config(config) as engine:
            engine.require_connected()
            return await operation(engine, config)

    try:
        return asyncio.run(execute())
    except (MigrationTransportError, OSError) as e:
        _print_error(e, verbose)
        sys.exit(1)


def _report(verbose: bool, *results: TransferResult) -> None:
    """Print transfer summaries and exit with status 1 if anything failed."""
    for result in results:
        _print_result(result, verbose)

    if not all(result.success for result in results):
        sys.exit(1)


def _print_result(result: TransferResult, verbose: bool) -> None:
    table = Table(title=f"{result.direction.value.title()} {result.source} -> {result.destination}")
    table.add_column("Status")
    table.add_column("Files transferred", justify="right")
    table.add_column("Files failed", justify="right")
    table.add_column("Directories", justify="right")
    table.add_column("Duration", justify="right")
    table.add_row(
        "[green]completed[/green]" if result.success else "[red]failed[/red]",
        str(len(result.transferred_files)),
        str(len(result.failed_files)),
        str(len(result.visited_directories)),
        format_duration(result.duration),
    )
    console.print(table)

    if verbose:
        for path in result.transferred_files:
            console.print(f"  [dim]{path}[/dim]")

    if not result.success:
        for path in result.failed_files:
            console.print(f"  • [red]{path}[/red]")
        console.print(f"[red]First error: {result.error}[/red]")


@main.command()
@click.argument('remote_dir')
@click.argument('local_dir', type=click.Path(file_okay=False))
@click.pass_context
def download(ctx: click.Context, remote_dir: str, local_dir: str):
    """Download REMOTE_DIR from the source into LOCAL_DIR."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        remote_path = expand_remote_home(remote_dir, config.transfer.remote_home)
        return await engine.synchronizer.download_directory(remote_path, local_dir)

    _report(ctx.obj.get('verbose', False), _run_with_engine(ctx, operation))


@main.command()
@click.argument('local_dir', type=click.Path(exists=True, file_okay=False))
@click.argument('remote_dir')
@click.pass_context
def upload(ctx: click.Context, local_dir: str, remote_dir: str):
    """Upload LOCAL_DIR to REMOTE_DIR on the target, one file at a time."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        remote_path = expand_remote_home(remote_dir, config.transfer.remote_home)
        return await engine.synchronizer.upload_directory(local_dir, remote_path)

    _report(ctx.obj.get('verbose', False), _run_with_engine(ctx, operation))


@main.command('upload-file')
@click.argument('local_path', type=click.Path(exists=True, dir_okay=False))
@click.argument('remote_path')
@click.pass_context
def upload_file(ctx: click.Context, local_path: str, remote_path: str):
    """Upload a single file to REMOTE_PATH on the target."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        target_path = expand_remote_home(remote_path, config.transfer.remote_home)
        return await engine.synchronizer.upload_file(local_path, target_path)

    result = _run_with_engine(ctx, operation)
    if result.success:
        console.print(f"[green]Uploaded {format_bytes(os.path.getsize(local_path))}[/green]")
    _report(ctx.obj.get('verbose', False), result)


@main.command()
@click.argument('source_dir')
@click.argument('target_dir', required=False)
@click.option('--staging-dir', '-s', type=click.Path(file_okay=False),
              help='Local staging directory (default: a temporary directory)')
@click.pass_context
def relay(ctx: click.Context, source_dir: str, target_dir: Optional[str], staging_dir: Optional[str]):
    """Copy SOURCE_DIR from the source to TARGET_DIR on the target through local disk."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        home = config.transfer.remote_home
        source_path = expand_remote_home(source_dir, home)
        target_path = expand_remote_home(target_dir, home) if target_dir else None

        if staging_dir:
            return await engine.synchronizer.relay_directory(source_path, staging_dir, target_path)
        with tempfile.TemporaryDirectory(prefix="migration-transport-") as temp_dir:
            return await engine.synchronizer.relay_directory(source_path, temp_dir, target_path)

    download_result, upload_result = _run_with_engine(ctx, operation)
    if not download_result.success:
        console.print("[yellow]Some files could not be downloaded; uploading the rest[/yellow]")
    _report(ctx.obj.get('verbose', False), download_result, upload_result)


@main.command()
@click.argument('remote_path')
@click.option('--role', '-r', type=click.Choice([SOURCE, TARGET]), default=TARGET,
              show_default=True, help='Endpoint to check')
@click.pass_context
def exists(ctx: click.Context, remote_path: str, role: str):
    """Check whether REMOTE_PATH exists; exits with status 1 if it does not."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        path = expand_remote_home(remote_path, config.transfer.remote_home)
        if role == TARGET:
            return await engine.synchronizer.folder_exists(path)
        return await engine.sessions[role].exists(path)

    if _run_with_engine(ctx, operation):
        console.print(f"[green]{remote_path} exists on {role}[/green]")
    else:
        console.print(f"[yellow]{remote_path} does not exist on {role}[/yellow]")
        sys.exit(1)


@main.command('exec')
@click.argument('command')
@click.option('--role', '-r', type=click.Choice([SOURCE, TARGET]), default=SOURCE,
              show_default=True, help='Endpoint to run the command on')
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the command output to this local file')
@click.pass_context
def exec_command(ctx: click.Context, command: str, role: str, output: Optional[str]):
    """Run COMMAND on the source or target and print its output."""
    async def operation(engine: TransferEngine, config: EngineConfig):
        runner = engine.runners[role]
        try:
            if output:
                return await runner.run_to_file(command, output)
            return await runner.run(command)
        except CommandExecutionError as e:
            if e.stdout:
                click.echo(e.stdout, nl=False)
            raise

    result = _run_with_engine(ctx, operation)
    if output:
        console.print(f"[green]Saved {format_bytes(os.path.getsize(output))} to {output}[/green]")
    else:
        click.echo(result.stdout, nl=False)


if __name__ == '__main__':
    main()
