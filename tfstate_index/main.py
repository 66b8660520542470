"""
tfstate-index CLI - Terraform Remote State Indexer

Main entry point for the command-line interface.
"""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from .backends.registry import BackendRegistry
from .core.config import BackendConfig
from .core.exceptions import TfStateIndexError
from .core.logging import setup_logging
from .reporters.cli_reporter import CLIReporter
from .reporters.json_reporter import JSONReporter


console = Console()

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to the backends JSON configuration",
)


def _load_config(config_path: str, overwrite: Optional[bool] = None) -> BackendConfig:
    config = BackendConfig.from_file(config_path)
    config.validate()
    if overwrite:
        config.options.overwrite = True
    return config


@click.group()
@click.version_option(version="0.1.0", prog_name="tfstate-index")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: WARNING)",
)
@click.option(
    "--log-file",
    default=None,
    help="Also write logs to this file",
)
def cli(log_level: str, log_file: Optional[str]):
    """
    tfstate-index: Terraform Remote State Indexer

    Downloads Terraform state files from S3 backends and indexes which
    state file manages each resource id.
    """
    setup_logging(level=log_level, log_file=log_file)


@cli.command("validate")
@config_option
@click.option(
    "--check-credentials",
    is_flag=True,
    help="Also confirm each backend's AWS credentials and role",
)
def validate_config(config_path: str, check_credentials: bool):
    """
    Validate a backends configuration file.

    Examples:

        # Check the file only
        tfstate-index validate -c backends.json

        # Also assume each backend's role and report who we are
        tfstate-index validate -c backends.json --check-credentials
    """
    try:
        config = _load_config(config_path)
    except TfStateIndexError as e:
        console.print(f"\n[red bold]Invalid configuration:[/red bold] {escape(str(e))}")
        sys.exit(1)

    keys = sum(len(backend.keys) for backend in config.s3)
    console.print("\n[green bold]Configuration is valid![/green bold]")
    console.print(f"\n  Destination: {escape(config.destination)}")
    console.print(f"  Backends: {len(config.s3)}")
    console.print(f"  State files: {keys}")

    if check_credentials:
        try:
            identities = BackendRegistry(config).check_credentials()
        except TfStateIndexError as e:
            console.print(f"\n[red bold]Credential check failed:[/red bold] {escape(str(e))}")
            sys.exit(1)
        console.print("\n[green bold]Credentials valid:[/green bold]")
        for bucket, arn in identities.items():
            console.print(f"  {escape(bucket)}: {escape(arn)}")
    console.print()


@cli.command("pull")
@config_option
@click.option(
    "--overwrite",
    is_flag=True,
    help="Download state files even if a local copy exists",
)
@click.option(
    "--max-workers",
    default=1,
    type=int,
    help="Backends fetched in parallel (default: 1)",
)
def pull(config_path: str, overwrite: bool, max_workers: int):
    """
    Download the state files of every configured backend.

    Examples:

        # Fetch missing state files only
        tfstate-index pull -c backends.json

        # Refresh every local copy, four backends at a time
        tfstate-index pull -c backends.json --overwrite --max-workers 4
    """
    reporter = CLIReporter(console)

    try:
        config = _load_config(config_path, overwrite)
        registry = BackendRegistry(config, max_workers=max_workers)
        reporter.print_header([backend.bucket for backend in config.s3])
        results = registry.pull()
        reporter.report_pull(results)
        reporter.print_completion_message()

    except TfStateIndexError as e:
        reporter.print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Pull cancelled by user.[/yellow]")
        sys.exit(130)


@cli.command("index")
@config_option
@click.option(
    "--no-pull",
    is_flag=True,
    help="Index the local cache without contacting S3",
)
@click.option(
    "--overwrite",
    is_flag=True,
    help="Download state files even if a local copy exists",
)
@click.option(
    "--max-workers",
    default=1,
    type=int,
    help="Backends fetched in parallel (default: 1)",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["cli", "json"]),
    default="cli",
    help="Output format (default: cli)",
)
@click.option(
    "--output",
    "-o",
    default=None,
    help="Write the JSON index to this file",
)
@click.option(
    "--show-resources",
    is_flag=True,
    help="List every indexed resource in CLI output",
)
def index(
    config_path: str,
    no_pull: bool,
    overwrite: bool,
    max_workers: int,
    output_format: str,
    output: Optional[str],
    show_resources: bool,
):
    """
    Build the resource id → state file index.

    Examples:

        # Pull then print a summary
        tfstate-index index -c backends.json

        # Index the existing cache and dump JSON to stdout
        tfstate-index index -c backends.json --no-pull --format json

        # Save the index to a file
        tfstate-index index -c backends.json -o index.json
    """
    reporter = CLIReporter(console, show_resources=show_resources)

    try:
        config = _load_config(config_path, overwrite)
        registry = BackendRegistry(config, max_workers=max_workers)

        if no_pull:
            registry.map_cache()
        else:
            registry.pull()
        result = registry.load()

        if output_format == "json" and not output:
            click.echo(JSONReporter().to_string(result))
            return

        output_file = None
        if output:
            output_file = JSONReporter(output_path=output).report(result)

        reporter.print_header([backend.bucket for backend in config.s3])
        reporter.report_load(result)
        reporter.print_completion_message(output_file)

    except TfStateIndexError as e:
        reporter.print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Indexing cancelled by user.[/yellow]")
        sys.exit(130)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
