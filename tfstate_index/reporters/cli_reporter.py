"""
CLI Reporter Module
===================

Rich terminal output for pull and index results.

This module creates terminal displays with:
- A header panel naming the configured backends
- Per-backend pull summaries
- Summary tables per state file
- Highlighted skipped files

Classes
-------
CLIReporter
    Reporter class for terminal output.

Example
-------
>>> from tfstate_index.reporters import CLIReporter
>>>
>>> reporter = CLIReporter()
>>> reporter.report_pull(fetch_results)
>>> reporter.report_load(load_result)

See Also
--------
rich : Python library for rich text and formatting.
JSONReporter : For programmatic access.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tfstate_index.backends.s3_fetcher import FetchResult
from tfstate_index.state.index import LoadResult

# Module logger
logger = logging.getLogger(__name__)


class CLIReporter:
    """
    Reporter for displaying pull and index results in the terminal.

    Parameters
    ----------
    console : Console, optional
        Rich Console instance. If not provided, creates a new one.
    show_resources : bool, default=False
        Also print one row per indexed resource.

    Examples
    --------
    >>> from rich.console import Console
    >>> reporter = CLIReporter(console=Console(force_terminal=True))
    >>> reporter.report_load(load_result)
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        show_resources: bool = False,
    ) -> None:
        self.console = console or Console()
        self.show_resources = show_resources
        logger.debug("Initialized CLIReporter")

    def print_header(self, buckets: List[str]) -> None:
        """Print the report header panel."""
        bucket_text = (
            ", ".join(buckets) if len(buckets) <= 5
            else f"{len(buckets)} backends"
        )

        header_text = Text()
        header_text.append("\nTerraform State Index\n", style="bold blue")
        header_text.append(f"Backends: {bucket_text}", style="dim")

        self.console.print(Panel(header_text, border_style="blue"))

    def report_pull(self, results: List[FetchResult]) -> None:
        """
        Print one row per fetched backend.

        Parameters
        ----------
        results : list of FetchResult
            Results of ``BackendRegistry.pull()``.
        """
        table = Table(title="\nPulled Backends", title_style="bold", show_lines=False)
        table.add_column("Bucket", style="cyan", no_wrap=True)
        table.add_column("State Files", justify="right")
        table.add_column("Downloaded", style="green", justify="right")
        table.add_column("Skipped", style="dim", justify="right")

        for result in results:
            table.add_row(
                escape(result.bucket),
                str(len(result.filenames)),
                str(len(result.downloaded)),
                str(len(result.skipped)),
            )

        self.console.print(table)

    def report_load(self, result: LoadResult) -> None:
        """
        Print index totals, resources per state file and skipped files.

        Parameters
        ----------
        result : LoadResult
            Result of ``BackendRegistry.load()``.
        """
        summary = Table(show_header=False, box=None, padding=(0, 2))
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", style="white")

        summary.add_row("Managed Resources:", str(len(result.index)))
        summary.add_row("State Files Loaded:", str(len(result.files_loaded)))
        skipped_style = "yellow" if result.skipped_count else "green"
        summary.add_row(
            "State Files Skipped:",
            f"[{skipped_style}]{result.skipped_count}[/]",
        )
        if result.collisions:
            summary.add_row("Shared Resource IDs:", f"[yellow]{result.collisions}[/]")
        summary.add_row(
            "Load Time:",
            result.load_time.strftime("%Y-%m-%d %H:%M:%S UTC"),
        )

        self.console.print("\n")
        self.console.print(summary)

        owners = result.index.owners()
        if owners:
            table = Table(title="\nResources by State File", title_style="bold")
            table.add_column("State File", style="cyan")
            table.add_column("Resources", justify="right")
            for owner, count in owners.items():
                table.add_row(escape(owner), str(count))
            self.console.print(table)
        else:
            self.console.print("\n[yellow]No managed resources found.[/yellow]")

        if self.show_resources and len(result.index):
            self._print_resources_table(result)

        if result.skipped_files:
            self._print_skipped(result)

    def _print_resources_table(self, result: LoadResult) -> None:
        table = Table(title="\nManaged Resources", title_style="bold")
        table.add_column("Resource ID", style="cyan", no_wrap=True)
        table.add_column("State File", style="dim")
        for resource_id, owner in result.index.items():
            table.add_row(escape(resource_id), escape(owner))
        self.console.print(table)

    def _print_skipped(self, result: LoadResult) -> None:
        self.console.print("\n[yellow bold]Skipped state files:[/yellow bold]")
        for filename, error in result.skipped_files.items():
            self.console.print(f"  [red]• {escape(filename)}: {escape(error)}[/red]")

    def print_completion_message(self, output_file: Optional[str] = None) -> None:
        self.console.print("\n[green bold]Done![/green bold]")
        if output_file:
            self.console.print(f"[dim]Results saved to: {escape(output_file)}[/dim]")

    def print_error(self, message: str) -> None:
        self.console.print(f"\n[red bold]Error:[/red bold] {escape(message)}")

    def __repr__(self) -> str:
        return f"CLIReporter(show_resources={self.show_resources})"
