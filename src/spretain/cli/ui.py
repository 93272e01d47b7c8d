"""Rich terminal UI components for spretain."""

from typing import Optional
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from ..scanner.results import RunSummary

console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(verbose: bool = False, log_file: Optional[str] = None):
    """
    Route log records to the console and, optionally, a plain text file.

    The console shows INFO (DEBUG with verbose). The file always receives
    DEBUG so pacing and retry details are kept for later review.
    """
    package_logger = logging.getLogger("spretain")
    package_logger.setLevel(logging.DEBUG)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(console=console, show_path=False, markup=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            package_logger.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            package_logger.addHandler(file_handler)


def render_summary(summary: RunSummary) -> Panel:
    """Render the end-of-run summary panel."""
    verb = "Would change" if summary.report_only else "Changed"
    noun = "lists" if summary.action == "reset-labels" else "items"

    if summary.partial_mutations:
        title = "[red]⚠ Partial Changes[/red]"
        border_style = "red"
    elif summary.has_failures:
        title = "[yellow]⚠ Completed With Errors[/yellow]"
        border_style = "yellow"
    else:
        title = "[green]✓ Completed[/green]"
        border_style = "green"

    if summary.cancelled:
        title += " [yellow](cancelled)[/yellow]"

    mode = "REPORT-ONLY" if summary.report_only else "APPLY"

    lines = [
        f"[bold]{summary.action}[/bold]  {mode}  in {summary.duration_seconds:.1f}s",
        "",
        "[bold]Sites[/bold]",
        f"  Attempted / total   {summary.sites_attempted:>6,} / {summary.sites_total:,}",
        f"  Processed           {summary.sites_processed:>6,}",
        f"  [red]Failed[/red]              {summary.sites_failed:>6,}",
        "",
        "[bold]Lists[/bold]",
        f"  Processed           {summary.lists_processed:>6,}",
        f"  [red]Failed[/red]              {summary.lists_failed:>6,}",
    ]

    if summary.action == "unlock-records":
        lines += [
            "",
            "[bold]Items[/bold]",
            f"  Inspected           {summary.items_processed:>6,}",
            f"  [red]Failed[/red]              {summary.items_failed:>6,}",
        ]

    # Report-only runs change nothing; show what would have changed.
    changed = summary.qualifying if summary.report_only else summary.mutated

    lines += [
        "",
        "[bold]Actions[/bold]",
        f"  Qualifying {noun:<8} {summary.qualifying:>6,}",
        f"  {verb:<19} {changed:>6,}",
    ]

    if summary.partial_mutations:
        lines.append(
            f"  [red bold]Reset, not reapplied {summary.partial_mutations:>5,}[/red bold]"
        )

    return Panel(
        "\n".join(lines),
        title=title,
        border_style=border_style,
        padding=(0, 1),
    )


def print_error(message: str):
    """Print an error message."""
    console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str):
    """Print a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str):
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_info(message: str):
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
