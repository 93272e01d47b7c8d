"""spretain CLI - main entry point."""

from datetime import datetime
import signal
import threading

import click
from rich.table import Table

from .ui import (
    configure_logging,
    console,
    render_summary,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ..auth.config import ACTION_RESET_LABELS, ACTION_UNLOCK_RECORDS, ConfigurationError

# Exit status when --fail-on-errors is set and anything failed.
EXIT_RUN_FAILURES = 3


@click.group()
@click.version_option(package_name="spretain")
def cli():
    """spretain - Retention label and record maintenance for SharePoint Online."""
    pass


RUN_OPTIONS = [
    click.argument("sites_file", type=click.Path(dir_okay=False)),
    click.option("--apply", "do_apply", is_flag=True, help="Make changes (default: report-only)"),
    click.option("--max-attempts", type=int, help="Attempts per call when throttled"),
    click.option("--base-delay-ms", type=int, help="Backoff base when no Retry-After is sent"),
    click.option("--item-delay-ms", type=int, help="Pause between items"),
    click.option("--list-delay-ms", type=int, help="Pause between lists"),
    click.option("--site-delay-ms", type=int, help="Pause between sites"),
    click.option(
        "--ignore-list", "ignore_lists", multiple=True, help="List title to skip (repeatable)"
    ),
    click.option("--log-file", type=click.Path(dir_okay=False), help="Write a detailed log file"),
    click.option(
        "--run-log", type=click.Path(dir_okay=False), help="Append run events as JSON lines"
    ),
    click.option(
        "--fail-on-errors",
        is_flag=True,
        help=f"Exit with status {EXIT_RUN_FAILURES} if any site, list or item failed",
    ),
    click.option("--verbose", "-v", is_flag=True, help="Show retry and pacing details"),
]


def run_options(func):
    """Attach the options shared by the traversal commands."""
    for option in reversed(RUN_OPTIONS):
        func = option(func)
    return func


@cli.command("reset-labels")
@run_options
@click.option(
    "--target-label",
    "-l",
    default="",
    help="Only lists whose label name starts with this (default: any label)",
)
def reset_labels(target_label: str, **options):
    """Reset and reapply retention labels on lists.

    SITES_FILE lists one site URL per line.

    REPORT-ONLY BY DEFAULT: Use --apply to actually reset labels.

    Examples:

        # Report lists carrying any retention label
        spretain reset-labels sites.txt

        # Reset and reapply labels starting with "Record"
        spretain reset-labels sites.txt --target-label Record --apply

        # Slow down for a busy tenant
        spretain reset-labels sites.txt --list-delay-ms 2000 --site-delay-ms 10000
    """
    from ..labeler import LabelResetProcessor

    _run(ACTION_RESET_LABELS, LabelResetProcessor(), target_label=target_label, **options)


@cli.command("unlock-records")
@run_options
def unlock_records(**options):
    """Unlock items locked as records.

    SITES_FILE lists one site URL per line.

    REPORT-ONLY BY DEFAULT: Use --apply to actually unlock items.

    Examples:

        # Report locked records
        spretain unlock-records sites.txt

        # Unlock them, keeping a JSON lines record of every change
        spretain unlock-records sites.txt --apply --run-log unlock.jsonl
    """
    from ..labeler import RecordUnlockProcessor

    _run(ACTION_UNLOCK_RECORDS, RecordUnlockProcessor(), **options)


def _run(
    action: str,
    processor,
    sites_file: str,
    do_apply: bool,
    max_attempts: int,
    base_delay_ms: int,
    item_delay_ms: int,
    list_delay_ms: int,
    site_delay_ms: int,
    ignore_lists: tuple,
    log_file: str,
    run_log: str,
    fail_on_errors: bool,
    verbose: bool,
    target_label: str = "",
):
    """Run one traversal command end to end."""
    from ..scanner import TraversalController, read_site_list
    from ..storage import RunLog

    configure_logging(verbose=verbose, log_file=log_file)

    try:
        sites = read_site_list(sites_file)
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1)

    if not sites:
        print_warning(f"No sites listed in {sites_file}.")
        raise SystemExit(0)

    config, credential = _get_credentials()
    if config is None:
        raise SystemExit(1)

    try:
        settings = config.run_settings(
            action,
            report_only=not do_apply,
            target_label=target_label,
            extra_ignored=ignore_lists,
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
            item_delay_ms=item_delay_ms,
            list_delay_ms=list_delay_ms,
            site_delay_ms=site_delay_ms,
        )
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1)

    # Status header
    if settings.report_only:
        console.print("[yellow]REPORT-ONLY MODE[/yellow] - No changes will be made")
        console.print("Add [bold]--apply[/bold] to make changes\n")
    else:
        console.print("[red bold]APPLY MODE[/red bold] - This will modify the tenant\n")

    print_info(f"{len(sites)} site(s) from {sites_file}")
    if target_label:
        print_info(f"Target label: {target_label}")

    sharepoint = _open_client(config, credential)

    run_id = datetime.now().strftime("%Y%m%d-%H%M%S")
    events = RunLog(run_log, run_id=run_id) if run_log else None

    cancel = threading.Event()
    previous_handler = _install_cancel_handler(cancel)

    try:
        with sharepoint as client:
            controller = TraversalController(
                client,
                processor,
                settings,
                run_log=events,
                cancel=cancel,
            )
            summary = controller.run(sites)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    console.print()
    console.print(render_summary(summary))

    if run_log:
        console.print(f"\n[dim]Run events appended to {run_log} (run_id: {run_id})[/dim]")

    if fail_on_errors and summary.has_failures:
        raise SystemExit(EXIT_RUN_FAILURES)


def _open_client(config, credential):
    """Build the SharePoint client, exiting 1 when MSAL cannot be set up."""
    from ..auth.sharepoint import SharePointClient, SharePointAuthError

    try:
        return SharePointClient(config.tenant_id, config.client_id, credential)
    except ImportError as e:
        print_error(str(e))
        raise SystemExit(1)
    except SharePointAuthError as e:
        print_error(str(e))
        console.print("\nCheck your credentials:")
        console.print("  spretain config show")
        raise SystemExit(1)


def _install_cancel_handler(cancel: threading.Event):
    """First Ctrl+C stops at the next boundary; a second one aborts."""

    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        print_warning("Stopping after the current operation (Ctrl+C again to abort)")

    return signal.signal(signal.SIGINT, handler)


def _get_credentials():
    """Load config and build the MSAL credential, or explain what is missing."""
    from ..auth.config import Config

    config = Config.load()

    if not config.is_configured:
        console.print("[yellow]SharePoint credentials not found.[/yellow]")
        console.print("\nConfigure them:")
        console.print("  [bold]spretain config set tenant_id <tenant>[/bold]")
        console.print("  [bold]spretain config set client_id <app id>[/bold]")
        console.print("  [bold]spretain config set cert_path <private key .pem>[/bold]")
        console.print("  [bold]spretain config set cert_thumbprint <thumbprint>[/bold]")
        console.print("\nOr set environment variables:")
        console.print("  SPRETAIN_TENANT_ID        - Entra ID tenant ID")
        console.print("  SPRETAIN_CLIENT_ID        - Application ID")
        console.print("  SPRETAIN_CERT_PATH        - Certificate private key (PEM)")
        console.print("  SPRETAIN_CERT_THUMBPRINT  - Certificate thumbprint")
        console.print("  SPRETAIN_CLIENT_SECRET    - Client secret (instead of a certificate)")
        return None, None

    try:
        credential = config.get_client_credential()
    except ConfigurationError as e:
        print_error(str(e))
        return None, None

    return config, credential


# =============================================================================
# Run log
# =============================================================================


@cli.command()
@click.argument("run_log", type=click.Path(exists=True, dir_okay=False))
@click.option("--run-id", help="Show events of one run only")
@click.option("--limit", "-n", default=20, help="Number of failed events to list")
def history(run_log: str, run_id: str, limit: int):
    """Summarize a run log written with --run-log.

    Examples:

        spretain history unlock.jsonl

        spretain history unlock.jsonl --run-id 20240115-103000
    """
    from ..storage import RunLog

    log = RunLog(run_log)
    stats = log.get_stats()

    console.print(f"\n[bold]Run log:[/bold] {run_log}")
    console.print(f"  Entries: {stats['total_entries']:,}")
    console.print(f"  Runs:    {stats['runs']:,}")
    if stats["first_entry"]:
        console.print(f"  From:    {stats['first_entry'][:19]}")
        console.print(f"  To:      {stats['last_entry'][:19]}")

    if stats["by_action"]:
        table = Table(title="Events")
        table.add_column("Action", style="cyan")
        table.add_column("Count", justify="right")
        for action, count in sorted(stats["by_action"].items(), key=lambda x: -x[1]):
            table.add_row(action, f"{count:,}")
        console.print(table)

    failures = [e for e in log.get_entries(run_id=run_id, limit=100000) if not e.success]
    if failures:
        console.print(f"\n[bold red]Failures ({len(failures)}):[/bold red]")
        for entry in failures[:limit]:
            where = entry.list_title or entry.site or ""
            if entry.item_id is not None:
                where += f" #{entry.item_id}"
            console.print(f"  {entry.action.value:<18} {where}: {entry.error}")
        if len(failures) > limit:
            console.print(f"  ... and {len(failures) - limit} more")


# =============================================================================
# Configuration
# =============================================================================


@cli.group()
def config():
    """Manage spretain configuration."""
    pass


@config.command("show")
def config_show():
    """Show current configuration.

    Examples:

        spretain config show
    """
    from ..auth.config import Config, CONFIG_FILE

    config = Config.load()

    console.print("\n[bold]spretain Configuration[/bold]\n")

    console.print("[bold]SharePoint Connection:[/bold]")
    console.print(f"  Tenant ID:     {config.tenant_id or '[dim](not set)[/dim]'}")
    console.print(f"  Client ID:     {config.client_id or '[dim](not set)[/dim]'}")
    console.print(f"  Certificate:   {config.cert_path or '[dim](not set)[/dim]'}")
    console.print(f"  Thumbprint:    {config.cert_thumbprint or '[dim](not set)[/dim]'}")
    console.print(
        f"  Client Secret: {'[green]✓ configured[/green]' if config.get_client_secret() else '[dim](not set)[/dim]'}"
    )
    console.print(
        f"  Status:        {'[green]✓ Ready[/green]' if config.is_configured else '[yellow]⚠ Incomplete[/yellow]'}"
    )

    console.print("\n[bold]Throttling:[/bold]")
    console.print(f"  Max attempts:   {config.max_attempts}")
    console.print(f"  Base delay:     {config.base_delay_ms}ms")
    console.print(f"  Between items:  {config.item_delay_ms}ms")
    console.print(f"  Between lists:  {config.list_delay_ms}ms")
    console.print(f"  Between sites:  {config.site_delay_ms}ms")

    console.print("\n[bold]Traversal:[/bold]")
    console.print(f"  Sync labels to items: {config.sync_to_items}")
    console.print(f"  Ignored lists ({len(config.ignored_lists)}):")
    for title in config.ignored_lists:
        console.print(f"    - {title}")

    console.print(f"\n[dim]Config file: {CONFIG_FILE}[/dim]")


INT_KEYS = ("max_attempts", "base_delay_ms", "item_delay_ms", "list_delay_ms", "site_delay_ms")


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    Keys:

        tenant_id        Entra ID tenant ID
        client_id        Application (client) ID
        cert_path        Certificate private key file (PEM)
        cert_thumbprint  Certificate thumbprint
        client_secret    Client secret (stored in keyring)
        max_attempts     Attempts per throttled call
        base_delay_ms    Backoff base in milliseconds
        item_delay_ms    Pause between items
        list_delay_ms    Pause between lists
        site_delay_ms    Pause between sites
        ignored_lists    Comma-separated list titles to skip
        sync_to_items    true/false - push reapplied labels to items

    Examples:

        spretain config set tenant_id contoso.onmicrosoft.com

        spretain config set list_delay_ms 1000

        spretain config set ignored_lists "Site Pages,Style Library"
    """
    from ..auth.config import Config

    config = Config.load()

    if key in ("tenant_id", "client_id", "cert_path", "cert_thumbprint"):
        setattr(config, key, value)
        config.save()
        print_success(f"{key} set.")

    elif key == "client_secret":
        try:
            config.set_client_secret(value)
            print_success("Client secret stored in keyring.")
        except Exception as e:
            print_warning(f"Could not save to keyring: {e}")
            console.print("Set environment variable instead:")
            console.print("  export SPRETAIN_CLIENT_SECRET='...'")

    elif key in INT_KEYS:
        try:
            number = int(value)
        except ValueError:
            print_error(f"{key} must be an integer")
            raise SystemExit(1)
        if number < (1 if key == "max_attempts" else 0):
            print_error(f"{key} is out of range: {number}")
            raise SystemExit(1)
        setattr(config, key, number)
        config.save()
        print_success(f"{key} set to {number}.")

    elif key == "ignored_lists":
        config.ignored_lists = [title.strip() for title in value.split(",") if title.strip()]
        config.save()
        print_success(f"Ignoring {len(config.ignored_lists)} list title(s).")

    elif key == "sync_to_items":
        if value.lower() not in ("true", "false"):
            print_error("sync_to_items must be 'true' or 'false'")
            raise SystemExit(1)
        config.sync_to_items = value.lower() == "true"
        config.save()
        print_success(f"sync_to_items set to {config.sync_to_items}.")

    else:
        print_error(f"Unknown key: {key}")
        console.print(
            "\nValid keys: tenant_id, client_id, cert_path, cert_thumbprint, client_secret, "
            + ", ".join(INT_KEYS)
            + ", ignored_lists, sync_to_items"
        )
        raise SystemExit(1)


@config.command("test")
@click.argument("site_url")
def config_test(site_url: str):
    """Test the SharePoint connection against a site.

    Verifies that credentials work and lists can be enumerated.

    Examples:

        spretain config test https://contoso.sharepoint.com/sites/HR
    """
    from ..auth.sharepoint import SharePointAuthError, SharePointAPIError

    config, credential = _get_credentials()
    if config is None:
        raise SystemExit(1)

    console.print("[dim]Testing connection...[/dim]")

    with _open_client(config, credential) as client:
        try:
            session = client.connect(site_url)
        except SharePointAuthError as e:
            print_error(f"Authentication failed: {e}")
            console.print("\nCheck your credentials:")
            console.print("  spretain config show")
            raise SystemExit(1)
        except SharePointAPIError as e:
            print_error(f"Cannot open site: {e}")
            raise SystemExit(1)

        print_success(f"✓ Connected to {session.title or site_url}")

        try:
            lists = session.list_lists()
            print_success(f"✓ Can enumerate lists ({len(lists)} found)")
        except SharePointAPIError as e:
            print_warning(f"✗ Cannot enumerate lists: {e}")
        finally:
            client.disconnect(session)


@config.command("reset")
@click.confirmation_option(prompt="This will delete all saved configuration. Continue?")
def config_reset():
    """Delete saved configuration and the stored client secret."""
    from ..auth.config import reset_config

    reset_config()
    print_success("Configuration reset.")


if __name__ == "__main__":
    cli()
