"""CLI: gules cache stats|list|clear|delete"""

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _get_cache():
    from gules.cli.main import _get_cache
    return _get_cache()


@click.group()
def cache():
    """Local activity cache management."""


@cache.command("stats")
def cache_stats():
    """Show cache statistics."""
    stats = _get_cache().cache_stats()
    console.print("[bold]Activity Cache Statistics[/bold]")
    console.print(f"Status: {'Enabled' if stats.enabled else 'Disabled'}")
    console.print(f"Location: {stats.cache_dir}", markup=False)
    console.print(f"Sessions: {stats.session_count}/{stats.max_sessions}")
    console.print(f"Total Activities: {stats.total_activities}")
    console.print(f"Disk Usage: {stats.total_bytes / 1_048_576:.2f} MiB")


@cache.command("list")
def cache_list():
    """List cached sessions, least recently synced first."""
    entries = _get_cache().sessions()
    if not entries:
        console.print("Cache is empty.")
        return
    table = Table(title=f"Cached Sessions ({len(entries)})")
    table.add_column("Session", style="bold")
    table.add_column("Activities", justify="right")
    table.add_column("Last Synced")
    table.add_column("More Pages")
    for e in entries:
        synced = e.last_synced_at.strftime("%Y-%m-%d %H:%M") if e.last_synced_at else "never"
        table.add_row(e.session_id, str(e.activity_count), synced, "yes" if e.next_page_cursor else "no")
    console.print(table)


@cache.command("clear")
def cache_clear():
    """Delete every cached session."""
    activity_cache = _get_cache()
    if activity_cache.cache_stats().session_count == 0:
        console.print("Cache is already empty.")
        return
    before = activity_cache.clear_all()
    console.print(
        f"[green]Cleared cache ({before.session_count} sessions, {before.total_activities} activities)[/green]"
    )


@cache.command("delete")
@click.argument("session_id")
def cache_delete(session_id):
    """Delete the cache for one session."""
    if _get_cache().evict(session_id):
        console.print(f"[green]Deleted cache for session: {session_id}[/green]")
    else:
        console.print(f"No cache found for session: {session_id}")
