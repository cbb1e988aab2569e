"""CLI: gules activities <session-id> [filters]"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from gules.errors import GulesError, InvalidPredicate
from gules.filters import PredicateSpec
from gules.models.activity import MISSING, ActivityRecord, BashOutput, ChangeSet, GitPatch

console = Console()
err_console = Console(stderr=True)

FORMATS = ("table", "json", "full", "content")


def _get_client(api_key: Optional[str] = None):
    from gules.cli.main import _get_client
    return _get_client(api_key)


def _run(coro):
    from gules.cli.main import _run
    return _run(coro)


@click.command("activities")
@click.argument("session_id")
@click.option("-n", "--last", type=int, default=None, help="Keep only the N most recent matches")
@click.option("-t", "--type", "types", multiple=True,
              help="Activity type: agent, user, plan, plan-approved, progress, completed, failed, unknown")
@click.option("--has-bash-output", is_flag=True, help="Only activities with a bash output artifact")
@click.option("--has-artifact", "artifacts", multiple=True, help="Artifact type: bash, change-set, media")
@click.option("--no-cache", is_flag=True, help="Fetch from the API without reading or writing the cache")
@click.option("--full-resync", is_flag=True, help="Re-fetch from the first page instead of the stored cursor")
@click.option("-f", "--format", "output_format", type=click.Choice(FORMATS), default="table", show_default=True)
@click.option("--api-key", default=None, help="Jules API key (overrides JULES_API_KEY and config)")
def activities_cmd(session_id, last, types, has_bash_output, artifacts, no_cache, full_resync,
                   output_format, api_key):
    """Show a session's activities, synced through the local cache."""
    wanted_artifacts = list(artifacts) + (["bash"] if has_bash_output else [])
    try:
        predicate = PredicateSpec.build(kinds=types, has_artifact=wanted_artifacts, last=last)
    except InvalidPredicate as e:
        raise click.BadParameter(str(e))

    client = _get_client(api_key)

    async def _query():
        try:
            return await client.query(
                session_id, predicate,
                use_cache=False if no_cache else None,
                force_full=full_resync,
            )
        finally:
            await client.close()

    try:
        if output_format == "json":
            records, result = _run(_query())
        else:
            with console.status("Syncing activities..."):
                records, result = _run(_query())
    except GulesError as e:
        err_console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    if result is not None and result.error is not None:
        err_console.print(
            f"[yellow]Sync stopped early: {result.records_added} new activities merged before "
            f"the failure ({result.error}). Showing cached data.[/yellow]"
        )
    render_activities(records, output_format)


def render_activities(records: list[ActivityRecord], output_format: str) -> None:
    if output_format == "json":
        click.echo(json.dumps([r.to_payload() for r in records], indent=2))
        return
    if not records:
        console.print("No activities found matching the filters.")
        return
    if output_format == "table":
        _render_table(records)
    elif output_format == "full":
        _render_full(records)
    else:
        for record in records:
            summary = record.summary()
            if summary:
                console.print(summary, markup=False)
                console.print("---")


def _text(value, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def _render_table(records: list[ActivityRecord]) -> None:
    table = Table(title=f"Activities ({len(records)})")
    table.add_column("Time", style="dim")
    table.add_column("Type", style="bold")
    table.add_column("Originator")
    table.add_column("Summary")
    for r in records:
        summary = r.summary() or _text(r.description)
        if len(summary) > 80:
            summary = summary[:77] + "..."
        table.add_row(_text(r.created_at, "?"), r.label, _text(r.originator, "?"), summary)
    console.print(table)


def _render_full(records: list[ActivityRecord]) -> None:
    total = len(records)
    for i, r in enumerate(records, 1):
        console.rule(f"Activity {i}/{total}")
        console.print(f"ID: {_text(r.id, '[missing]')}", markup=False)
        console.print(f"Type: {r.label}", markup=False)
        console.print(f"Time: {_text(r.created_at, '[missing]')}", markup=False)
        console.print(f"Originator: {_text(r.originator, '[missing]')}", markup=False)
        if r.description is not MISSING and r.description:
            console.print(f"Description: {r.description}", markup=False)
        summary = r.summary()
        if summary:
            console.print("\nContent:")
            console.print(summary, markup=False)
        artifacts = r.artifact_list()
        if artifacts:
            console.print(f"\nArtifacts: {len(artifacts)}")
        for j, artifact in enumerate(artifacts, 1):
            console.print(f"  Artifact {j}:")
            if isinstance(artifact.bash_output, BashOutput):
                bash = artifact.bash_output
                exit_code = bash.exit_code if isinstance(bash.exit_code, int) else "unknown"
                console.print("    Type: Bash Output")
                console.print(f"    Command: {_text(bash.command, '[Empty command]')}", markup=False)
                console.print(f"    Exit Code: {exit_code}")
                console.print("    Output:")
                output = _text(bash.output, "[No output]")
                console.print("    " + "\n    ".join(output.splitlines() or [""]), markup=False)
            if isinstance(artifact.change_set, ChangeSet):
                change_set = artifact.change_set
                console.print("    Type: Change Set")
                console.print(f"    Source: {_text(change_set.source, '[missing]')}", markup=False)
                if isinstance(change_set.git_patch, GitPatch):
                    patch = change_set.git_patch
                    if isinstance(patch.base_commit_id, str):
                        console.print(f"    Base Commit: {patch.base_commit_id}", markup=False)
                    if isinstance(patch.suggested_commit_message, str):
                        console.print(f"    Suggested Commit: {patch.suggested_commit_message}", markup=False)
                    if not isinstance(patch.unidiff_patch, str):
                        console.print("    (No diff available)")
            if artifact.media is not MISSING and artifact.media is not None:
                console.print(f"    Type: Media ({_text(artifact.media.mime_type, 'unknown type')})")
        console.print()
