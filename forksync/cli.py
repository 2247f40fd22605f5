"""forksync CLI — the command-line front end for framework sync."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from forksync import __version__
from forksync.config import settings

console = Console()

CHANGE_STYLES = {
    "added": ("+", "green"),
    "modified": ("~", "yellow"),
    "deleted": ("-", "red"),
}


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("forksync")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(logging.DEBUG if verbose or settings.debug else logging.WARNING)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log every classification decision")
def main(verbose: bool):
    """forksync — keep a forked project up to date with its framework.

    Pulls the upstream framework, works out which files changed, and
    applies them without touching protected or customized areas.
    """
    _configure_logging(verbose)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--project", "-p", default=".", help="Project root (default: current directory)")
@click.option("--source", "-s", default=None, help="Framework git URL or local directory")
@click.option("--version", "version", default="latest", help="Framework tag or branch to sync to")
@click.option("--branch", "-b", default=None, help="Framework branch, used when --version is latest")
@click.option("--dry-run", is_flag=True, help="Show what would change without applying it")
@click.option("--diff", "show_diff", is_flag=True, help="Show a unified diff for each changed file")
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
@click.option("--commit/--no-commit", default=True, help="Commit the result to git")
def sync(
    project: str,
    source: str | None,
    version: str,
    branch: str | None,
    dry_run: bool,
    show_diff: bool,
    yes: bool,
    commit: bool,
):
    """Sync the project with the upstream framework."""
    from forksync.sync.engine import SyncEngine, SyncOptions

    project_root = Path(project).resolve()
    options = SyncOptions(
        source=source or settings.repo_url,
        version=version,
        branch=branch or settings.branch,
        dry_run=dry_run,
        commit=commit,
    )

    console.print(f"\n[bold blue]forksync[/] — Syncing {project_root} with {options.source} ({version})\n")
    if dry_run:
        console.print("[dim]Dry run — nothing will be changed.[/]\n")

    def report(plan) -> None:
        _print_plan(plan, show_diff)

    def confirm(plan) -> bool:
        return yes or click.confirm("Apply these changes?", default=True)

    engine = SyncEngine(project_root, options)
    outcome = engine.run(confirm=confirm, report=report)

    if outcome.issues:
        for issue in outcome.issues:
            console.print(f"[red]x[/] {escape(str(issue))}")
        phase = outcome.failed_phase.value if outcome.failed_phase else "sync"
        console.print(f"\n[red]Sync failed during {phase}.[/]")
        sys.exit(1)

    for warning in outcome.warnings:
        console.print(f"[yellow]![/] {escape(str(warning))}")

    if outcome.cancelled:
        console.print("Sync cancelled.")
        return

    if outcome.up_to_date:
        console.print("[green]No updates available — your project is up to date![/]")
        return

    if dry_run:
        console.print(f"\n[green]Dry run complete[/] — {outcome.applied.count} change(s) would be applied.")
        return

    summary = f"{outcome.applied.count} change(s) applied"
    if outcome.commit_sha:
        summary += f"\nCommitted as {outcome.commit_sha[:12]}"
    console.print(Panel(summary, title="Sync complete"))
    console.print("\nNext steps:")
    console.print("  • Install dependencies and run your test suite")
    console.print("  • Check that your customizations still work")
    console.print("  • Review new framework features")


def _print_plan(plan, show_diff: bool) -> None:
    from forksync.sync.differ import render_text_diff

    if plan.registry.changed:
        console.print("[bold]Framework protection defaults changed:[/]")
        for line in plan.registry.summary_lines():
            style = "green" if line.startswith("+") else "red"
            console.print(f"  [{style}]{escape(line)}[/]")
        console.print()

    for rel, state in plan.skipped_samples.items():
        console.print(f"  [dim]Skipping {rel} (sample {state.value} by you)[/]")
        if state.value == "removed":
            console.print(f"  [dim]To restore: mkdir -p {rel} && forksync sync[/]")

    if plan.is_empty:
        return

    table = Table(title=f"Changes ({len(plan.changes)} files)")
    table.add_column("", width=1)
    table.add_column("Path", style="cyan")
    table.add_column("Notes")

    for change in plan.changes:
        marker, style = CHANGE_STYLES[change.kind.value]
        notes = ""
        if change.is_manifest_merge:
            conflicts = change.manifest.diff.conflicts
            notes = "structured merge"
            if conflicts:
                notes += f"; [yellow]replaces your edits to {escape(', '.join(conflicts))}[/]"
        elif change.is_directory:
            notes = "whole directory"
        table.add_row(f"[{style}]{marker}[/]", escape(change.relative_path), notes)

    console.print(table)

    if not show_diff:
        return

    for change in plan.changes:
        if change.is_manifest_merge:
            console.print(f"\n[bold]{change.relative_path}[/]")
            for line in change.manifest.diff.summary_lines():
                console.print(f"  {line}")
        text = render_text_diff(change)
        if text:
            console.print(Syntax(text, "diff", theme="ansi_dark"))


# ── Protection ───────────────────────────────────────────────────────


@main.command()
@click.option("--project", "-p", default=".", help="Project root (default: current directory)")
@click.option("--check", "check_path", default=None, help="Report whether PATH is protected")
def protection(project: str, check_path: str | None):
    """Show the effective protection rules for a project."""
    from forksync.models.sync import SyncError
    from forksync.sync.protection import effective_protection_set
    from forksync.sync.state import SyncStateStore

    store = SyncStateStore(Path(project).resolve())
    try:
        config = store.load()
    except SyncError as e:
        console.print(f"[red]x[/] {escape(str(e.issue))}")
        sys.exit(1)

    rules = effective_protection_set(config)

    if check_path:
        matcher = rules.match(check_path)
        if matcher is None:
            console.print(f"[yellow]{escape(check_path)}[/] is not protected and will be synced")
        else:
            console.print(
                f"[green]{escape(check_path)}[/] is protected by [cyan]{escape(matcher.rule)}[/] ({matcher.kind.value})"
            )
        return

    table = Table(title=f"Protected areas ({len(rules)} rules + custom-* segments)")
    table.add_column("Rule", style="cyan")
    table.add_column("Source")

    framework_rules = set(config.protected_areas)
    for rule in rules:
        table.add_row(escape(rule), "framework" if rule in framework_rules else "user")
    console.print(table)

    if config.user_unprotected_areas:
        console.print("\n[dim]Unprotected by you:[/] " + ", ".join(config.user_unprotected_areas))


# ── History ──────────────────────────────────────────────────────────


@main.command()
@click.option("--project", "-p", default=".", help="Project root (default: current directory)")
def history(project: str):
    """List past syncs for a project."""
    from forksync.sync.history import SyncHistory

    records = SyncHistory(Path(project).resolve()).get_history()
    if not records:
        console.print("[yellow]No syncs recorded yet.[/]")
        return

    table = Table(title=f"Sync history ({len(records)} runs)")
    table.add_column("When", style="dim")
    table.add_column("Version", style="cyan")
    table.add_column("Changes", justify="right")
    table.add_column("Upstream commit")

    for record in records:
        table.add_row(
            record.synced_at,
            record.framework_version + (f" ({record.framework_branch})" if record.framework_branch else ""),
            str(record.change_count),
            record.upstream_commit[:12],
        )
    console.print(table)


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--project", "-p", default=".", help="Project root (default: current directory)")
@click.option("--version", "version", default="latest", help="Framework version the project is on")
@click.option("--branch", "-b", default="", help="Framework branch the project follows")
def init(project: str, version: str, branch: str):
    """Create a sync configuration for an existing checkout."""
    from forksync.sync.state import SyncStateStore

    store = SyncStateStore(Path(project).resolve())
    if store.exists():
        console.print(f"[yellow]{store.config_path} already exists.[/]")
        return

    config = store.initialize(version=version, branch=branch)
    console.print(
        f"[green]Created[/] {store.config_path} with {len(config.protected_areas)} protected areas"
    )


if __name__ == "__main__":
    main()
