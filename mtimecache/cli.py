from __future__ import annotations

import asyncio
from dataclasses import asdict
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from mtimecache.auth import find_hub_token
from mtimecache.config import (
    MtimeCacheConfig,
    check_host,
    config_path,
    load_config,
    save_config,
    validate_config,
)
from mtimecache.keys import SaveDecision
from mtimecache.manifest import MANIFEST_FILENAME
from mtimecache.phases import RestoreResult, StoreResult, restore_phase, store_phase
from mtimecache.reconcile import ReconcileResult, restore_mtimes


app = typer.Typer(help="Build cache restore/store with content-gated mtime reconciliation")
console = Console()


def _render_path_summary(title: str, paths: list[str], style: str) -> None:
    if not paths:
        return
    console.print(Text(f"{title} ({len(paths)}):", style=style))
    for path in paths:
        console.print(f"  {path}")


def _render_inputs(config: MtimeCacheConfig) -> None:
    table = Table(title="Inputs")
    table.add_column("Name")
    table.add_column("Value")
    for name, value in asdict(config).items():
        if name == "token" and value:
            value = "***"
        table.add_row(name, str(value))
    if config.backend == "hub":
        _, source = find_hub_token(config.token)
        table.add_row("token source", source or "none (anonymous)")
    console.print(table)


def _render_reconcile(result: ReconcileResult, manifest_path: Path, verbose: bool) -> None:
    if not result.manifest_found:
        console.print(f"mtime manifest not found: {manifest_path}")
        return

    if verbose:
        _render_path_summary("Restored", result.restored_paths, "green")
        _render_path_summary("Skipped, mtime not changed", result.unchanged_paths, "dim")
        _render_path_summary("Skipped, content changed", result.changed_paths, "yellow")
        _render_path_summary("Skipped, not found", result.missing_paths, "dim")

    table = Table(title="Would restore mtimes" if result.dry_run else "mtime reconciliation")
    table.add_column("Outcome")
    table.add_column("Entries", justify="right")
    for outcome, count in result.counts().items():
        table.add_row(outcome.value, str(count))
    console.print(table)
    verb = "Would restore" if result.dry_run else "Restored"
    console.print(f"{verb} {result.restored_count} files.")


def _load_checked_config(config_dir: Path | None) -> MtimeCacheConfig:
    check_host()
    config = load_config(config_dir)
    validate_config(config)
    return config


@app.command()
def init(
    key: str,
    backend: str = typer.Option("hub", "--backend", help="Cache backend: hub or local."),
    repo_id: str = typer.Option("", "--repo-id", help="Hub repository holding cache entries."),
    build_dir: str | None = typer.Option(None, "--build-dir", help="Build output directory to cache."),
) -> None:
    """Write a `.mtimecache.json` config in the current directory."""
    config = MtimeCacheConfig(key=key, backend=backend, repo_id=repo_id)
    if build_dir:
        config.build_dir = build_dir
    path = save_config(config)
    console.print(f"[green]Initialized mtimecache[/green]: {path}")
    if backend == "hub" and not repo_id:
        console.print("[yellow]`repo_id` is empty; set it before running restore/store.[/yellow]")


def _render_restore(config: MtimeCacheConfig, result: RestoreResult) -> None:
    for domain in result.domains:
        if not domain.restored:
            console.print(f"{domain.domain} cache not found: {domain.key}")
            continue
        kind = "exact" if domain.exact_hit else "fallback"
        console.print(
            f"[green]{domain.domain} restored[/green] from {kind} key {domain.restored_key}: {domain.root}"
        )
        if config.verbose and domain.listing:
            console.print(domain.listing)
    for note in result.notes:
        console.print(note)
    if result.reconcile is not None:
        _render_reconcile(result.reconcile, result.manifest_path, config.verbose)


async def _restore_async(config_dir: Path | None) -> int:
    try:
        config = _load_checked_config(config_dir)
        _render_inputs(config)
        result = await restore_phase(config, console=console)
    except KeyboardInterrupt:
        console.print("[yellow]Restore interrupted.[/yellow] Timestamps may be partially restored.")
        return 130
    except (FileNotFoundError, RuntimeError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:
        console.print(f"[red]Restore failed:[/red] {exc}")
        return 1

    _render_restore(config, result)
    return 0


@app.command()
def restore(
    config_dir: Path | None = typer.Option(None, "--config-dir", help="Directory holding .mtimecache.json."),
) -> None:
    """Restore cached trees and rewind mtimes of unchanged sources (run before the build)."""
    raise typer.Exit(code=asyncio.run(_restore_async(config_dir)))


def _render_store(config: MtimeCacheConfig, result: StoreResult) -> None:
    if result.manifest is not None:
        if config.verbose:
            _render_path_summary("Stored", [entry.path for entry in result.manifest.entries], "green")
        for path in result.manifest.unreadable_paths:
            console.print(f"[yellow]cannot read file stat: {path}[/yellow]")
        console.print(
            f"Stored {result.manifest.stored_count} files : {result.manifest.manifest_path}"
        )

    for domain in result.domains:
        if domain.decision is SaveDecision.SKIP_EXACT_HIT:
            console.print(f"{domain.domain} cache hit on {domain.key}, skipped saving.")
        elif domain.decision is SaveDecision.SKIP_READ_ONLY:
            console.print(f"{domain.domain} cache is read-only, skipped saving.")
        elif domain.saved:
            console.print(f"[green]{domain.domain} cache saved[/green]: {domain.key}")
        if config.verbose and domain.listing:
            console.print(domain.listing)
        for warning in domain.warnings:
            console.print(f"[yellow]{warning}[/yellow]")
        for note in domain.notes:
            console.print(note)
        if domain.pruned_key:
            console.print(f"Deleted used {domain.domain} cache: {domain.pruned_key}")

    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    for note in result.notes:
        console.print(note)


async def _store_async(config_dir: Path | None) -> int:
    try:
        config = _load_checked_config(config_dir)
        _render_inputs(config)
        result = await store_phase(config, console=console)
    except KeyboardInterrupt:
        console.print("[yellow]Store interrupted.[/yellow] Cache entries may not have been saved.")
        return 130
    except (FileNotFoundError, RuntimeError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:
        console.print(f"[red]Store failed:[/red] {exc}")
        return 1

    _render_store(config, result)
    return 0


@app.command()
def store(
    config_dir: Path | None = typer.Option(None, "--config-dir", help="Directory holding .mtimecache.json."),
) -> None:
    """Capture the mtime manifest and save cache domains that need it (run after the build)."""
    raise typer.Exit(code=asyncio.run(_store_async(config_dir)))


@app.command()
def plan(
    config_dir: Path | None = typer.Option(None, "--config-dir", help="Directory holding .mtimecache.json."),
) -> None:
    """Show which mtimes a restore would rewind, without touching any file."""
    try:
        config = _load_checked_config(config_dir)
        manifest_path = config.build_dir_path / MANIFEST_FILENAME
        result = restore_mtimes(
            Path.cwd(),
            manifest_path,
            workers=config.reconcile_workers,
            dry_run=True,
        )
    except (FileNotFoundError, RuntimeError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Config: {config_path(config_dir)}")
    _render_reconcile(result, manifest_path, verbose=True)
