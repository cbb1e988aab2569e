"""CLI: gules config show|set-key|set"""

from typing import Optional

import click
from rich.console import Console

console = Console()


def _load_config() -> dict:
    from gules.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from gules.cli.main import _save_config
    _save_config(cfg)


def _cache_config(cfg: dict):
    from gules.cli.main import _cache_config
    return _cache_config(cfg)


@click.group()
def config():
    """Configuration (~/.gules/config.json)."""


@config.command("show")
def config_show():
    """Show the effective configuration."""
    cfg = _load_config()
    cache_cfg = _cache_config(cfg)
    key = cfg.get("api_key")
    console.print(f"API key: {'set (' + key[:4] + '...)' if key else '[yellow]not set[/yellow]'}")
    console.print(f"Base URL: {cfg.get('base_url', 'default')}", markup=False)
    console.print(f"Cache: {'enabled' if cache_cfg.enabled else 'disabled'}")
    console.print(f"Cache dir: {cache_cfg.root}", markup=False)
    console.print(f"Max sessions: {cache_cfg.max_sessions}")
    console.print(f"Page size: {cache_cfg.page_size}")
    console.print(f"Max pages per sync: {cache_cfg.max_pages or 'unlimited'}")


@config.command("set-key")
@click.argument("api_key")
def config_set_key(api_key: str):
    """Save the Jules API key."""
    _save_config({**_load_config(), "api_key": api_key})
    console.print("[green]API key saved to ~/.gules/config.json[/green]")


@config.command("set")
@click.option("--base-url", default=None)
@click.option("--cache-dir", default=None, type=click.Path(file_okay=False))
@click.option("--max-sessions", default=None, type=click.IntRange(min=1))
@click.option("--page-size", default=None, type=click.IntRange(1, 100))
@click.option("--max-pages", default=None, type=click.IntRange(min=1))
@click.option("--enable-cache/--disable-cache", default=None)
def config_set(base_url: Optional[str], cache_dir: Optional[str], max_sessions: Optional[int],
               page_size: Optional[int], max_pages: Optional[int], enable_cache: Optional[bool]):
    """Update configuration values."""
    cfg = _load_config()
    if base_url:
        cfg["base_url"] = base_url
    cache_section = dict(cfg.get("cache") or {})
    updates = {"dir": cache_dir, "max_sessions": max_sessions, "page_size": page_size,
               "max_pages": max_pages, "enabled": enable_cache}
    cache_section.update({k: v for k, v in updates.items() if v is not None})
    if cache_dir:
        cache_section.pop("root", None)
    cfg["cache"] = cache_section
    _save_config(cfg)
    console.print("[green]Configuration saved.[/green]")
