"""
gules CLI: `gules` command.

Commands:
  gules activities <session-id>   Sync and filter a session's activities
  gules cache stats|list|clear|delete
  gules config show|set-key|set
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install gules[cli]")

from pydantic import ValidationError

from gules.activities import ActivityCache
from gules.client import AsyncGules
from gules.config import CacheConfig
from gules.transport.http import DEFAULT_BASE_URL

console = Console()
err_console = Console(stderr=True)
CONFIG_FILE = Path.home() / ".gules" / "config.json"


def _load_config() -> dict[str, Any]:
    try:
        cfg = json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}
    return cfg if isinstance(cfg, dict) else {}


def _save_config(cfg: dict[str, Any]) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _cache_config(cfg: Optional[dict[str, Any]] = None) -> CacheConfig:
    cfg = _load_config() if cfg is None else cfg
    try:
        return CacheConfig.from_mapping(cfg.get("cache"))
    except ValidationError as e:
        err_console.print(f"[red]Invalid cache settings in {CONFIG_FILE}:[/red] {e}")
        raise SystemExit(1)


def _resolve_api_key(cli_key: Optional[str], cfg: dict[str, Any]) -> Optional[str]:
    """--api-key flag, then JULES_API_KEY, then the config file."""
    return cli_key or os.environ.get("JULES_API_KEY") or cfg.get("api_key")


def _get_client(api_key: Optional[str] = None) -> AsyncGules:
    cfg = _load_config()
    key = _resolve_api_key(api_key, cfg)
    if not key:
        err_console.print(
            "[red]API key not found.[/red] Set it with --api-key, the JULES_API_KEY environment "
            "variable, or `gules config set-key`."
        )
        raise SystemExit(1)
    return AsyncGules(
        api_key=key,
        base_url=cfg.get("base_url", DEFAULT_BASE_URL),
        cache_config=_cache_config(cfg),
    )


def _get_cache() -> ActivityCache:
    """Cache-only access; no API key needed."""
    return ActivityCache(_cache_config())


def _run(coro):
    return asyncio.run(coro)


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
def main(verbose: int):
    """gules: cached, filterable Jules session activities."""
    _setup_logging(verbose)


# Register subcommands from separate modules
from gules.cli.activities import activities_cmd
from gules.cli.cache import cache
from gules.cli.config import config

main.add_command(activities_cmd)
main.add_command(cache)
main.add_command(config)


if __name__ == "__main__":
    main()
