from __future__ import annotations

import asyncio
import importlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import typer
import yaml

from .core.config import AppConfig, ConfigError, load_config
from .core.logging_utils import setup_rotating_logger
from .discord.command_registry import fetch_commands, sync_commands
from .discord.config import DiscordInteractionsConfigError
from .discord.errors import DiscordError
from .discord.rest import DiscordRestClient
from .discord.service import DiscordInteractionsService, create_interactions_service

app = typer.Typer(add_completion=False, help="Discord interactions relay.")

SetupHook = Callable[[DiscordInteractionsService], Any]


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _load_app_config(path: Optional[Path]) -> AppConfig:
    try:
        config = load_config(path)
        config.discord.require_credentials()
    except (ConfigError, DiscordInteractionsConfigError) as exc:
        raise_exit(str(exc), cause=exc)
    return config


def load_setup_hook(spec: str) -> SetupHook:
    """Import `package.module:function`; the function registers interaction handlers."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"handler spec must look like 'module:function', got {spec!r}")
    module = importlib.import_module(module_name)
    hook = getattr(module, attr, None)
    if not callable(hook):
        raise ValueError(f"{spec!r} does not name a callable")
    return hook


def _build_service(config: AppConfig, handlers: Optional[str]) -> DiscordInteractionsService:
    logger = setup_rotating_logger("slashgate", config.log)
    service = create_interactions_service(config.discord, logger=logger)
    if handlers:
        try:
            load_setup_hook(handlers)(service)
        except (ImportError, ValueError) as exc:
            raise_exit(f"Failed to load handlers: {exc}", cause=exc)
    return service


def _read_command_file(path: Path) -> list[dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    if isinstance(data, dict):
        data = data.get("commands", [])
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"{path} must contain a list of command definitions")
    return data


@app.command("serve")
def serve(
    path: Optional[Path] = typer.Option(None, "--path", help="Config file or root"),
    handlers: Optional[str] = typer.Option(
        None, "--handlers", help="Setup hook as module:function"
    ),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
) -> None:
    """Receive interactions over the signed webhook transport."""
    import uvicorn

    from .web.app import create_app

    config = _load_app_config(path)
    service = _build_service(config, handlers)
    try:
        web_app = create_app(service)
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)
    uvicorn.run(
        web_app,
        host=host or config.discord.webhook.host,
        port=port or config.discord.webhook.port,
        log_level=logging.getLevelName(config.log.level).lower(),
    )


@app.command("gateway")
def gateway(
    path: Optional[Path] = typer.Option(None, "--path", help="Config file or root"),
    handlers: Optional[str] = typer.Option(
        None, "--handlers", help="Setup hook as module:function"
    ),
) -> None:
    """Receive interactions over the gateway connection."""
    config = _load_app_config(path)
    service = _build_service(config, handlers)
    try:
        asyncio.run(service.run_gateway_forever())
    except KeyboardInterrupt:
        typer.echo("Gateway stopped.")


@app.command("register-commands")
def register_commands(
    commands_file: Path = typer.Argument(..., exists=True, dir_okay=False),
    path: Optional[Path] = typer.Option(None, "--path", help="Config file or root"),
) -> None:
    """Replace the application's commands with the definitions in a YAML/JSON file."""
    config = _load_app_config(path)
    discord_cfg = config.discord
    try:
        commands = _read_command_file(commands_file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise_exit(str(exc), cause=exc)

    async def _sync() -> None:
        async with DiscordRestClient(bot_token=discord_cfg.bot_token or "") as rest:
            await sync_commands(
                rest,
                application_id=discord_cfg.application_id or "",
                commands=commands,
                scope=discord_cfg.command_registration.scope,
                guild_ids=discord_cfg.command_registration.guild_ids,
                logger=logging.getLogger("slashgate.commands"),
            )

    try:
        asyncio.run(_sync())
    except (DiscordError, ValueError) as exc:
        raise_exit(str(exc), cause=exc)
    typer.echo(f"Synchronized {len(commands)} application command(s).")


@app.command("list-commands")
def list_commands(
    path: Optional[Path] = typer.Option(None, "--path", help="Config file or root"),
    guild_id: Optional[str] = typer.Option(None, "--guild-id"),
) -> None:
    """Print the registered application commands."""
    config = _load_app_config(path)
    discord_cfg = config.discord

    async def _fetch() -> list[Any]:
        async with DiscordRestClient(bot_token=discord_cfg.bot_token or "") as rest:
            return await fetch_commands(
                rest,
                application_id=discord_cfg.application_id or "",
                guild_id=guild_id,
            )

    try:
        commands = asyncio.run(_fetch())
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)
    for command in commands:
        typer.echo(f"{command.id}\t{command.name}\t{command.description}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
