"""Command line entry point: ``weddingbot run | check-config | upload-qr``."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger

from weddingbot.config import AppConfig, get_config
from weddingbot.errors import WeddingBotError

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Collect wedding photos and videos sent by guests over chat.",
)


def _setup_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


def _load_config() -> AppConfig:
    try:
        return get_config()
    except WeddingBotError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.callback()
def app_main(
    debug: bool = typer.Option(False, "--debug", help="Log every pipeline step."),
) -> None:
    _setup_logging(debug)


@app.command()
def run() -> None:
    """Connect the chat channels and start collecting media."""
    from weddingbot.app import Application

    Application(_load_config()).run()


@app.command("check-config")
def check_config() -> None:
    """Validate the configuration and print the effective settings."""
    config = _load_config()

    typer.echo(f"couple:              {config.wedding.couple_names}")
    typer.echo(f"wedding date:        {config.wedding.date}")
    typer.echo(f"groups only:         {config.intake.groups_only}")
    typer.echo(f"wedding group only:  {config.intake.wedding_group_only}")
    typer.echo(f"google drive:        {config.storage.google_drive_enabled}")
    typer.echo(f"save locally:        {config.storage.save_locally}")
    typer.echo(f"delete after upload: {config.storage.delete_after_upload}")
    typer.echo(f"max file size:       {config.intake.max_file_size_mb}MB")
    typer.echo(f"guest notifications: {config.intake.guest_notifications_enabled}")
    typer.echo(f"skip owner sharing:  {config.storage.skip_owner_sharing}")
    typer.echo(f"channels:            {', '.join(config.get_enabled_channels()) or '-'}")

    errors = config.validate()
    if errors:
        for error in errors:
            typer.echo(f"error: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("configuration ok")


@app.command("upload-qr")
def upload_qr(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Rendered QR image."),
) -> None:
    """Upload a QR image to the top-level qr-codes folder on Google Drive."""
    from weddingbot.app import build_storage
    from weddingbot.storage.folders import FolderCache

    config = _load_config()
    folders = FolderCache(config.storage.folder_cache_file)
    folders.load()
    storage = build_storage(config, folders)

    async def _upload():
        try:
            return await storage.upload_qr(path)
        finally:
            await storage.close()

    try:
        remote = asyncio.run(_upload())
    except WeddingBotError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(remote.view_link or remote.id)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
