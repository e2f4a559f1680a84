"""CLI module for the AppKey ID SDK.

This module provides a small command-line interface using Typer:
- challenge: Request a ceremony challenge and print it
- upload: Upload a file with a live progress bar
- scan: Approve an AppKey ID QR sign-in URL
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn

from appkeyid.ceremony import CeremonyKind, CeremonyOrchestrator
from appkeyid.config import get_settings
from appkeyid.contracts import UploadUrlSet
from appkeyid.coordinator import UploadCoordinator
from appkeyid.errors import AppKeyIDError
from appkeyid.events import (
    AssetProgress,
    AssetUploadDescription,
    AssetUploadEnd,
    AssetUploadError,
    TransactionEnd,
    UploadEventStream,
)
from appkeyid.media import UploadAsset
from appkeyid.session import SessionStore
from appkeyid.transfer import TransferEngine
from appkeyid.transport import Transport
from appkeyid.upload_urls import UploadUrlIssuer

app = typer.Typer(
    name="appkeyid",
    help="AppKey ID passkey and upload tool",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

logger = logging.getLogger(__name__)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show SDK logs"),
    ] = False,
) -> None:
    """AppKey ID command line."""
    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=get_settings().log_level.upper(),
            format="%(name)s - %(levelname)s - %(message)s",
        )


def _fail(message: str) -> typer.Exit:
    error_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


class _TokenSession(SessionStore):
    """Session store seeded with an externally issued access token."""

    def __init__(self, access_token: str) -> None:
        super().__init__()
        self._token = access_token

    def require_access_token(self) -> str:
        if self._token:
            return self._token
        return super().require_access_token()


async def _request_challenge(email: str, kind: CeremonyKind) -> str:
    async with Transport(get_settings()) as transport:
        orchestrator = CeremonyOrchestrator(transport, SessionStore())
        challenge = await orchestrator.request_challenge(email, kind)
    return challenge.model_dump_json(by_alias=True, indent=2)


@app.command()
def challenge(
    email: Annotated[str, typer.Argument(help="Account email")],
    kind: Annotated[
        CeremonyKind,
        typer.Option("--kind", "-k", help="Ceremony kind"),
    ] = CeremonyKind.LOGIN,
) -> None:
    """Request a ceremony challenge and print it as JSON."""
    if kind is CeremonyKind.ADD_PASSKEY:
        raise _fail("add_passkey needs a signed-in session")
    try:
        console.print_json(asyncio.run(_request_challenge(email, kind)))
    except AppKeyIDError as e:
        raise _fail(e.message) from None


async def _upload(
    path: Path,
    access_token: str,
    asset_id: str | None,
    skip_derivatives: bool,
) -> UploadUrlSet | None:
    settings = get_settings()
    asset = UploadAsset.from_path(path, asset_id=asset_id)
    stream = UploadEventStream()
    result: UploadUrlSet | None = None

    async with Transport(settings) as transport:
        engine = TransferEngine(settings)
        coordinator = UploadCoordinator(
            UploadUrlIssuer(transport, lambda: access_token),
            engine,
        )
        try:
            with Progress(
                TextColumn("[bold]{task.description}"),
                BarColumn(),
                DownloadColumn(),
                console=console,
            ) as progress:
                bar = progress.add_task(path.name, total=asset.size_hint or None)
                await coordinator.upload_asset(asset, skip_derivatives, sink=stream)
                async for event in stream:
                    if isinstance(event, AssetProgress):
                        progress.update(bar, completed=event.bytes_sent, total=event.bytes_total)
                    elif isinstance(event, AssetUploadEnd):
                        progress.update(bar, description=f"{path.name} stored")
                    elif isinstance(event, AssetUploadDescription):
                        progress.update(bar, description=event.description)
                    elif isinstance(event, AssetUploadError):
                        raise event.error
                    elif isinstance(event, TransactionEnd):
                        logger.debug(f"Upload transaction {event.task_id} complete")
                        result = event.urls
        finally:
            await engine.aclose()
    return result


@app.command()
def upload(
    path: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="File to upload"),
    ],
    access_token: Annotated[
        str,
        typer.Option("--access-token", envvar="APPKEYID_ACCESS_TOKEN", help="Session token"),
    ],
    asset_id: Annotated[
        str | None,
        typer.Option("--asset-id", help="Asset ID (random if omitted)"),
    ] = None,
    skip_derivatives: Annotated[
        bool,
        typer.Option("--skip-derivatives", help="Upload the original only"),
    ] = False,
) -> None:
    """Upload a file to AppKey storage with progress."""
    try:
        urls = asyncio.run(_upload(path, access_token, asset_id, skip_derivatives))
    except AppKeyIDError as e:
        raise _fail(e.message) from None

    if urls is not None:
        console.print(f"[green]Uploaded[/green] {urls.read_url}")


@app.command()
def scan(
    url: Annotated[str, typer.Argument(help="AppKey ID QR code URL")],
    access_token: Annotated[
        str,
        typer.Option("--access-token", envvar="APPKEYID_ACCESS_TOKEN", help="Session token"),
    ],
) -> None:
    """Approve an AppKey ID QR sign-in."""

    async def _scan() -> None:
        async with Transport(get_settings()) as transport:
            orchestrator = CeremonyOrchestrator(transport, _TokenSession(access_token))
            await orchestrator.scan_app_key_qr(url)

    try:
        asyncio.run(_scan())
    except AppKeyIDError as e:
        raise _fail(e.message) from None
    console.print("[green]Approved[/green]")


if __name__ == "__main__":
    app()
