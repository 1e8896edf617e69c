from __future__ import annotations
import asyncio, sys
import typer
from rich import print
from rich.table import Table
from cleanlink.config import load_settings, resolve_telegram_token
from cleanlink.core.errors import ConfigError, FatalInputError
from cleanlink.domain.models import SanitizationOutcome

app = typer.Typer(help="cleanlink - strip tracking parameters and canonicalize links in text.")

def _render(outcome: SanitizationOutcome) -> Table:
    t = Table(title="Sanitized", show_header=False)
    t.add_column("field"); t.add_column("value")
    t.add_row("text", outcome.text)
    t.add_row("changed", str(outcome.changed))
    t.add_row("photo album", str(outcome.is_photo_album))
    t.add_row("original urls", "\n".join(outcome.original_urls) or "-")
    t.add_row("cached images", "\n".join(outcome.cached_image_paths) or "-")
    if outcome.issues:
        t.add_row("issues", "\n".join(outcome.issues))
    return t

@app.command()
def sanitize(
    text: str = typer.Argument(None, help="Text to sanitize; read from stdin when omitted."),
    albums: bool = typer.Option(False, help="Download photo-post images into the cache dir."),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
):
    """Sanitize the links in TEXT."""
    from cleanlink.engine.sanitizer import Sanitizer
    from cleanlink.server.app import make_http_client

    settings = load_settings()
    if text is None:
        try:
            text = sys.stdin.read()
        except OSError as e:
            print(f"[red]cannot read stdin: {e}[/red]")
            raise typer.Exit(code=1)

    async def _run() -> SanitizationOutcome:
        async with make_http_client(settings) as client:
            return await Sanitizer.from_settings(settings, client).sanitize(text, resolve_albums=albums)

    try:
        outcome = asyncio.run(_run())
    except FatalInputError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    if as_json:
        typer.echo(outcome.model_dump_json(indent=2))
    else:
        print(_render(outcome))

@app.command()
def bot():
    """Run the Telegram bot with long polling."""
    from cleanlink.channels.telegram import TelegramChannel
    from cleanlink.core.bot import SanitizeBot
    from cleanlink.engine.sanitizer import Sanitizer
    from cleanlink.observability.logging import configure_logging, get_logger
    from cleanlink.server.app import make_http_client

    settings = load_settings()
    configure_logging(settings.log_level, settings.json_logs)
    log = get_logger("cli")
    try:
        token = resolve_telegram_token(settings)
    except ConfigError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    async def _run():
        async with make_http_client(settings) as client:
            channel = TelegramChannel(
                token, client,
                api_base=settings.telegram_api_base,
                poll_timeout_s=settings.telegram_poll_timeout_s,
            )
            service = SanitizeBot(channel, Sanitizer.from_settings(settings, client), anon_marker=settings.anon_marker)
            await service.start()
            log.info("bot_started")
            try:
                await channel.wait()
            finally:
                await service.stop()
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        log.info("bot_stopped")

@app.command()
def serve(host: str = typer.Option(None), port: int = typer.Option(None)):
    """Run the HTTP API (and Telegram polling when enabled)."""
    import uvicorn
    from cleanlink.server.app import create_app

    settings = load_settings()
    if host:
        settings.host = host
    if port:
        settings.port = port
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())

def main():
    """Entry point for the CLI."""
    app()
