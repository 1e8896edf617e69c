from __future__ import annotations
import httpx
from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from cleanlink.channels.telegram import TelegramChannel
from cleanlink.config import Settings, resolve_telegram_token
from cleanlink.core.bot import SanitizeBot, observe_outcome
from cleanlink.core.errors import ConfigError, FatalInputError
from cleanlink.domain.models import SanitizationOutcome
from cleanlink.engine.sanitizer import Sanitizer
from cleanlink.observability.logging import configure_logging, get_logger
from cleanlink.security.auth import verify_client_key

log = get_logger("app")

VERSION = "0.1.0"

class SanitizeRequest(BaseModel):
    text: str
    # albums leave files on disk that an HTTP client cannot clean up
    resolve_albums: bool = Field(default=False)

def make_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_s, follow_redirects=True)

def create_app(settings: Settings, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    configure_logging(settings.log_level, settings.json_logs)
    app = FastAPI(title="cleanlink", version=VERSION)

    client = http_client or make_http_client(settings)
    sanitizer = Sanitizer.from_settings(settings, client)
    app.state.sanitizer = sanitizer
    app.state.bot = None

    @app.on_event("startup")
    async def _startup():
        if settings.telegram_polling:
            try:
                token = resolve_telegram_token(settings)
            except ConfigError as e:
                log.error("telegram_disabled", err=str(e))
            else:
                channel = TelegramChannel(
                    token, client,
                    api_base=settings.telegram_api_base,
                    poll_timeout_s=settings.telegram_poll_timeout_s,
                )
                app.state.bot = SanitizeBot(channel, sanitizer, anon_marker=settings.anon_marker)
                await app.state.bot.start()
        log.info("server_started", host=settings.host, port=settings.port, telegram=app.state.bot is not None)

    @app.on_event("shutdown")
    async def _shutdown():
        if app.state.bot is not None:
            await app.state.bot.stop()
        await client.aclose()

    def _auth(x_api_key: str | None) -> None:
        if not verify_client_key(settings, x_api_key):
            raise HTTPException(status_code=401, detail="unauthorized")

    @app.get(settings.health_path)
    async def healthz():
        return {"ok": True, "service": "cleanlink", "version": VERSION, "telegram": app.state.bot is not None}

    @app.get(settings.metrics_path)
    async def metrics_endpoint():
        return PlainTextResponse(generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    @app.post("/sanitize", response_model=SanitizationOutcome)
    async def sanitize(req: SanitizeRequest, x_api_key: str | None = Header(default=None)):
        _auth(x_api_key)
        try:
            outcome = await sanitizer.sanitize(req.text, resolve_albums=req.resolve_albums)
        except FatalInputError as e:
            raise HTTPException(status_code=400, detail=str(e))
        observe_outcome(outcome, kind="http")
        return outcome

    return app
