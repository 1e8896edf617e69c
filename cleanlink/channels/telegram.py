from __future__ import annotations
import asyncio
import json
import os
from typing import Any, Optional
import httpx
from cleanlink.channels.base import ChannelAdapter, Envelope, InboundEnvelope, IngestCallback, InlineQueryEnvelope
from cleanlink.core.retry import RateLimitError, RetryableError, TransientError, retry_async
from cleanlink.observability.logging import bind_update_id, get_logger

log = get_logger("telegram")

MEDIA_GROUP_LIMIT = 10
GROUP_CHAT_TYPES = ("group", "supergroup")

class TelegramError(Exception):
    """The Bot API rejected a call."""

    def __init__(self, method: str, description: str, error_code: int | None = None):
        super().__init__(f"{method}: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code

def display_name(user: dict[str, Any]) -> str:
    return user.get("username") or user.get("first_name") or str(user.get("id", ""))

def parse_update(update: dict[str, Any], channel_id: str = "telegram") -> Optional[Envelope]:
    """Map a Bot API update to an envelope; None for anything we don't handle."""
    msg = update.get("message")
    if msg and isinstance(msg.get("text"), str):
        sender = msg.get("from") or {}
        chat = msg.get("chat") or {}
        return InboundEnvelope(
            channel_id=channel_id,
            chat_id=str(chat.get("id")),
            message_id=str(msg.get("message_id")),
            sender_id=str(sender.get("id")),
            sender_name=display_name(sender),
            text=msg["text"],
            is_group=chat.get("type") in GROUP_CHAT_TYPES,
            metadata={"update_id": update.get("update_id")},
        )
    query = update.get("inline_query")
    if query:
        return InlineQueryEnvelope(
            channel_id=channel_id,
            query_id=str(query.get("id")),
            sender_id=str((query.get("from") or {}).get("id")),
            text=query.get("query") or "",
        )
    return None

class TelegramChannel(ChannelAdapter):
    """Telegram Bot API over httpx with long polling."""

    def __init__(
        self,
        token: str,
        client: httpx.AsyncClient,
        channel_id: str = "telegram",
        api_base: str = "https://api.telegram.org",
        poll_timeout_s: int = 10,
        error_backoff_s: float = 5.0,
    ):
        self.channel_id = channel_id
        self.client = client
        self.poll_timeout_s = poll_timeout_s
        self.error_backoff_s = error_backoff_s
        self._base = f"{api_base.rstrip('/')}/bot{token}"
        self._offset: int | None = None
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Bot API plumbing
    # ------------------------------------------------------------------

    async def _call_once(self, method: str, data: dict[str, Any] | None = None, files: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        kwargs: dict[str, Any] = {"data": data or {}}
        if files:
            kwargs["files"] = files
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self.client.post(f"{self._base}/{method}", **kwargs)
        except httpx.HTTPError as e:
            raise TransientError(f"{method}: {type(e).__name__}: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code == 429:
            retry_after = (body.get("parameters") or {}).get("retry_after")
            raise RateLimitError(f"{method}: rate limited", retry_after=retry_after)
        if resp.status_code >= 500:
            raise TransientError(f"{method}: server error {resp.status_code}")
        if not body.get("ok"):
            raise TelegramError(method, body.get("description") or f"HTTP {resp.status_code}", body.get("error_code"))
        return body.get("result")

    async def call(self, method: str, data: dict[str, Any] | None = None, files: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        return await retry_async(self._call_once, method, data, files, timeout)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_updates(self) -> list[dict[str, Any]]:
        data: dict[str, Any] = {
            "timeout": self.poll_timeout_s,
            "allowed_updates": json.dumps(["message", "inline_query"]),
        }
        if self._offset is not None:
            data["offset"] = self._offset
        # the HTTP timeout must outlast the long-poll window
        return await self._call_once("getUpdates", data, timeout=self.poll_timeout_s + 10) or []

    async def poll_once(self, ingest_cb: IngestCallback) -> int:
        """Fetch one batch of updates and dispatch them; returns the batch size."""
        updates = await self.get_updates()
        for update in updates:
            self._offset = int(update["update_id"]) + 1
            env = parse_update(update, self.channel_id)
            if env is None:
                continue
            bind_update_id(update["update_id"])
            try:
                await ingest_cb(env)
            except Exception as e:
                log.exception("update_handler_failed", err=str(e))
            finally:
                bind_update_id(None)
        return len(updates)

    async def start(self, ingest_cb: IngestCallback) -> None:
        self._stop.clear()

        async def _loop():
            while not self._stop.is_set():
                try:
                    await self.poll_once(ingest_cb)
                except (TelegramError, RetryableError) as e:
                    log.warning("telegram_poll_failed", error=str(e), error_type=type(e).__name__)
                    await asyncio.sleep(self.error_backoff_s)
                except Exception as e:
                    log.exception("telegram_poll_crashed", err=str(e))
                    await asyncio.sleep(self.error_backoff_s)

        self._task = asyncio.create_task(_loop())
        log.info("telegram_polling_started", channel_id=self.channel_id)

    async def wait(self) -> None:
        if self._task:
            await self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> None:
        data = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        await self.call("sendMessage", data)

    async def send_album(self, chat_id: str, photo_paths: list[str], caption: Optional[str] = None, parse_mode: Optional[str] = None) -> None:
        for start in range(0, len(photo_paths), MEDIA_GROUP_LIMIT):
            chunk = photo_paths[start:start + MEDIA_GROUP_LIMIT]
            media: list[dict[str, Any]] = []
            files: dict[str, Any] = {}
            for i, path in enumerate(chunk):
                name = f"photo{i}"
                item: dict[str, Any] = {"type": "photo", "media": f"attach://{name}"}
                if start == 0 and i == 0 and caption:
                    item["caption"] = caption
                    if parse_mode:
                        item["parse_mode"] = parse_mode
                media.append(item)
                with open(path, "rb") as f:
                    files[name] = (os.path.basename(path), f.read())
            if len(chunk) == 1:
                # sendMediaGroup needs at least two items
                photo = media[0]
                data = {"chat_id": chat_id, **{k: v for k, v in photo.items() if k in ("caption", "parse_mode")}}
                await self.call("sendPhoto", data, files={"photo": files["photo0"]})
            else:
                await self.call("sendMediaGroup", {"chat_id": chat_id, "media": json.dumps(media)}, files=files)

    async def delete_message(self, chat_id: str, message_id: str) -> None:
        await self.call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_inline(self, query_id: str, title: str, text: str) -> None:
        results = [{
            "type": "article",
            "id": "1",
            "title": title,
            "input_message_content": {"message_text": text},
        }]
        await self.call("answerInlineQuery", {"inline_query_id": query_id, "results": json.dumps(results)})
