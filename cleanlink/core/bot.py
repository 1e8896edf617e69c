from __future__ import annotations
import os
from cleanlink.channels.base import ChannelAdapter, Envelope, InboundEnvelope, InlineQueryEnvelope
from cleanlink.channels.replies import plan_inline_answer, plan_reply
from cleanlink.channels.telegram import TelegramError
from cleanlink.core.errors import FatalInputError
from cleanlink.core.retry import RetryableError
from cleanlink.domain.models import SanitizationOutcome
from cleanlink.engine.sanitizer import Sanitizer
from cleanlink.observability import metrics
from cleanlink.observability.logging import get_logger

log = get_logger("bot")

DELIVERY_ERRORS = (TelegramError, RetryableError)

def observe_outcome(outcome: SanitizationOutcome, kind: str) -> None:
    """Log and count what the engine reported. The engine itself never logs."""
    metrics.urls_seen.inc(len(outcome.original_urls))
    if outcome.changed:
        metrics.messages_rewritten.inc()
    for issue in outcome.issues:
        failure_kind = issue.split(":", 1)[0]
        metrics.recoverable_failures.labels(kind=failure_kind).inc()
        log.warning("sanitize_issue", kind=kind, issue=issue)

def remove_cached_images(paths: list[str]) -> None:
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("cached_image_cleanup_failed", path=path, err=str(e))

class SanitizeBot:
    """Delivery boundary: feeds inbound messages to the Sanitizer and answers.

    Owns the cached images the Sanitizer hands out and deletes them once the
    reply has been attempted.
    """
    def __init__(self, channel: ChannelAdapter, sanitizer: Sanitizer, anon_marker: str = "anon"):
        self.channel = channel
        self.sanitizer = sanitizer
        self.anon_marker = anon_marker

    async def start(self) -> None:
        await self.channel.start(self.handle)

    async def stop(self) -> None:
        await self.channel.stop()

    async def handle(self, env: Envelope) -> None:
        if isinstance(env, InlineQueryEnvelope):
            await self.handle_inline(env)
        else:
            await self.handle_message(env)

    async def handle_message(self, env: InboundEnvelope) -> None:
        if self.sanitizer.should_skip(env.text):
            metrics.inbound_messages.labels(kind="message", result="skipped").inc()
            return
        try:
            outcome = await self.sanitizer.sanitize(env.text)
        except FatalInputError as e:
            metrics.inbound_messages.labels(kind="message", result="error").inc()
            log.error("sanitize_failed", chat_id=env.chat_id, err=str(e))
            return

        try:
            observe_outcome(outcome, kind="message")
            plan = plan_reply(env, outcome, anon_marker=self.anon_marker)
            if plan is None:
                metrics.inbound_messages.labels(kind="message", result="unchanged").inc()
                return
            try:
                if plan.photos:
                    await self.channel.send_album(env.chat_id, plan.photos, caption=plan.caption, parse_mode=plan.parse_mode)
                    metrics.album_images.inc(len(plan.photos))
                    log.info("album_sent", chat_id=env.chat_id, images=len(plan.photos))
                else:
                    await self.channel.send_message(env.chat_id, plan.text or "", parse_mode=plan.parse_mode)
                    log.info("message_sanitized", chat_id=env.chat_id, urls=len(outcome.original_urls))
            except DELIVERY_ERRORS as e:
                # keep the original so nothing is lost
                metrics.delivery_errors.labels(method="reply").inc()
                metrics.inbound_messages.labels(kind="message", result="delivery_failed").inc()
                log.error("reply_failed", chat_id=env.chat_id, err=str(e), error_type=type(e).__name__)
                return
            metrics.inbound_messages.labels(kind="message", result="rewritten").inc()
            if plan.delete_original:
                try:
                    await self.channel.delete_message(env.chat_id, env.message_id)
                except DELIVERY_ERRORS as e:
                    metrics.delivery_errors.labels(method="deleteMessage").inc()
                    log.warning("delete_original_failed", chat_id=env.chat_id, message_id=env.message_id, err=str(e))
        finally:
            remove_cached_images(outcome.cached_image_paths)

    async def handle_inline(self, env: InlineQueryEnvelope) -> None:
        try:
            outcome = await self.sanitizer.sanitize(env.text, resolve_albums=False)
        except FatalInputError as e:
            log.error("sanitize_failed", query_id=env.query_id, err=str(e))
            return
        observe_outcome(outcome, kind="inline")
        answer = plan_inline_answer(outcome)
        if answer is None:
            metrics.inbound_messages.labels(kind="inline", result="unchanged").inc()
            return
        title, text = answer
        try:
            await self.channel.answer_inline(env.query_id, title, text)
        except DELIVERY_ERRORS as e:
            metrics.delivery_errors.labels(method="answerInlineQuery").inc()
            log.error("inline_answer_failed", query_id=env.query_id, err=str(e))
            return
        metrics.inbound_messages.labels(kind="inline", result="rewritten").inc()
