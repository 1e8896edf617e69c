from __future__ import annotations
from prometheus_client import Counter

inbound_messages = Counter("cleanlink_inbound_messages_total", "Inbound messages by outcome", ["kind", "result"])
urls_seen = Counter("cleanlink_urls_seen_total", "URL tokens encountered")
messages_rewritten = Counter("cleanlink_messages_rewritten_total", "Messages whose text or media changed")
album_images = Counter("cleanlink_album_images_total", "Album images delivered")
recoverable_failures = Counter("cleanlink_recoverable_failures_total", "Recoverable engine failures", ["kind"])
delivery_errors = Counter("cleanlink_delivery_errors_total", "Failed Telegram API calls", ["method"])
