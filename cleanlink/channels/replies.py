"""What to send back for a sanitized message. Pure; no I/O."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
from cleanlink.channels.base import InboundEnvelope
from cleanlink.domain.models import SanitizationOutcome

INLINE_TITLE = "Sanitized URL"
ALBUM_PARSE_MODE = "Markdown"

@dataclass
class ReplyPlan:
    text: Optional[str] = None
    photos: list[str] = field(default_factory=list)
    caption: Optional[str] = None
    parse_mode: Optional[str] = None
    delete_original: bool = True

def plan_reply(env: InboundEnvelope, outcome: SanitizationOutcome, anon_marker: str = "anon") -> Optional[ReplyPlan]:
    """Album when images were cached, else the sanitized text attributed to the sender.

    In groups, a message containing ``anon_marker`` is reposted without
    attribution and with the first occurrence of the marker removed.
    """
    if not outcome.changed:
        return None
    if outcome.is_photo_album and outcome.cached_image_paths:
        return ReplyPlan(
            photos=list(outcome.cached_image_paths),
            caption=f"@{env.sender_name} said: [Original Link]({env.text})",
            parse_mode=ALBUM_PARSE_MODE,
        )
    if env.is_group and anon_marker and anon_marker in env.text:
        return ReplyPlan(text=outcome.text.replace(anon_marker, "", 1))
    return ReplyPlan(text=f"@{env.sender_name} said: {outcome.text}")

def plan_inline_answer(outcome: SanitizationOutcome) -> Optional[tuple[str, str]]:
    """(title, text) of the single inline result, or None when nothing changed."""
    if not outcome.changed:
        return None
    return INLINE_TITLE, outcome.text
