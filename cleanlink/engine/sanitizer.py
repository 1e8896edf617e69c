from __future__ import annotations
from typing import Optional, Union
import httpx
from cleanlink.config import Settings
from cleanlink.core.errors import FatalInputError, SanitizerError
from cleanlink.domain.models import SanitizationOutcome
from cleanlink.engine.canonicalizer import Canonicalizer, Mirrors
from cleanlink.engine.expander import ShortLinkResolver
from cleanlink.engine.media import AlbumResolver
from cleanlink.engine.tokenizer import is_url_token, reassemble, split_paragraphs, split_words
from cleanlink.rules.matcher import RuleMatcher
from cleanlink.rules.table import RuleTable, default_rule_table

class Sanitizer:
    """Engine entry point: text in, SanitizationOutcome out.

    Holds no per-call state, so one instance serves concurrent messages.
    Recoverable failures are reported in ``outcome.issues``; only
    FatalInputError escapes.
    """
    def __init__(
        self,
        canonicalizer: Canonicalizer,
        albums: Optional[AlbumResolver] = None,
        skip_marker: str = "nocut",
    ):
        self.canonicalizer = canonicalizer
        self.albums = albums
        self.skip_marker = skip_marker

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient, table: RuleTable | None = None) -> "Sanitizer":
        canonicalizer = Canonicalizer(
            matcher=RuleMatcher(table or default_rule_table()),
            resolver=ShortLinkResolver(client, timeout_s=settings.expand_timeout_s),
            mirrors=Mirrors(tiktok=settings.tiktok_mirror, x=settings.x_mirror, instagram=settings.instagram_mirror),
        )
        albums = AlbumResolver(
            client,
            cache_dir=settings.image_cache_dir,
            manifest_api_url=settings.manifest_api_url,
            max_concurrency=settings.album_max_concurrency,
        )
        return cls(canonicalizer, albums, skip_marker=settings.skip_marker)

    def should_skip(self, text: str) -> bool:
        return bool(self.skip_marker) and self.skip_marker in text

    async def sanitize(self, text: Union[str, bytes], resolve_albums: bool = True) -> SanitizationOutcome:
        text = _as_text(text)
        if self.should_skip(text):
            return SanitizationOutcome(text=text, skipped=True)

        out = SanitizationOutcome(text=text)
        paragraphs: list[list[str]] = []
        for paragraph in split_paragraphs(text):
            pieces = split_words(paragraph)
            for i, word in enumerate(pieces):
                if is_url_token(word):
                    pieces[i] = await self._sanitize_url(word, out, resolve_albums)
            paragraphs.append(pieces)
        out.text = reassemble(paragraphs)
        return out

    async def _sanitize_url(self, token: str, out: SanitizationOutcome, resolve_albums: bool) -> str:
        result = await self.canonicalizer.canonicalize(token)
        if not result.parsed:
            return token
        out.original_urls.append(token)
        out.issues.extend(result.issues)
        out.changed = out.changed or result.changed
        if result.is_photo_album and resolve_albums and self.albums is not None:
            try:
                paths = await self.albums.resolve(result.url)
            except SanitizerError as e:
                out.issues.append(f"album_failed: {result.url}: {e}")
            else:
                out.cached_image_paths.extend(paths)
                out.is_photo_album = True
                out.changed = True
        return result.url


def _as_text(text: Union[str, bytes]) -> str:
    if isinstance(text, str):
        return text
    if isinstance(text, (bytes, bytearray)):
        try:
            return bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise FatalInputError(f"input is not valid UTF-8: {e}") from e
    raise FatalInputError(f"cannot scan input of type {type(text).__name__}")
