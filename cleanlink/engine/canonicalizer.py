"""Per-URL rewriting.

Every stage is a pure function ``WorkingUrl -> WorkingUrl``. The canonicalizer
runs them in a fixed order and derives the changed flag by comparing values,
so a stage that leaves a URL alone never counts as a rewrite.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, Optional
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from cleanlink.core.errors import NetworkError
from cleanlink.engine.expander import ShortLinkResolver
from cleanlink.rules.matcher import RuleMatcher

TIKTOK_DOMAIN = "tiktok.com"
INSTAGRAM_DOMAIN = "instagram.com"
X_HOST = "x.com"
SHORT_LINK_HOSTS = frozenset({"vm.tiktok.com", "vt.tiktok.com"})
# Bare hosts that serve both direct posts and redirect stubs such as /t/<id>.
AMBIGUOUS_HOSTS = frozenset({"tiktok.com", "www.tiktok.com"})

PHOTO_SEGMENT = "/photo/"
LIVE_SEGMENT = "/live"
DIRECT_POST_SEGMENTS = ("/video/", PHOTO_SEGMENT, LIVE_SEGMENT)
INSTAGRAM_CARD_MARKER = "profilecard"
INSTAGRAM_POST_MARKERS = ("/reel", "/p/")


def host_is(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _split_netloc(netloc: str) -> tuple[str, str, str]:
    userinfo, at, hostport = netloc.rpartition("@")
    if hostport.startswith("["):
        host, _, rest = hostport.partition("]")
        host += "]"
        port = rest[1:] if rest.startswith(":") else ""
    else:
        host, _, port = hostport.partition(":")
    return userinfo + at, host, port


@dataclass(frozen=True)
class WorkingUrl:
    scheme: str
    netloc: str
    path: str
    query: str
    fragment: str

    @classmethod
    def parse(cls, raw: str) -> "WorkingUrl":
        parts = urlsplit(raw)
        if not parts.scheme or not parts.hostname:
            raise ValueError(f"not an absolute URL: {raw!r}")
        parts.port  # raises ValueError on a bad port
        return cls(parts.scheme, parts.netloc, parts.path, parts.query, parts.fragment)

    @property
    def host(self) -> str:
        return _split_netloc(self.netloc)[1].lower().strip("[]")

    @property
    def query_segments(self) -> list[str]:
        return self.query.split("&") if self.query else []

    def with_host(self, host: str) -> "WorkingUrl":
        userinfo, _, port = _split_netloc(self.netloc)
        return replace(self, netloc=userinfo + host + (f":{port}" if port else ""))

    def geturl(self) -> str:
        return urlunsplit((self.scheme, self.netloc, self.path, self.query, self.fragment))


@dataclass
class CanonicalUrl:
    url: str
    changed: bool = False
    is_photo_album: bool = False
    parsed: bool = True
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Mirrors:
    tiktok: str = "vm.dstn.to"
    x: str = "fixupx.com"
    instagram: str = "ddinstagram.com"


Stage = Callable[[WorkingUrl], WorkingUrl]


def needs_expansion(url: WorkingUrl) -> bool:
    host = url.host
    if host in SHORT_LINK_HOSTS:
        return True
    return host in AMBIGUOUS_HOSTS and not any(s in url.path for s in DIRECT_POST_SEGMENTS)


def is_photo_post(url: WorkingUrl) -> bool:
    return host_is(url.host, TIKTOK_DOMAIN) and PHOTO_SEGMENT in url.path


def drop_query(url: WorkingUrl) -> WorkingUrl:
    return replace(url, query="")


def strip_tracking_params(url: WorkingUrl, matcher: RuleMatcher) -> WorkingUrl:
    segments = url.query_segments
    host = url.host
    kept = [
        seg for seg in segments
        if not seg or not matcher.should_remove(unquote_plus(seg.partition("=")[0]), host)
    ]
    if len(kept) == len(segments):
        return url
    return replace(url, query="&".join(kept))


def rewrite_tiktok_host(url: WorkingUrl, mirror: str) -> WorkingUrl:
    if not host_is(url.host, TIKTOK_DOMAIN):
        return url
    if PHOTO_SEGMENT in url.path or LIVE_SEGMENT in url.path:
        return url
    return url.with_host(mirror)


def drop_live_query(url: WorkingUrl) -> WorkingUrl:
    # live URLs carry session tokens
    if host_is(url.host, TIKTOK_DOMAIN) and LIVE_SEGMENT in url.path:
        return drop_query(url)
    return url


def rewrite_x_host(url: WorkingUrl, mirror: str) -> WorkingUrl:
    return url.with_host(mirror) if url.host == X_HOST else url


def rewrite_instagram(url: WorkingUrl, mirror: str) -> WorkingUrl:
    if not host_is(url.host, INSTAGRAM_DOMAIN):
        return url
    segments = url.path.split("/")
    if len(segments) > 2 and segments[2] == INSTAGRAM_CARD_MARKER:
        url = replace(url, path="/" + segments[1])
    if any(m in url.path for m in INSTAGRAM_POST_MARKERS):
        url = url.with_host(mirror)
    return url


class Canonicalizer:
    def __init__(
        self,
        matcher: RuleMatcher,
        resolver: Optional[ShortLinkResolver] = None,
        mirrors: Mirrors = Mirrors(),
    ):
        self.matcher = matcher
        self.resolver = resolver
        self.mirrors = mirrors
        self.rewrites: tuple[Stage, ...] = (
            partial(rewrite_tiktok_host, mirror=mirrors.tiktok),
            drop_live_query,
            partial(rewrite_x_host, mirror=mirrors.x),
            partial(rewrite_instagram, mirror=mirrors.instagram),
        )

    async def canonicalize(self, token: str) -> CanonicalUrl:
        try:
            original = WorkingUrl.parse(token)
        except ValueError:
            return CanonicalUrl(url=token, parsed=False)

        issues: list[str] = []
        url = original
        if self.resolver is not None and needs_expansion(url):
            url = await self._expand(url, issues)

        if is_photo_post(url):
            url = drop_query(url)
            return self._result(token, original, url, issues, is_photo_album=True)

        url = strip_tracking_params(url, self.matcher)
        for stage in self.rewrites:
            url = stage(url)
        return self._result(token, original, url, issues)

    async def _expand(self, url: WorkingUrl, issues: list[str]) -> WorkingUrl:
        try:
            return WorkingUrl.parse(await self.resolver.expand(url.geturl()))
        except NetworkError as e:
            issues.append(f"expand_failed: {e}")
        except ValueError as e:
            issues.append(f"expand_failed: unusable redirect target: {e}")
        return url

    @staticmethod
    def _result(token: str, original: WorkingUrl, url: WorkingUrl, issues: list[str], is_photo_album: bool = False) -> CanonicalUrl:
        changed = url != original
        return CanonicalUrl(
            url=url.geturl() if changed else token,
            changed=changed,
            is_photo_album=is_photo_album,
            issues=issues,
        )
