"""Tests for per-URL canonicalization."""
from __future__ import annotations

import pytest

from cleanlink.core.errors import NetworkError
from cleanlink.engine.canonicalizer import (
    Canonicalizer,
    Mirrors,
    WorkingUrl,
    drop_live_query,
    needs_expansion,
    rewrite_instagram,
    rewrite_tiktok_host,
    strip_tracking_params,
)
from cleanlink.rules.matcher import RuleMatcher
from cleanlink.rules.table import default_rule_table


class StubResolver:
    def __init__(self, target: str | None = None, error: Exception | None = None):
        self.target = target
        self.error = error
        self.calls: list[str] = []

    async def expand(self, url: str) -> str:
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.target


@pytest.fixture
def matcher():
    return RuleMatcher(default_rule_table())


@pytest.fixture
def canon(matcher):
    return Canonicalizer(matcher)


@pytest.mark.asyncio
async def test_universal_rule_example(canon):
    res = await canon.canonicalize("https://example.com/?utm_source=x&id=1")
    assert res.url == "https://example.com/?id=1"
    assert res.changed and not res.is_photo_album


@pytest.mark.asyncio
async def test_domain_scoped_amazon_example(canon):
    res = await canon.canonicalize("https://www.amazon.com/dp/B000?pf_rd_m=1&tag=abc")
    assert res.url == "https://www.amazon.com/dp/B000"
    assert res.changed


@pytest.mark.asyncio
async def test_x_rewrite_without_query(canon):
    res = await canon.canonicalize("https://x.com/user/status/1")
    assert res.url == "https://fixupx.com/user/status/1"
    assert res.changed


@pytest.mark.asyncio
async def test_live_path_drops_query_and_keeps_host(canon):
    res = await canon.canonicalize("https://sub.tiktok.com/@user/live?foo=bar")
    assert res.url == "https://sub.tiktok.com/@user/live"
    assert res.changed


@pytest.mark.asyncio
async def test_photo_post_is_never_mirrored(canon):
    res = await canon.canonicalize("https://www.tiktok.com/@u/photo/123?_r=1&foo=2")
    assert res.url == "https://www.tiktok.com/@u/photo/123"
    assert res.is_photo_album and res.changed


@pytest.mark.asyncio
async def test_photo_post_without_query_is_unchanged(canon):
    res = await canon.canonicalize("https://www.tiktok.com/@u/photo/123")
    assert res.is_photo_album
    assert not res.changed
    assert res.url == "https://www.tiktok.com/@u/photo/123"


@pytest.mark.asyncio
async def test_tiktok_video_goes_to_mirror(canon):
    res = await canon.canonicalize("https://www.tiktok.com/@u/video/1?_r=1&_t=2&lang=en")
    assert res.url == "https://vm.dstn.to/@u/video/1?lang=en"


@pytest.mark.asyncio
async def test_instagram_reel_goes_to_mirror(canon):
    res = await canon.canonicalize("https://www.instagram.com/reel/abc/?igshid=xyz")
    assert res.url == "https://ddinstagram.com/reel/abc/"


@pytest.mark.asyncio
async def test_instagram_single_post_goes_to_mirror(canon):
    res = await canon.canonicalize("https://www.instagram.com/p/Cxyz/")
    assert res.url == "https://ddinstagram.com/p/Cxyz/"


@pytest.mark.asyncio
async def test_instagram_profilecard_collapses_path(canon):
    res = await canon.canonicalize("https://instagram.com/someone/profilecard/?igsh=abc")
    assert res.url == "https://instagram.com/someone"
    assert res.changed


@pytest.mark.asyncio
async def test_instagram_profile_is_left_alone(canon):
    res = await canon.canonicalize("https://www.instagram.com/someone/")
    assert res.url == "https://www.instagram.com/someone/"
    assert not res.changed


@pytest.mark.asyncio
async def test_clean_url_is_returned_verbatim(canon):
    token = "HTTPS://Example.com/a%20b?q=1"
    res = await canon.canonicalize(token)
    assert res.url == token and not res.changed and res.parsed


@pytest.mark.asyncio
async def test_surviving_params_keep_order_and_duplicates(canon):
    res = await canon.canonicalize("https://example.com/p?b=2&utm_source=a&a=1&b=3")
    assert res.url == "https://example.com/p?b=2&a=1&b=3"


@pytest.mark.asyncio
async def test_encoded_parameter_names_are_matched(canon):
    res = await canon.canonicalize("https://example.com/?utm%5Fsource=1&x=%20")
    assert res.url == "https://example.com/?x=%20"


@pytest.mark.asyncio
async def test_fragment_and_port_survive(canon):
    res = await canon.canonicalize("https://x.com:8443/a?s=1#frag")
    assert res.url == "https://fixupx.com:8443/a#frag"


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["http://[::1", "https://", "https://host:99999/x"])
async def test_malformed_tokens_pass_through(canon, token):
    res = await canon.canonicalize(token)
    assert res.url == token
    assert not res.parsed and not res.changed


@pytest.mark.asyncio
@pytest.mark.parametrize("url", [
    "https://example.com/?utm_source=x&id=1",
    "https://www.amazon.com/dp/B000?pf_rd_m=1&tag=abc",
    "https://x.com/user/status/1?s=20&t=abc",
    "https://sub.tiktok.com/@user/live?foo=bar",
    "https://www.tiktok.com/@u/photo/123?_r=1",
    "https://www.tiktok.com/@u/video/1?_r=1&lang=en",
    "https://www.instagram.com/reel/abc/?igshid=xyz",
    "https://instagram.com/someone/profilecard/?igsh=abc",
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ&si=abc&feature=share",
])
async def test_canonicalize_is_idempotent(canon, url):
    first = await canon.canonicalize(url)
    second = await canon.canonicalize(first.url)
    assert second.url == first.url
    assert not second.changed


@pytest.mark.asyncio
async def test_short_link_is_expanded_then_canonicalized(matcher):
    resolver = StubResolver(target="https://www.tiktok.com/@u/video/42?_r=1&_t=x")
    canon = Canonicalizer(matcher, resolver=resolver)
    res = await canon.canonicalize("https://vm.tiktok.com/ZM123/")
    assert resolver.calls == ["https://vm.tiktok.com/ZM123/"]
    assert res.url == "https://vm.dstn.to/@u/video/42"
    assert res.changed and not res.issues


@pytest.mark.asyncio
async def test_short_link_to_photo_post_is_detected_after_expansion(matcher):
    resolver = StubResolver(target="https://www.tiktok.com/@u/photo/7?is_from_webapp=1")
    canon = Canonicalizer(matcher, resolver=resolver)
    res = await canon.canonicalize("https://vm.tiktok.com/ZMphoto/")
    assert res.is_photo_album
    assert res.url == "https://www.tiktok.com/@u/photo/7"


@pytest.mark.asyncio
async def test_failed_expansion_is_not_fatal(matcher):
    resolver = StubResolver(error=NetworkError("boom", url="https://vm.tiktok.com/ZM123/"))
    canon = Canonicalizer(matcher, resolver=resolver)
    res = await canon.canonicalize("https://vm.tiktok.com/ZM123/")
    # the unexpanded short link still goes through the remaining stages
    assert res.url == "https://vm.dstn.to/ZM123/"
    assert res.issues and res.issues[0].startswith("expand_failed")


@pytest.mark.asyncio
async def test_direct_post_on_canonical_host_is_not_expanded(matcher):
    resolver = StubResolver(target="https://never.example/")
    canon = Canonicalizer(matcher, resolver=resolver)
    await canon.canonicalize("https://www.tiktok.com/@u/video/1")
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_custom_mirrors(matcher):
    canon = Canonicalizer(matcher, mirrors=Mirrors(tiktok="tt.example", x="fx.example", instagram="ig.example"))
    assert (await canon.canonicalize("https://x.com/a")).url == "https://fx.example/a"
    assert (await canon.canonicalize("https://tiktok.com/@u/video/1")).url == "https://tt.example/@u/video/1"


def test_needs_expansion():
    assert needs_expansion(WorkingUrl.parse("https://vm.tiktok.com/ZM1/"))
    assert needs_expansion(WorkingUrl.parse("https://vt.tiktok.com/ZM1/"))
    assert needs_expansion(WorkingUrl.parse("https://www.tiktok.com/t/ZT1/"))
    assert not needs_expansion(WorkingUrl.parse("https://www.tiktok.com/@u/video/1"))
    assert not needs_expansion(WorkingUrl.parse("https://m.tiktok.com/v/1"))
    assert not needs_expansion(WorkingUrl.parse("https://example.com/"))


def test_stages_do_not_mutate_their_input(matcher):
    url = WorkingUrl.parse("https://www.tiktok.com/@u/video/1?_r=1")
    stripped = strip_tracking_params(url, matcher)
    moved = rewrite_tiktok_host(stripped, "vm.dstn.to")
    assert url.query == "_r=1" and url.host == "www.tiktok.com"
    assert stripped.query == ""
    assert moved.host == "vm.dstn.to"


def test_stage_returns_same_value_when_nothing_applies(matcher):
    url = WorkingUrl.parse("https://example.com/a?id=1")
    assert strip_tracking_params(url, matcher) is url
    assert drop_live_query(url) is url
    assert rewrite_instagram(url, "ddinstagram.com") is url


def test_mirror_host_is_not_mistaken_for_the_platform():
    url = WorkingUrl.parse("https://ddinstagram.com/reel/abc/")
    assert rewrite_instagram(url, "ddinstagram.com") == url
