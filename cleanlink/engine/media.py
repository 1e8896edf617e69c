"""Photo-post resolution: manifest lookup, then bounded concurrent downloads."""
from __future__ import annotations

import asyncio
import hashlib
import os
import time
from pathlib import PurePosixPath
from typing import Optional, Union
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from cleanlink.core.errors import NetworkError, ResolutionError
from cleanlink.domain.models import ManifestResponse

DEFAULT_EXT = ".jpg"


def cache_filename(image_url: str, index: int = 0) -> str:
    """``{time_ns}_{sha256[:16]}_{index}{ext}``; ext comes from the URL path."""
    digest = hashlib.sha256(image_url.encode("utf-8")).hexdigest()[:16]
    ext = PurePosixPath(urlsplit(image_url).path).suffix or DEFAULT_EXT
    return f"{time.time_ns()}_{digest}_{index}{ext}"


class AlbumResolver:
    """Turns a photo-post URL into local image files.

    Downloads run concurrently, at most ``max_concurrency`` in flight. One
    failed image does not abort the rest; the call fails only when nothing
    could be saved.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache_dir: str,
        manifest_api_url: str = "https://tikwm.com/api",
        max_concurrency: int = 10,
    ):
        self.client = client
        self.cache_dir = cache_dir
        self.manifest_api_url = manifest_api_url
        self.max_concurrency = max_concurrency

    async def resolve(self, post_url: str) -> list[str]:
        images = await self.fetch_manifest(post_url)
        return await self.download_all(images)

    async def fetch_manifest(self, post_url: str) -> list[str]:
        params = {"url": post_url, "hd": "1", "cursor": "0"}
        try:
            resp = await self.client.get(self.manifest_api_url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"manifest request failed: {type(e).__name__}: {e}", url=post_url) from e
        if not resp.is_success:
            raise NetworkError(f"manifest API returned status {resp.status_code}", url=post_url)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ResolutionError(f"manifest is not JSON: {e}", url=post_url) from e
        if not isinstance(payload, dict):
            raise ResolutionError("manifest is not a JSON object", url=post_url)
        if payload.get("code") != 0:
            raise ResolutionError(f"manifest API error: {payload.get('msg') or payload.get('code')}", url=post_url)
        try:
            manifest = ManifestResponse.model_validate(payload)
        except ValidationError as e:
            raise ResolutionError(f"unexpected manifest shape: {e}", url=post_url) from e

        images = manifest.data.images if manifest.data else []
        if not images:
            raise ResolutionError("manifest lists no images", url=post_url)
        return images

    async def download_all(self, image_urls: list[str]) -> list[str]:
        if not image_urls:
            raise ResolutionError("manifest lists no images")
        os.makedirs(self.cache_dir, exist_ok=True)
        sem = asyncio.Semaphore(self.max_concurrency)

        async def _one(index: int, url: str) -> Union[str, NetworkError]:
            async with sem:
                try:
                    return await self.download(url, index)
                except NetworkError as e:
                    return e
                except Exception as e:
                    return NetworkError(f"image download failed: {type(e).__name__}: {e}", url=url)

        # gather keeps manifest order regardless of completion order
        results = await asyncio.gather(*(_one(i, u) for i, u in enumerate(image_urls)))
        paths = [r for r in results if isinstance(r, str)]
        if not paths:
            raise next(r for r in results if isinstance(r, NetworkError))
        return paths

    async def download(self, image_url: str, index: int = 0) -> str:
        path: Optional[str] = None
        try:
            path = os.path.join(self.cache_dir, cache_filename(image_url, index))
            async with self.client.stream("GET", image_url) as resp:
                if not resp.is_success:
                    raise NetworkError(f"image download returned status {resp.status_code}", url=image_url)
                with open(path, "wb") as f:
                    async for chunk in resp.aiter_bytes():
                        f.write(chunk)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, OSError) as e:
            _remove_quietly(path)
            raise NetworkError(f"image download failed: {type(e).__name__}: {e}", url=image_url) from e
        except BaseException:
            # cancelled mid-stream; the half-written file has no owner
            _remove_quietly(path)
            raise
        return path


def _remove_quietly(path: Optional[str]) -> None:
    if path is None:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
