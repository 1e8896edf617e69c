from __future__ import annotations
import httpx
from cleanlink.core.errors import NetworkError

class ShortLinkResolver:
    """Follows redirects with a HEAD probe to find where a short link lands."""

    def __init__(self, client: httpx.AsyncClient, timeout_s: float = 15.0):
        self.client = client
        self.timeout_s = timeout_s

    async def expand(self, url: str) -> str:
        try:
            resp = await self.client.head(url, follow_redirects=True, timeout=self.timeout_s)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"expanding {url} failed: {type(e).__name__}: {e}", url=url) from e
        if not resp.is_success:
            raise NetworkError(f"expanding {url} ended with status {resp.status_code}", url=url)
        return str(resp.url)
