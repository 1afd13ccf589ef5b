# pharmacheck/infra/web/alert_page_fetcher.py
from __future__ import annotations

import logging
import re
from typing import Optional

import httpx
import trafilatura
from bs4 import BeautifulSoup

from pharmacheck.domain.errors import PageFetchError
from pharmacheck.domain.ports import PageFetcherPort

log = logging.getLogger("pharmacheck.page")

CONTENT_SELECTORS = (".entry-content", "article", "main")
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 PharmaCheck/1.0"
_WS = re.compile(r"\s+")


def main_text(html: str) -> str:
    """WordPress-style content containers first, trafilatura when none of them has text."""
    soup = BeautifulSoup(html or "", "lxml")
    for sel in CONTENT_SELECTORS:
        node = soup.select_one(sel)
        if node is not None:
            text = _WS.sub(" ", node.get_text(" ", strip=True)).strip()
            if text:
                return text
    return _WS.sub(" ", trafilatura.extract(html or "") or "").strip()


class HttpxAlertPageFetcher(PageFetcherPort):
    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def fetch(self, url: str) -> str:
        if not url:
            raise PageFetchError(url, "empty url")
        try:
            r = await self.client.get(url)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PageFetchError(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PageFetchError(url, str(e) or e.__class__.__name__) from e
        text = main_text(r.text)
        if not text:
            raise PageFetchError(url, "no readable content")
        log.info("[page] fetched %s (%d chars)", url, len(text))
        return text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
