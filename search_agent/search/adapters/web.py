"""Web search adapters: Firecrawl-rendered result pages, with a FlareSolverr fallback.

Both adapters render the same Google result page and parse its result blocks
(div.g > h3 / a / .VwiC3b) with BeautifulSoup.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from bs4 import BeautifulSoup

from search_agent.core.errors import InvocationError
from search_agent.search.constants import (
    GOOGLE_SEARCH_URL,
    RESULT_BLOCK_SELECTOR,
    RESULT_SNIPPET_SELECTOR,
    ResultSource,
)
from search_agent.search.interface import ProviderAdapter, SearchAdapter, as_text
from search_agent.search.models import SearchOptions, SearchResult

if TYPE_CHECKING:
    from search_agent.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_FLARESOLVERR_TIMEOUT = 70.0
_MAX_SNIPPET_LEN = 400


def google_search_url(query: str, max_results: int | None = None) -> str:
    params: dict[str, Any] = {"q": query}
    if max_results:
        params["num"] = max_results
    return f"{GOOGLE_SEARCH_URL}?{urlencode(params)}"


def _unwrap_redirect(href: str) -> str:
    """Google wraps outbound links as /url?q=<target>&..."""
    if href.startswith("/url?"):
        target = parse_qs(urlparse(href).query).get("q")
        if target:
            return target[0]
    return href


def parse_result_page(html: str, source: str = ResultSource.WEB) -> list[SearchResult]:
    """Extract (title, url, snippet) from each result block; blocks without a title or link are skipped."""
    if not html or not html.strip():
        return []
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    for block in soup.select(RESULT_BLOCK_SELECTOR):
        title_el = block.find("h3")
        link_el = block.find("a", href=True)
        if title_el is None or link_el is None:
            continue
        title = title_el.get_text(" ", strip=True)
        url = _unwrap_redirect(str(link_el.get("href", "")).strip())
        if not title or not url:
            continue
        snippet_el = block.select_one(RESULT_SNIPPET_SELECTOR)
        snippet = snippet_el.get_text(" ", strip=True)[:_MAX_SNIPPET_LEN] if snippet_el else ""
        results.append(SearchResult(title=title, url=url, snippet=snippet, source=source))
    return results


def _html_from_payload(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, dict):
        return ""
    for key in ("html", "rawHtml"):
        if isinstance(raw.get(key), str):
            return raw[key]
    data = raw.get("data")
    if isinstance(data, dict):
        return _html_from_payload(data)
    solution = raw.get("solution")
    if isinstance(solution, dict):
        return as_text(solution.get("response"))
    return ""


class FirecrawlRenderAdapter(ProviderAdapter):
    """Render the result page through the firecrawl provider's scrape tool."""

    name = "firecrawl"
    provider = "firecrawl"
    tool = "scrape"
    source = ResultSource.WEB

    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        return {
            "url": google_search_url(query, max_results),
            "formats": ["markdown", "html"],
            "includeTags": [RESULT_BLOCK_SELECTOR, "h3", "a", RESULT_SNIPPET_SELECTOR],
            "excludeTags": ["nav", "footer", "aside", "script", "style"],
            "waitFor": 2000,
        }

    def parse_response(self, raw: Any) -> list[SearchResult]:
        return parse_result_page(_html_from_payload(raw), self.source)


class HeadlessRenderAdapter(SearchAdapter):
    """Direct fallback through a FlareSolverr instance when no render provider is connected."""

    name = "headless"
    source = ResultSource.WEB

    def __init__(
        self,
        flaresolverr_url: str,
        *,
        render_provider: str = "firecrawl",
        enabled: bool = True,
        retry_count: int = 3,
        retry_delay: float = 1.0,
        timeout: float = _FLARESOLVERR_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.flaresolverr_url = flaresolverr_url.rstrip("/")
        self.render_provider = render_provider
        self.enabled = enabled
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport

    def is_active(self, registry: "ProviderRegistry") -> bool:
        return self.enabled and not registry.is_connected(self.render_provider)

    async def _fetch(self, url: str) -> str:
        payload = {"cmd": "request.get", "url": url, "maxTimeout": 60000}
        last_error: Exception | None = None
        for attempt in range(1, self.retry_count + 1):
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    r = await client.post(
                        self.flaresolverr_url + "/v1", json=payload, timeout=self.timeout
                    )
                    r.raise_for_status()
                    data = r.json()
                if data.get("status") != "ok":
                    raise ValueError(f"FlareSolverr status {data.get('status')!r}: {data.get('message', '')}")
                return _html_from_payload(data)
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.debug("Headless render attempt %s/%s failed: %s", attempt, self.retry_count, e)
                if attempt < self.retry_count:
                    await asyncio.sleep(self.retry_delay)
        assert last_error is not None
        raise InvocationError("flaresolverr", "request.get", last_error)

    async def search(
        self,
        query: str,
        options: SearchOptions,
        registry: "ProviderRegistry",
        max_results: int,
    ) -> list[SearchResult]:
        html = await self._fetch(google_search_url(query, max_results))
        return self.parse_response(html)[:max_results]

    def parse_response(self, raw: Any) -> list[SearchResult]:
        return parse_result_page(_html_from_payload(raw), self.source)
