"""
SmoothBrains Backend: Web Scraping

Jina Reader (primary) + BeautifulSoup (fallback).
Gated by semaphore to respect rate limits.
"""

import asyncio
import re
import time
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from smoothbrains.config import generate_error_code, log, settings

_scrape_semaphore = asyncio.Semaphore(2)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SmoothBrains/1.0)"

# Page-fetch endpoint limits
MAX_FETCH_URLS = 5
DEFAULT_FETCH_CHARS = 800


class ScraperError(Exception):
    pass


@dataclass
class PageContent:
    url: str
    title: str
    content: str


def _truncate_content(content: str, max_chars: int = 15000) -> str:
    """Truncate at last complete sentence before max_chars."""
    if len(content) <= max_chars:
        return content
    truncated = content[:max_chars]
    last_sentence = max(
        truncated.rfind("."),
        truncated.rfind("!"),
        truncated.rfind("?"),
    )
    if last_sentence > max_chars // 2:
        return truncated[: last_sentence + 1].strip()
    return truncated.strip()


async def scrape(url: str, max_chars: int = 15000) -> PageContent:
    """Scrape URL with Jina (primary) then BS4 (fallback)."""
    async with _scrape_semaphore:
        log("INFO", "scrape started", url=url, method="jina")

        start = time.monotonic()
        try:
            page = await _jina_scrape(url, max_chars)
        except ScraperError as e:
            log("WARN", "scrape failed, trying fallback", url=url, method="jina", error=str(e))
            try:
                page = await _bs4_scrape(url, max_chars)
            except ScraperError as e2:
                code = generate_error_code()
                log("ERROR", "scrape failed all methods", url=url, error=str(e2), error_code=code)
                raise

        log("INFO", "scrape completed", url=url, content_length=len(page.content),
            duration_ms=int((time.monotonic() - start) * 1000))
        return page


async def fetch_pages(urls: list[str], max_chars: int = DEFAULT_FETCH_CHARS) -> list[PageContent]:
    """
    Scrape up to MAX_FETCH_URLS pages concurrently. Pages that fail or come
    back empty are skipped; order of the input is kept.
    """
    targets = [u for u in urls[:MAX_FETCH_URLS] if isinstance(u, str) and u.startswith(("http://", "https://"))]
    results = await asyncio.gather(*(scrape(u, max_chars) for u in targets), return_exceptions=True)

    pages = []
    for url, result in zip(targets, results):
        if isinstance(result, ScraperError):
            log("WARN", "page skipped", url=url, error=str(result))
            continue
        if isinstance(result, Exception):
            raise result
        if result.content:
            pages.append(result)
    return pages


async def _jina_scrape(url: str, max_chars: int) -> PageContent:
    """Jina Reader API - returns markdown content. First '# ' heading or 'Title:' line is the title."""
    headers = {"Accept": "text/markdown", "User-Agent": DEFAULT_USER_AGENT}
    if settings.jina_api_key:
        headers["Authorization"] = f"Bearer {settings.jina_api_key}"

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(f"https://r.jina.ai/{url}", headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise ScraperError(str(e)) from e

    text = response.text
    title_match = re.search(r"^(?:Title:\s*|#\s+)(.+)$", text, re.MULTILINE)
    title = title_match.group(1).strip() if title_match else ""
    return PageContent(url=url, title=title, content=_truncate_content(text.strip(), max_chars))


async def _bs4_scrape(url: str, max_chars: int) -> PageContent:
    """BeautifulSoup fallback - HTML parsing."""
    try:
        async with httpx.AsyncClient(timeout=15.0, follow_redirects=True) as client:
            response = await client.get(url, headers={"User-Agent": DEFAULT_USER_AGENT})
            response.raise_for_status()
            html = response.text
    except httpx.HTTPError as e:
        raise ScraperError(str(e)) from e

    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup.find_all(["script", "style", "nav", "footer", "header", "noscript"]):
        tag.decompose()

    text = soup.get_text(separator="\n")
    text = re.sub(r"\n\s*\n", "\n\n", text)
    text = re.sub(r" +", " ", text)
    return PageContent(url=url, title=title, content=_truncate_content(text.strip(), max_chars))
