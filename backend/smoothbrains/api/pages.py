"""
SmoothBrains Backend: Page Fetch API (POST /api/pages/fetch)

Readable text for a handful of source URLs, used for citation previews.
"""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from smoothbrains import scraper
from smoothbrains.config import log
from smoothbrains.models import PageFetchRequest

router = APIRouter(prefix="/api/pages", tags=["pages"])


@router.post("/fetch")
async def fetch_pages(body: PageFetchRequest):
    """
    POST /api/pages/fetch

    At most MAX_FETCH_URLS urls are fetched; failed ones are skipped.
    Returns: { success, fetched, requested, data: [{url, title, content}] }
    """
    if not isinstance(body.urls, list) or not body.urls:
        raise HTTPException(status_code=400, detail="urls must be a non-empty list")

    urls = [u for u in body.urls if isinstance(u, str)]
    pages = await scraper.fetch_pages(urls, max_chars=body.max_chars)
    requested = min(len(body.urls), scraper.MAX_FETCH_URLS)

    log("INFO", "pages fetched", requested=requested, fetched=len(pages))
    return {
        "success": True,
        "fetched": len(pages),
        "requested": requested,
        "data": [asdict(p) for p in pages],
    }
