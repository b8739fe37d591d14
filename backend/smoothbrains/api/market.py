"""
SmoothBrains Backend: Market API (POST /api/market/size, /competitors, /trends)
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from smoothbrains import market
from smoothbrains.config import generate_error_code, log
from smoothbrains.llm import LLMError, LLMValidationError
from smoothbrains.models import CompetitorRequest, IdeaRequest, MarketSizeRequest
from smoothbrains.rate_limit import LLM_RATE_LIMIT, limiter

router = APIRouter(prefix="/api/market", tags=["market"])


@router.post("/size")
async def market_size(body: MarketSizeRequest):
    """
    POST /api/market/size

    TAM/SAM/SOM estimate from web search. Any failure past validation
    returns the benchmark payload instead of an error.
    """
    if not body.idea:
        raise HTTPException(status_code=400, detail="Idea is required")

    try:
        return await market.estimate_market_size(body.idea, body.industry, body.geography, body.detailed)
    except Exception as e:
        log("ERROR", "market size failed, using fallback", error=str(e), error_code=generate_error_code())
        return market.market_size_fallback()


@router.post("/competitors")
@limiter.limit(LLM_RATE_LIMIT)
async def competitors(request: Request, body: CompetitorRequest):
    """
    POST /api/market/competitors

    Returns: { success, competitors, timestamp }
    """
    if not body.idea:
        raise HTTPException(status_code=400, detail="Idea is required")

    try:
        analysis = await market.analyze_competitors(body.idea, body.industry)
    except (LLMError, LLMValidationError) as e:
        code = generate_error_code()
        log("ERROR", "competitor analysis failed", idea=body.idea[:50], error=str(e), error_code=code)
        raise HTTPException(
            status_code=500,
            detail={"message": "Competitor analysis is unavailable right now.", "error_code": code},
        )

    return {
        "success": True,
        "competitors": analysis,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/trends")
async def trends(body: IdeaRequest):
    """POST /api/market/trends"""
    if not body.idea:
        raise HTTPException(status_code=400, detail="Idea is required")
    return await market.fetch_trends(body.idea)
