"""
SmoothBrains Backend: Sentiment API (POST /api/sentiment/reddit, /youtube, /twitter, /unified)
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from smoothbrains import sentiment
from smoothbrains.config import generate_error_code, log
from smoothbrains.llm import LLMError, LLMValidationError
from smoothbrains.models import IdeaRequest, RedditSentimentRequest, TwitterRequest, YouTubeRequest
from smoothbrains.rate_limit import LLM_RATE_LIMIT, limiter
from smoothbrains.sentiment import SocialSourceError

router = APIRouter(prefix="/api/sentiment", tags=["sentiment"])


@router.post("/reddit")
async def reddit(body: RedditSentimentRequest):
    """POST /api/sentiment/reddit. Falls back to a neutral payload, never errors."""
    return await sentiment.reddit_sentiment(body.idea, body.industry, body.geography, body.time_window)


@router.post("/youtube")
async def youtube(body: YouTubeRequest):
    """POST /api/sentiment/youtube"""
    if not body.query:
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        return await sentiment.youtube_sentiment(body.query, body.industry)
    except SocialSourceError as e:
        log("ERROR", "youtube sentiment failed", error=str(e), error_code=generate_error_code())
        return sentiment.youtube_unavailable(str(e))


@router.post("/twitter")
@limiter.limit(LLM_RATE_LIMIT)
async def twitter(request: Request, body: TwitterRequest):
    """
    POST /api/sentiment/twitter

    Returns { status: "ok", raw, normalized, citations } or, with HTTP 500,
    { status: "unavailable", reason }.
    """
    if not body.q:
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        return await sentiment.twitter_sentiment(body.q, body.lang, body.since)
    except (SocialSourceError, LLMError, LLMValidationError) as e:
        code = generate_error_code()
        log("ERROR", "twitter sentiment failed", q=body.q[:50], error=str(e), error_code=code)
        return JSONResponse(status_code=500, content={**sentiment.twitter_unavailable(str(e)), "error_code": code})


@router.post("/unified")
@limiter.limit(LLM_RATE_LIMIT)
async def unified(request: Request, body: IdeaRequest):
    """POST /api/sentiment/unified"""
    if not body.idea:
        raise HTTPException(status_code=400, detail="Idea is required")
    return await sentiment.unified_sentiment(body.idea)
