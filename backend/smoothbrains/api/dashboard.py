"""
SmoothBrains Backend: Dashboard API (/api/dashboard)

Tile persistence for the analysis dashboard plus POST /api/dashboard/analyze,
the SSE stream that computes every tile concurrently and finishes with the
composite score.
"""

import asyncio
import json
import time
from dataclasses import replace
from hashlib import sha256
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from smoothbrains import db, market, scoring, sentiment
from smoothbrains.auth import require_user_id
from smoothbrains.config import generate_error_code, log
from smoothbrains.models import (
    AnalysisCompleteEvent,
    AnalysisStartedEvent,
    AnalyzeRequest,
    ScoreReadyEvent,
    TileBatchRequest,
    TileErrorEvent,
    TileReadyEvent,
    TileSaveRequest,
)
from smoothbrains.rate_limit import LLM_RATE_LIMIT, limiter

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

ANALYSIS_TILES = ["market_size", "competitors", "trends", "sentiment"]

# In-memory dedup tracker (single-instance assumption)
_active_analyses: dict[str, bool] = {}


def _normalize_idea(idea: str | None) -> str:
    return " ".join((idea or "").split()).lower()


def _make_dedup_key(user_id: str, session_id: str | None, idea: str) -> str:
    raw = f"{user_id}|{session_id or ''}|{_normalize_idea(idea)}"
    return f"analysis:{sha256(raw.encode()).hexdigest()[:16]}"


def _format_sse_event(event_data: dict) -> str:
    """Format a dict as an SSE event string. Format: 'data: {json}\\n\\n'"""
    return f"data: {json.dumps(event_data, default=str)}\n\n"


def _serialize_event(event) -> str:
    """Serialize a Pydantic event model to SSE string."""
    return _format_sse_event(event.model_dump())


# -----------------------------------------------------------------------------
# Tile persistence
# -----------------------------------------------------------------------------


@router.get("/tiles/{tile_type}")
async def get_tile(tile_type: str, session_id: Optional[str] = None, user_id: str = Depends(require_user_id)):
    """GET /api/dashboard/tiles/{tile_type}?session_id=. 404 when missing or expired."""
    row = await db.get_dashboard_tile(user_id, session_id, tile_type)
    if not row:
        raise HTTPException(status_code=404, detail="Tile not found")
    return {
        "tile_type": tile_type,
        "data": row.get("data"),
        "metadata": row.get("metadata") or {},
        "expires_at": row.get("expires_at"),
        "updated_at": row.get("updated_at"),
    }


@router.put("/tiles/{tile_type}")
async def save_tile(tile_type: str, body: TileSaveRequest, user_id: str = Depends(require_user_id)):
    """PUT /api/dashboard/tiles/{tile_type}. Upserts with an expiry (default 30 minutes)."""
    saved = await db.save_dashboard_tile(
        user_id, body.session_id, tile_type, body.data, body.metadata, body.expires_in_minutes
    )
    if not saved:
        code = generate_error_code()
        log("ERROR", "tile save failed", session_id=body.session_id, tile_type=tile_type, error_code=code)
        raise HTTPException(status_code=500, detail={"message": "Could not save the tile.", "error_code": code})
    return {"success": True}


@router.delete("/tiles/{tile_type}")
async def delete_tile(tile_type: str, session_id: Optional[str] = None, user_id: str = Depends(require_user_id)):
    """DELETE /api/dashboard/tiles/{tile_type}?session_id="""
    return {"success": await db.delete_dashboard_tile(user_id, session_id, tile_type)}


@router.delete("")
async def clear_dashboard(session_id: Optional[str] = None, user_id: str = Depends(require_user_id)):
    """DELETE /api/dashboard?session_id=. Without session_id every tile of the user goes."""
    return {"success": await db.clear_dashboard(user_id, session_id)}


@router.post("/tiles/batch")
async def batch_tiles(body: TileBatchRequest, user_id: str = Depends(require_user_id)):
    """POST /api/dashboard/tiles/batch. Returns { tiles: {tile_type: data} }, non-expired only."""
    return {"tiles": await db.get_dashboard_tiles(user_id, body.session_id, body.tile_types or None)}


# -----------------------------------------------------------------------------
# Analysis stream
# -----------------------------------------------------------------------------


@router.post("/analyze")
@limiter.limit(LLM_RATE_LIMIT)
async def analyze(request: Request, body: AnalyzeRequest, user_id: str = Depends(require_user_id)) -> StreamingResponse:
    """
    POST /api/dashboard/analyze

    SSE stream: analysis_started, then tile_ready / tile_error per tile as
    each completes, then score_ready and analysis_complete.
    409 if the same analysis is already running.
    """
    idea = body.idea.strip()
    dedup_key = _make_dedup_key(user_id, body.session_id, idea)

    if dedup_key in _active_analyses:
        raise HTTPException(status_code=409, detail="Analysis already in progress for this idea")

    _active_analyses[dedup_key] = True

    async def stream():
        try:
            async for chunk in _run_analysis_pipeline(user_id, body, idea):
                yield chunk
        finally:
            _active_analyses.pop(dedup_key, None)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _compute_tile(tile_type: str, idea: str, industry: str | None, session_id: str | None):
    """Returns (tile_type, data, error). Never raises."""
    try:
        if tile_type == "market_size":
            data = await market.estimate_market_size(idea, industry)
        elif tile_type == "competitors":
            data = await market.analyze_competitors(idea, industry, session_id=session_id)
        elif tile_type == "trends":
            data = await market.fetch_trends(idea)
        elif tile_type == "sentiment":
            data = await sentiment.unified_sentiment(idea, session_id=session_id)
        else:
            raise ValueError(f"Unknown tile type: {tile_type}")
        return tile_type, data, None
    except Exception as e:
        return tile_type, None, e


def score_from_tiles(
    idea: str,
    tiles: dict,
    wrinkle_points: float = 0,
    chat_history: list[dict] | None = None,
    user_answers: dict | None = None,
) -> dict:
    """Composite score using whatever tiles were computed."""
    market_data = {}
    if "market_size" in tiles:
        size = tiles["market_size"]
        market_data = {"tam": (size.get("tam") or 0) / 1_000_000_000, "growth_rate": size.get("cagr")}

    competition_data = {}
    if "competitors" in tiles:
        concentration = (tiles["competitors"].get("competitive_dynamics") or {}).get("market_concentration")
        competition_data = {"level": concentration or "medium"}

    sentiment_data = {}
    positive = None
    if "sentiment" in tiles:
        metrics = (tiles["sentiment"].get("sentiment") or {}).get("metrics") or {}
        distribution = metrics.get("overall_distribution") or {}
        if sum(distribution.values()) > 0:
            # Distribution shares are percents; the factor parsers read 0..1 as a fraction
            positive = scoring.clamp(float(distribution.get("positive") or 0), 0, 100)
            sentiment_data = {"score": positive / 100}

    factors = scoring.extract_factors(
        idea,
        wrinkle_points=wrinkle_points,
        market_data=market_data,
        competition_data=competition_data,
        sentiment_data=sentiment_data,
        chat_history=chat_history,
        user_answers=user_answers,
    )
    if positive is not None:
        # extract_factors treats a 0 score as missing
        factors = replace(factors, sentiment=positive)
    result = scoring.calculate_strict_score(factors)
    return {
        "score": result.score,
        "category": result.category,
        "explanation": result.explanation,
        "breakdown": result.breakdown,
        "factors": scoring.factors_to_dict(factors),
        "recommendations": scoring.generate_recommendations(result, factors),
    }


async def _run_analysis_pipeline(user_id: str, body: AnalyzeRequest, idea: str):
    """Async generator yielding SSE events for one dashboard analysis."""
    start_ms = time.perf_counter()
    session_id = body.session_id
    log("INFO", "pipeline started", pipeline="analyze", session_id=session_id, idea=idea[:50])

    yield _serialize_event(AnalysisStartedEvent(session_id=session_id, tiles=ANALYSIS_TILES))

    cached = await db.get_dashboard_tile_rows(user_id, session_id, ANALYSIS_TILES)
    tiles: dict = {}
    failed: list[str] = []

    for tile_type in ANALYSIS_TILES:
        row = cached.get(tile_type)
        # Tiles computed for another idea in this session are stale
        if not row or _normalize_idea((row.get("metadata") or {}).get("idea")) != _normalize_idea(idea):
            continue
        tiles[tile_type] = row["data"]
        yield _serialize_event(TileReadyEvent(tile_type=tile_type, data=row["data"]))
        log("INFO", "sse event sent", event_type="tile_ready", tile_type=tile_type, cached=True)

    tasks = [
        asyncio.create_task(_compute_tile(t, idea, body.industry, session_id))
        for t in ANALYSIS_TILES
        if t not in tiles
    ]
    try:
        for next_done in asyncio.as_completed(tasks):
            tile_type, data, error = await next_done
            if error is not None:
                code = generate_error_code()
                log("ERROR", "tile failed", session_id=session_id, tile_type=tile_type,
                    error=str(error), error_code=code)
                failed.append(tile_type)
                yield _serialize_event(TileErrorEvent(
                    tile_type=tile_type,
                    error=f"Could not compute {tile_type.replace('_', ' ')}.",
                    error_code=code,
                ))
                continue

            tiles[tile_type] = data
            await db.save_dashboard_tile(user_id, session_id, tile_type, data, metadata={"idea": idea})
            yield _serialize_event(TileReadyEvent(tile_type=tile_type, data=data))
            log("INFO", "sse event sent", event_type="tile_ready", tile_type=tile_type)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    score = score_from_tiles(idea, tiles, body.wrinkle_points, body.chat_history, body.user_answers)
    await db.save_dashboard_tile(user_id, session_id, "score", score, metadata={"idea": idea})
    yield _serialize_event(ScoreReadyEvent(score=score))

    yield _serialize_event(AnalysisCompleteEvent(
        session_id=session_id,
        tiles_ready=[t for t in ANALYSIS_TILES if t in tiles],
        tiles_failed=failed,
    ))
    log("INFO", "pipeline completed", pipeline="analyze", session_id=session_id,
        tiles_ready=len(tiles), tiles_failed=len(failed),
        duration_ms=int((time.perf_counter() - start_ms) * 1000))
