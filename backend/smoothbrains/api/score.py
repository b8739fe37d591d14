"""
SmoothBrains Backend: Score API (POST /api/score, /api/score/quick, /api/score/pmf, /api/score/live-context)

Composite SmoothBrains score, the LLM quick score, the stored PMF score
with next-step actions, and the live idea context the PMF score reads.
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from smoothbrains import db, live_context, llm, prompts, scoring
from smoothbrains.config import PMF_SCORE_MAX_AGE_MINUTES, generate_error_code, log
from smoothbrains.db import parse_ts
from smoothbrains.llm import LLMError, LLMValidationError
from smoothbrains.models import (
    LiveContextRequest,
    NextStep,
    PMFAnalysis,
    PMFRequest,
    QuickScoreRequest,
    QuickScoreResult,
    ScoreRequest,
)
from smoothbrains.rate_limit import LLM_RATE_LIMIT, limiter

router = APIRouter(prefix="/api/score", tags=["score"])

PMF_FALLBACK = PMFAnalysis(
    pmf_score=50,
    confidence=0.3,
    score_breakdown={
        "market_size": 50,
        "competition": 50,
        "execution": 50,
        "timing": 50,
        "team": 50,
        "product_uniqueness": 50,
        "customer_validation": 50,
    },
    reasoning="AI analysis unavailable. Manual assessment needed.",
    strengths=["Fallback analysis - requires manual review"],
    weaknesses=["AI services unavailable"],
    next_steps=[
        NextStep(
            title="Manual PMF Assessment",
            description="Conduct manual Product-Market Fit analysis",
            priority=1,
            category="analysis",
            estimated_effort="high",
            confidence=0.5,
            reasoning="AI analysis failed, manual review required",
        )
    ],
)


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("")
async def calculate_score(body: ScoreRequest):
    """
    POST /api/score

    Deterministic composite score from whatever dashboard data is available.
    """
    try:
        factors = scoring.extract_factors(
            body.idea,
            wrinkle_points=body.wrinkle_points,
            market_data=body.market_data,
            competition_data=body.competition_data,
            sentiment_data=body.sentiment_data,
            chat_history=body.chat_history,
            user_answers=body.user_answers,
        )
        result = scoring.calculate_strict_score(factors)
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "score calculation failed", error=str(e), error_code=code)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e), "error_code": code})

    log("INFO", "score calculated", score=result.score, category=result.category)
    return {
        "success": True,
        "score": result.score,
        "category": result.category,
        "explanation": result.explanation,
        "breakdown": result.breakdown,
        "factors": scoring.factors_to_dict(factors),
        "recommendations": scoring.generate_recommendations(result, factors),
    }


@router.post("/quick")
@limiter.limit(LLM_RATE_LIMIT)
async def quick_score(request: Request, body: QuickScoreRequest):
    """
    POST /api/score/quick

    LLM score from three market signals; the heuristic takes over when the
    LLM is unavailable or returns something unusable.
    """
    try:
        result: QuickScoreResult = await llm.call_llm_structured(
            prompts.build_quick_score_prompt(body.idea, body.market_size, body.competition, body.sentiment),
            QuickScoreResult,
            temperature=0.3,
            max_tokens=150,
        )
        score, rationale = result.score, result.rationale
    except (LLMError, LLMValidationError) as e:
        log("WARN", "quick score llm failed, using heuristic", error=str(e))
        score = scoring.quick_score(body.market_size, body.competition, body.sentiment)
        rationale = f"Based on {body.competition or 'medium'} competition and {body.sentiment or 'mixed'} sentiment"

    return {
        "updatedAt": datetime.now(timezone.utc).isoformat(),
        "score": score,
        "rationale": rationale,
        "factors": {
            "marketSize": body.market_size or "Analyzing...",
            "competition": body.competition or "Medium",
            "sentiment": body.sentiment or "50%",
        },
        "confidence": 0.7,
        "trend": scoring.score_trend(score),
    }


@router.post("/live-context")
@limiter.limit(LLM_RATE_LIMIT)
async def refresh_live_context(request: Request, body: LiveContextRequest):
    """
    POST /api/score/live-context

    Gathers the market, competitor, sentiment and trends context that
    /api/score/pmf scores against. Unexpired context is returned as is unless
    force_refresh is set.
    """
    if not body.idea_id or not body.idea_text:
        raise HTTPException(status_code=400, detail="Missing required fields: idea_id and idea_text")

    log("INFO", "live context requested", idea_id=body.idea_id, force=body.force_refresh)
    return await live_context.refresh_live_context(
        body.idea_id, body.idea_text, category=body.category, force_refresh=body.force_refresh
    )


@router.post("/pmf")
@limiter.limit(LLM_RATE_LIMIT)
async def compute_pmf(request: Request, body: PMFRequest):
    """
    POST /api/score/pmf

    Returns the stored score when it is fresh enough, otherwise recomputes it
    from the idea's live dashboard context and replaces the pending actions.
    """
    if not body.idea_id or not body.idea_text:
        raise HTTPException(status_code=400, detail="Missing required fields: idea_id and idea_text")

    idea_id = body.idea_id
    log("INFO", "pmf requested", idea_id=idea_id, force=body.force_recalculate)

    if not body.force_recalculate:
        existing = await db.get_latest_idea_score(idea_id)
        created_at = parse_ts(existing.get("created_at")) if existing else None
        max_age = timedelta(minutes=PMF_SCORE_MAX_AGE_MINUTES)
        if created_at and created_at > datetime.now(timezone.utc) - max_age:
            log("INFO", "pmf served from cache", idea_id=idea_id)
            return {
                "success": True,
                "pmf_score": existing.get("pmf_score"),
                "score_breakdown": existing.get("score_breakdown") or {},
                "actions": await db.get_pending_actions(idea_id),
                "from_cache": True,
            }

    context = await db.get_live_context(idea_id)
    feedback = await db.get_idea_feedback(idea_id)

    try:
        analysis: PMFAnalysis = await llm.call_llm_structured(
            prompts.build_pmf_prompt(body.idea_text, context, feedback, body.user_context),
            PMFAnalysis,
            session_id=idea_id,
            temperature=0.1,
            max_tokens=3000,
        )
    except (LLMError, LLMValidationError) as e:
        code = generate_error_code()
        log("ERROR", "pmf llm failed, using fallback", idea_id=idea_id, error=str(e), error_code=code)
        analysis = PMF_FALLBACK

    result = analysis.model_dump()
    await db.store_idea_score(idea_id, result)
    actions = await db.replace_pending_actions(idea_id, _action_rows(analysis.next_steps))

    log("INFO", "pmf computed", idea_id=idea_id, pmf_score=analysis.pmf_score, actions=len(actions))
    return {
        "success": True,
        "pmf_score": analysis.pmf_score,
        "score_breakdown": analysis.score_breakdown,
        "confidence": analysis.confidence,
        "actions": actions,
        "reasoning": analysis.reasoning,
        "from_cache": False,
    }


def _action_rows(next_steps: list[NextStep]) -> list[dict]:
    """actions table rows; unknown priorities follow list order."""
    rows = []
    for index, step in enumerate(next_steps):
        due_date = parse_ts(step.due_date) if step.due_date else None
        rows.append({
            "title": step.title,
            "description": step.description,
            "priority": step.priority or index + 1,
            "category": step.category,
            "estimated_effort": step.estimated_effort,
            "ai_confidence": step.confidence,
            "due_date": due_date.isoformat() if due_date else None,
            "metadata": {"reasoning": step.reasoning, "success_metrics": step.success_metrics},
        })
    return rows
