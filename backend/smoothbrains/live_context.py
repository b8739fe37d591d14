"""
SmoothBrains Backend: Live Idea Context

Refreshes the per-idea market, competitor, sentiment and trends context that
POST /api/score/pmf reads. Four web searches run concurrently, an LLM pass
structures them, and one idea_live_context row per context type is upserted.
"""

import asyncio
from dataclasses import asdict
from datetime import datetime, timezone

from smoothbrains import db, llm, prompts, search
from smoothbrains.config import LIVE_CONTEXT_TTL_HOURS, generate_error_code, log
from smoothbrains.llm import LLMError, LLMValidationError
from smoothbrains.market import extract_market_figures
from smoothbrains.models import LiveContextAnalysis, SentimentContext
from smoothbrains.search import SearchResult
from smoothbrains.sentiment import analyze_sentiment

CONTEXT_QUERIES = {
    "market": "{idea} market size industry analysis",
    "competitor": "{idea} competitors alternatives similar companies",
    "sentiment": "{idea} reviews opinions feedback reddit twitter",
    "trends": "{idea} trends future predictions growth",
}
CONTEXT_CONFIDENCE = {"market": 0.85, "competitor": 0.80, "trends": 0.75}

SEARCH_RESULTS_PER_CONTEXT = 10
MAX_CONTEXT_RESULTS = 5
MAX_CONTEXT_SOURCES = 3


def raw_context(context_type: str, results: list[SearchResult]) -> dict:
    """Search results for one context type reduced to the fields the LLM pass and PMF prompt use."""
    top = results[:MAX_CONTEXT_RESULTS]
    data = {
        "search_results": [asdict(r) for r in top],
        "sources": [r.url for r in results[:MAX_CONTEXT_SOURCES]],
    }

    if context_type == "market":
        figures, growth = extract_market_figures(" ".join(r.snippet for r in results))
        data["market_size"] = results[0].snippet if results else "No market data found"
        data["largest_figure_musd"] = max((f.value for f in figures), default=None)
        data["growth_rates"] = growth
    elif context_type == "competitor":
        data["competitors"] = [r.title for r in top]
    elif context_type == "sentiment":
        labels = [analyze_sentiment(f"{r.title} {r.snippet}")[0] for r in results]
        positive, negative = labels.count("positive"), labels.count("negative")
        data["positive_mentions"] = positive
        data["negative_mentions"] = negative
        if positive > negative:
            data["sentiment"] = "positive"
        elif negative > positive:
            data["sentiment"] = "negative"
        else:
            data["sentiment"] = "neutral"
    elif context_type == "trends":
        data["trends"] = [r.title for r in top]
    return data


def context_entries(analysis: LiveContextAnalysis, raw: dict[str, dict]) -> list[dict]:
    """idea_live_context rows (without idea_id and expiry) for the four context types."""
    analyzed_at = datetime.now(timezone.utc).isoformat()

    def entry(context_type: str, data: dict, confidence: float) -> dict:
        return {
            "context_type": context_type,
            "data": {**data, "raw_data": raw[context_type], "last_analyzed": analyzed_at},
            "confidence_score": confidence,
            "sources": raw[context_type]["sources"],
        }

    return [
        entry("market", {"analysis": analysis.market_analysis.model_dump()}, CONTEXT_CONFIDENCE["market"]),
        entry("competitor", {"analysis": analysis.competitive_landscape.model_dump()}, CONTEXT_CONFIDENCE["competitor"]),
        entry("sentiment", {"analysis": analysis.sentiment_analysis.model_dump()}, analysis.sentiment_analysis.confidence),
        entry("trends", {
            "trending_topics": analysis.trending_topics,
            "risk_factors": analysis.risk_factors,
            "recommendations": analysis.recommendations,
        }, CONTEXT_CONFIDENCE["trends"]),
    ]


async def refresh_live_context(
    idea_id: str,
    idea_text: str,
    category: str | None = None,
    force_refresh: bool = False,
) -> dict:
    """
    Return the idea's live context, recomputing it unless unexpired rows exist
    (or force_refresh is set).

    LLM failure does not fail the refresh: the raw search context is stored
    with a neutral, low-confidence analysis.
    """
    if not force_refresh:
        existing = await db.get_live_context_rows(idea_id)
        if existing:
            log("INFO", "live context served from cache", idea_id=idea_id, rows=len(existing))
            return {"success": True, "context": existing, "from_cache": True}

    context_types = list(CONTEXT_QUERIES)
    results = await asyncio.gather(*(
        search.search(CONTEXT_QUERIES[t].format(idea=idea_text), num_results=SEARCH_RESULTS_PER_CONTEXT)
        for t in context_types
    ))
    raw = {t: raw_context(t, r) for t, r in zip(context_types, results)}
    log("INFO", "live context searched", idea_id=idea_id,
        results={t: len(r) for t, r in zip(context_types, results)})

    try:
        analysis: LiveContextAnalysis = await llm.call_llm_structured(
            prompts.build_live_context_prompt(idea_text, category, raw),
            LiveContextAnalysis,
            session_id=idea_id,
            temperature=0.3,
            max_tokens=2000,
        )
    except (LLMError, LLMValidationError) as e:
        code = generate_error_code()
        log("ERROR", "live context llm failed, storing raw context", idea_id=idea_id, error=str(e), error_code=code)
        analysis = LiveContextAnalysis(
            sentiment_analysis=SentimentContext(confidence=0.1),
            risk_factors=[f"AI analysis unavailable ({code})"],
        )

    entries = context_entries(analysis, raw)
    if not await db.upsert_live_context(idea_id, entries, LIVE_CONTEXT_TTL_HOURS):
        log("WARN", "live context not persisted", idea_id=idea_id)

    log("INFO", "live context refreshed", idea_id=idea_id, entries=len(entries))
    return {"success": True, "context": entries, "analysis": analysis.model_dump(), "from_cache": False}
