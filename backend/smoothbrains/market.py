"""
SmoothBrains Backend: Market Analysis

Market sizing (TAM/SAM/SOM from web search snippets), LLM competitor analysis,
and search-interest trends. Numbers come from regexes over search snippets;
benchmarks fill in when the web has nothing.
"""

import asyncio
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from statistics import mean
from urllib.parse import quote

from smoothbrains import llm, prompts, search
from smoothbrains.config import COMPETITOR_CACHE_MINUTES, log
from smoothbrains.models import CompetitorAnalysis

# Benchmarks in $M, used when no figure can be extracted
BENCHMARK_TAM = 7900.0
BENCHMARK_SAM = 1185.0
BENCHMARK_SOM = 35.55
BENCHMARK_CAGR = 12

SAM_SHARE_OF_TAM = 0.15
SOM_SHARE_OF_SAM = 0.03
PRICE_POINT = 49

MONEY_PATTERN = re.compile(r"\$?\s?(\d+(?:,\d{3})*(?:\.\d+)?)\s*(trillion|billion|million)\b", re.IGNORECASE)
GROWTH_PATTERNS = [
    re.compile(r"CAGR[^%.]{0,60}?(\d+(?:\.\d+)?)\s?%", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\s?%\s*(?:CAGR|compound annual growth)", re.IGNORECASE),
    re.compile(r"growth rate[^%.]{0,60}?(\d+(?:\.\d+)?)\s?%", re.IGNORECASE),
]
UNIT_TO_MILLIONS = {"million": 1.0, "billion": 1000.0, "trillion": 1_000_000.0}

STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by", "from",
    "up", "about", "into", "through", "during", "before", "after", "above", "below", "between", "under",
    "that", "this", "these", "those", "will", "would", "could", "should", "may", "might", "must", "can",
    "is", "are", "was", "were", "been", "being", "have", "has", "had", "do", "does", "did",
}
IMPORTANT_WORDS = ["ai", "startup", "idea", "implementation", "tool", "platform", "vc", "founder", "validation"]
MAX_KEYWORDS = 5


@dataclass
class MarketFigure:
    value: float  # $M
    raw: str
    context: str


# ─────────────────────────────────────────────────────────────────────────────
# Extraction helpers
# ─────────────────────────────────────────────────────────────────────────────


def extract_market_figures(text: str) -> tuple[list[MarketFigure], list[float]]:
    """Money figures (normalized to $M) and growth percentages found in text."""
    if not text:
        return [], []

    figures = []
    for match in MONEY_PATTERN.finditer(text):
        value = float(match.group(1).replace(",", "")) * UNIT_TO_MILLIONS[match.group(2).lower()]
        start, end = match.span()
        figures.append(MarketFigure(
            value=value,
            raw=f"${match.group(1)} {match.group(2).lower()}",
            context=text[max(0, start - 100): end + 100],
        ))

    growth_rates = []
    seen_spans = set()
    for pattern in GROWTH_PATTERNS:
        for match in pattern.finditer(text):
            if match.span(1) in seen_spans:
                continue
            seen_spans.add(match.span(1))
            growth_rates.append(float(match.group(1)))

    return figures, growth_rates


def extract_growth_signals(text: str) -> list[float]:
    """Signed growth percentages: '35% increase' -> 35, 'down 12%' -> -12, plus CAGR mentions."""
    if not text:
        return []
    signals = []
    for match in re.finditer(
        r"(\d+(?:\.\d+)?)\s?%\s*(increase|growth|rise|jump|surge|decline|decrease|drop|fall)",
        text,
        re.IGNORECASE,
    ):
        value = float(match.group(1))
        negative = match.group(2).lower() in ("decline", "decrease", "drop", "fall")
        signals.append(-value if negative else value)
    for match in re.finditer(r"\b(up|down)\s+(\d+(?:\.\d+)?)\s?%", text, re.IGNORECASE):
        value = float(match.group(2))
        signals.append(-value if match.group(1).lower() == "down" else value)
    signals.extend(extract_market_figures(text)[1])
    return signals


def _idea_words(idea: str) -> list[str]:
    return [
        w for w in re.sub(r"[^\w\s]", " ", idea.lower()).split()
        if len(w) > 2 and w not in STOP_WORDS
    ]


def extract_keywords(idea: str) -> list[str]:
    """Up to five search phrases: special AI/startup/tool phrases, then bigrams, then key single words."""
    lowered = idea.lower()
    words = _idea_words(idea)
    phrases: list[str] = []

    if re.search(r"\bai\b", lowered):
        phrases.append("AI " + next((w for w in words if w != "ai"), "tools"))
    if "startup" in lowered:
        phrases.append("startup " + next((w for w in words if w != "startup"), "tools"))
    if "tool" in lowered:
        phrases.append(next((w for w in words if not w.startswith("tool")), "productivity") + " tools")

    for first, second in zip(words, words[1:]):
        if len(phrases) >= MAX_KEYWORDS:
            break
        phrase = f"{first} {second}"
        if phrase not in phrases:
            phrases.append(phrase)

    for word in words:
        if len(phrases) >= MAX_KEYWORDS:
            break
        if word in IMPORTANT_WORDS and not any(word in p for p in phrases):
            phrases.append(word)

    if not phrases and idea.strip():
        phrases.append(idea.strip()[:50])
    return phrases[:MAX_KEYWORDS]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─────────────────────────────────────────────────────────────────────────────
# Market size
# ─────────────────────────────────────────────────────────────────────────────


def _market_queries(idea: str, industry: str | None, geography: str | None) -> list[str]:
    year = datetime.now(timezone.utc).year
    scope = industry or idea
    return [
        f"{idea} market size TAM billion {year}",
        f"{scope} industry market size revenue {year}",
        f"{idea} market growth CAGR",
        f"{idea} {geography or 'global'} market analysis statistics",
    ]


async def estimate_market_size(
    idea: str,
    industry: str | None = None,
    geography: str | None = None,
    detailed: bool = True,
) -> dict:
    """
    TAM/SAM/SOM estimate. TAM is the largest figure found, SAM is a smaller
    figure mentioned alongside the idea's own terms (else 15% of TAM), SOM is
    3% of SAM. All internal values are $M; top-level tam/sam/som are dollars.
    """
    queries = _market_queries(idea, industry, geography)
    batches = await asyncio.gather(*(search.search(q, num_results=10) for q in queries))

    figures: list[MarketFigure] = []
    growth_rates: list[float] = []
    data_points = []
    for query, results in zip(queries, batches):
        for r in results:
            found, rates = extract_market_figures(r.snippet)
            if found:
                figures.extend(found)
                data_points.append({
                    "source": r.title,
                    "url": r.url,
                    "values": [f.raw for f in found],
                    "snippet": r.snippet,
                    "query": query,
                })
            growth_rates.extend(rates)

    log("INFO", "market figures extracted", figures=len(figures), growth_rates=len(growth_rates))

    scope = industry or "target"
    segment_terms = _idea_words(idea)
    if figures:
        figures.sort(key=lambda f: f.value, reverse=True)
        tam = figures[0].value
        segment = next(
            (f for f in figures if f.value < tam and any(t in f.context.lower() for t in segment_terms)),
            None,
        )
        sam = segment.value if segment else tam * SAM_SHARE_OF_TAM
        som = sam * SOM_SHARE_OF_SAM
        confidence = min(0.85, 0.5 + len(figures) * 0.05)
        method = "real-time-data"
        tam_explanation = f"Largest market figure found: {figures[0].raw} ({figures[0].context.strip()[:120]})"
        sam_explanation = (
            f"Segment-specific mention: {segment.raw}" if segment
            else f"Serviceable segment estimated at {int(SAM_SHARE_OF_TAM * 100)}% of TAM"
        )
    else:
        tam, sam, som = BENCHMARK_TAM, BENCHMARK_SAM, BENCHMARK_SOM
        confidence = 0.6
        method = "industry-benchmarks"
        tam_explanation = "Industry benchmark used because no market figures were found"
        sam_explanation = f"Serviceable segment estimated at {int(SAM_SHARE_OF_TAM * 100)}% of TAM"

    if growth_rates:
        cagr = round(mean(growth_rates))
        cagr_explanation = f"Average growth rate from {len(growth_rates)} data points"
    else:
        cagr = BENCHMARK_CAGR
        cagr_explanation = "Industry average growth rate"

    tam = tam or BENCHMARK_TAM
    sam = sam or BENCHMARK_SAM
    som = som or BENCHMARK_SOM
    cagr = cagr or BENCHMARK_CAGR

    response = {
        "tam": tam * 1_000_000,
        "sam": sam * 1_000_000,
        "som": som * 1_000_000,
        "cagr": cagr,
        "updatedAt": _now_iso(),
        "metrics": [
            {"name": "TAM", "value": tam, "unit": "M", "confidence": confidence},
            {"name": "SAM", "value": sam, "unit": "M", "confidence": confidence * 0.9},
            {"name": "SOM", "value": som, "unit": "M", "confidence": confidence * 0.8},
            {"name": "CAGR", "value": cagr, "unit": "%", "confidence": confidence * 0.85},
        ],
        "segments": [
            {"name": "Direct-to-Consumer", "share": 45, "size": sam * 0.45 * 1_000_000,
             "growth": cagr + 3, "penetration": 15, "priority": "High"},
            {"name": "B2B / Enterprise", "share": 30, "size": sam * 0.30 * 1_000_000,
             "growth": cagr, "penetration": 8, "priority": "Medium"},
            {"name": "Partnerships & Channels", "share": 25, "size": sam * 0.25 * 1_000_000,
             "growth": cagr - 2, "penetration": 5, "priority": "Low"},
        ],
        "assumptions": [
            "Market data based on recent industry reports and real-time search results",
            f"Serviceable segment estimated at {int(SAM_SHARE_OF_TAM * 100)}% of the total {scope} market",
            f"Conservative {int(SOM_SHARE_OF_SAM * 100)}% market share achievable within 5 years",
            "Growth rates reflect the average of published CAGR figures",
        ],
        "drivers": [
            f"Increasing demand for better {scope} solutions",
            "Digital adoption lowering customer acquisition costs",
            "Willingness to pay for specialized, tech-enabled products",
            "Shift of spending from incumbents to focused new entrants",
        ],
        "sources": data_points[:5],
        "profitLink": {
            "revenue_potential": som * 1_000_000,
            "price_point": PRICE_POINT,
            "customers_needed": round((som * 1_000_000) / (PRICE_POINT * 12)),
        },
    }
    if detailed:
        response["calculationDetails"] = {
            "method": method,
            "confidence": confidence,
            "dataPoints": data_points,
            "calculations": {
                "tam": {"value": tam, "explanation": tam_explanation},
                "sam": {"value": sam, "explanation": sam_explanation},
                "som": {"value": som, "explanation": f"Realistic capture in 5 years ({int(SOM_SHARE_OF_SAM * 100)}% of SAM)"},
                "cagr": {"value": cagr, "explanation": cagr_explanation},
            },
        }
    return response


def market_size_fallback() -> dict:
    """Fixed payload returned when market sizing fails outright."""
    return {
        "tam": BENCHMARK_TAM * 1_000_000,
        "sam": BENCHMARK_SAM * 1_000_000,
        "som": BENCHMARK_SOM * 1_000_000,
        "cagr": BENCHMARK_CAGR,
        "updatedAt": _now_iso(),
        "metrics": [
            {"name": "TAM", "value": BENCHMARK_TAM, "unit": "M", "confidence": 0.5},
            {"name": "SAM", "value": BENCHMARK_SAM, "unit": "M", "confidence": 0.5},
            {"name": "SOM", "value": BENCHMARK_SOM, "unit": "M", "confidence": 0.5},
            {"name": "CAGR", "value": BENCHMARK_CAGR, "unit": "%", "confidence": 0.5},
        ],
        "assumptions": ["Using industry benchmark data due to API error"],
        "drivers": ["Market data temporarily unavailable, using estimates"],
        "segments": [],
        "sources": [],
    }


# ─────────────────────────────────────────────────────────────────────────────
# Competitors
# ─────────────────────────────────────────────────────────────────────────────


async def analyze_competitors(idea: str, industry: str | None = None, session_id: str | None = None) -> dict:
    """
    Structured competitor landscape, grounded in web search snippets.
    Cached in llm_cache per (idea, industry) for COMPETITOR_CACHE_MINUTES.

    Raises LLMError / LLMValidationError.
    """
    cache_key = llm.make_cache_key([
        {"role": "user", "content": f"competitor-analysis|{idea.strip().lower()}|{(industry or '').strip().lower()}"}
    ])
    cached = await llm.get_cached_structured(cache_key, CompetitorAnalysis, session_id=session_id)
    if cached is not None:
        return cached.model_dump()

    results = await search.search(f"{idea} competitors alternatives {industry or ''}".strip(), num_results=8)
    messages = prompts.build_competitor_prompt(idea, industry, [asdict(r) for r in results])
    analysis = await llm.call_llm_structured(
        messages,
        CompetitorAnalysis,
        session_id=session_id,
        cache_ttl_minutes=COMPETITOR_CACHE_MINUTES,
        cache_key=cache_key,
    )
    return analysis.model_dump()


# ─────────────────────────────────────────────────────────────────────────────
# Trends
# ─────────────────────────────────────────────────────────────────────────────


def _trend_summary(growth: int, momentum: int, keyword: str, idea: str) -> str:
    if growth > 20:
        trend = "surged"
    elif growth > 0:
        trend = "grown steadily"
    elif growth < -20:
        trend = "declined"
    else:
        trend = "stayed stable"

    if momentum > 70:
        status = "a hot market"
    elif momentum > 40:
        status = "an emerging opportunity"
    else:
        status = "an early-stage market"

    sign = "+" if growth > 0 else ""
    validation = "strong market validation" if momentum > 50 else "growing market interest"
    return (
        f'Search interest in "{keyword}" has {trend} over the past 12 months ({sign}{growth}%), '
        f"indicating {status}. This aligns with the idea of {idea[:100]}, suggesting {validation}."
    )


async def fetch_trends(idea: str) -> dict:
    """Search-interest trend for the idea's keywords, derived from growth figures in search snippets."""
    keywords = extract_keywords(idea)
    batches = await asyncio.gather(
        *(search.search(f"{k} trends statistics", num_results=10) for k in keywords)
    )

    signals: list[float] = []
    related = []
    seen_titles = set()
    for keyword, results in zip(keywords, batches):
        for r in results:
            signals.extend(extract_growth_signals(f"{r.title}. {r.snippet}"))
            if r.title and r.title not in seen_titles and len(related) < 10:
                seen_titles.add(r.title)
                related.append({"query": r.title, "keyword": keyword, "url": r.url})

    growth = round(mean(signals)) if signals else 0
    momentum = max(0, min(100, 50 + growth))
    top_keyword = keywords[0] if keywords else idea[:50]

    log("INFO", "trends computed", keywords=len(keywords), signals=len(signals), growth=growth)

    return {
        "google_trends": {
            "keywords": keywords,
            "summary": _trend_summary(growth, momentum, top_keyword, idea),
            "metrics": {
                "top_keyword": top_keyword,
                "12m_growth": f"+{growth}%" if growth > 0 else f"{growth}%",
                "momentum_score": momentum,
                "data_points": len(signals),
            },
            "related_queries": related,
            "citations": [
                {
                    "source": "Google Trends",
                    "url": f"https://trends.google.com/trends/explore?q={quote(','.join(keywords))}",
                }
            ],
        },
        "updatedAt": _now_iso(),
        "confidence": "Medium" if signals else "Low",
    }
