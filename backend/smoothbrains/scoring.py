"""
SmoothBrains Backend: Composite Score Engine

Pure functions: turn raw dashboard blobs into ScoreFactors, apply the strict
piecewise curves per factor, weight, sum and bucket into a category.
No I/O here - every function is deterministic.
"""

import re
from dataclasses import asdict, dataclass, field


@dataclass
class ScoreFactors:
    wrinkle_points: float = 0.0        # 0-100+ (depth of the user's understanding)
    market_size: float = 0.0           # in billions USD
    competition_level: float = 5.0     # 1-10 (1 = low competition)
    growth_rate: float = 10.0          # CAGR percentage
    sentiment: float = 50.0            # 0-100
    execution_difficulty: float = 5.0  # 1-10 (1 = easy)
    product_market_fit: float = 50.0   # 0-100
    conversation_depth: int = 0        # number of user messages
    idea_refinement: float = 20.0      # 0-100
    user_answer_quality: float = 30.0  # 0-100


@dataclass
class ScoreResult:
    score: int
    category: str
    explanation: str
    breakdown: dict[str, float] = field(default_factory=dict)


WEIGHTS = {
    "wrinklePoints": 0.25,
    "marketOpportunity": 0.20,
    "productMarketFit": 0.20,
    "executionViability": 0.15,
    "ideaRefinement": 0.10,
    "sentiment": 0.10,
}

# Users who barely engaged cannot score above this
LOW_WRINKLE_THRESHOLD = 10
LOW_WRINKLE_CAP = 30

# (minimum score, category, explanation), checked top-down
CATEGORIES = [
    (95, "FAANG Potential",
     "This idea shows potential to become a dominant market leader like Microsoft, Google, or Amazon. "
     "Exceptional market opportunity combined with deep understanding and strong execution potential."),
    (90, "Unicorn Trajectory",
     "Strong indicators for $1B+ valuation potential. The combination of massive market, strong PMF signals, "
     "and execution clarity rivals successful unicorns."),
    (80, "Major Success Potential",
     "Shows characteristics of companies that achieve $100M+ valuations. Strong fundamentals with room for "
     "explosive growth."),
    (70, "Strong Business",
     "Solid foundation for a $10M+ business. Good market opportunity with reasonable execution path."),
    (60, "Viable Startup",
     "Has potential to become a profitable business but needs refinement in key areas to achieve significant scale."),
    (40, "Early Stage",
     "Shows promise but requires significant development in market understanding, product-market fit, "
     "or execution strategy."),
    (0, "Concept Phase",
     "Needs substantial work on fundamentals. Focus on deepening market understanding and validating core "
     "assumptions."),
]

COMPLEX_KEYWORDS = ["ai", "machine learning", "blockchain", "quantum", "autonomous", "platform"]
SIMPLE_KEYWORDS = ["app", "website", "tool", "service", "marketplace"]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ─────────────────────────────────────────────────────────────────────────────
# Per-factor curves
# ─────────────────────────────────────────────────────────────────────────────


def wrinkle_curve(points: float) -> float:
    """Hard to climb: 20 pts -> 30, 50 pts -> 60, 100 pts -> 80, 200+ pts -> 100."""
    points = max(points, 0.0)
    if points <= 20:
        score = points / 20 * 30
    elif points <= 50:
        score = 30 + (points - 20) / 30 * 30
    elif points <= 100:
        score = 60 + (points - 50) / 50 * 20
    else:
        score = 80 + min((points - 100) / 100 * 20, 20)
    return clamp(score, 0, 100)


def market_curve(market_size: float, growth_rate: float, competition_level: float) -> float:
    """Growth-adjusted market size per unit of competition, banded in $B."""
    potential = (max(market_size, 0.0) * (1 + growth_rate / 100)) / max(competition_level, 1)
    if potential < 1:
        score = potential * 20
    elif potential < 10:
        score = 20 + (potential - 1) / 9 * 20
    elif potential < 50:
        score = 40 + (potential - 10) / 40 * 20
    elif potential < 100:
        score = 60 + (potential - 50) / 50 * 20
    else:
        score = 80 + min((potential - 100) / 100 * 20, 20)
    return clamp(score, 0, 100)


def pmf_curve(pmf: float) -> float:
    if pmf < 30:
        score = pmf * 0.5
    elif pmf < 70:
        score = 15 + (pmf - 30) / 40 * 35
    else:
        score = 50 + (pmf - 70) / 30 * 50
    return clamp(score, 0, 100)


def execution_curve(difficulty: float) -> float:
    return clamp((11 - difficulty) / 10 * 100, 0, 100)


def refinement_curve(idea_refinement: float, conversation_depth: int) -> float:
    multiplier = min(max(conversation_depth, 0) / 10, 1)
    return clamp(idea_refinement * multiplier, 0, 100)


def sentiment_curve(sentiment: float) -> float:
    if sentiment < 40:
        score = sentiment * 0.5
    elif sentiment < 70:
        score = 20 + (sentiment - 40) / 30 * 30
    else:
        score = 50 + (sentiment - 70) / 30 * 50
    return clamp(score, 0, 100)


# ─────────────────────────────────────────────────────────────────────────────
# Composite
# ─────────────────────────────────────────────────────────────────────────────


def categorize(score: float) -> tuple[str, str]:
    for minimum, category, explanation in CATEGORIES:
        if score >= minimum:
            return category, explanation
    return CATEGORIES[-1][1], CATEGORIES[-1][2]


def calculate_strict_score(factors: ScoreFactors) -> ScoreResult:
    """
    Weighted composite of the six factor curves, 0-100.

    100 = FAANG-level potential, 90+ = unicorn, 80+ = $100M+, 70+ = $10M+,
    60+ = viable, below 60 needs significant work. Scores are capped at 30
    while the user has fewer than 10 wrinkle points.
    """
    breakdown = {
        "wrinklePoints": wrinkle_curve(factors.wrinkle_points),
        "marketOpportunity": market_curve(factors.market_size, factors.growth_rate, factors.competition_level),
        "productMarketFit": pmf_curve(factors.product_market_fit),
        "executionViability": execution_curve(factors.execution_difficulty),
        "ideaRefinement": refinement_curve(factors.idea_refinement, factors.conversation_depth),
        "sentiment": sentiment_curve(factors.sentiment),
    }

    total = round(sum(breakdown[name] * weight for name, weight in WEIGHTS.items()))
    if factors.wrinkle_points < LOW_WRINKLE_THRESHOLD:
        total = min(total, LOW_WRINKLE_CAP)
    final = int(clamp(total, 0, 100))

    category, explanation = categorize(final)
    return ScoreResult(score=final, category=category, explanation=explanation, breakdown=breakdown)


# ─────────────────────────────────────────────────────────────────────────────
# Input parsing
# ─────────────────────────────────────────────────────────────────────────────


def _to_number(text: str) -> float | None:
    match = re.search(r"\d+(?:\.\d+)?", text.replace(",", ""))
    return float(match.group(0)) if match else None


def parse_market_size(value) -> float:
    """Parse '$2.5B', '500M', '1.2T', '300K' or a bare number into billions."""
    if value is None or value == "" or value == "0":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value)
    num = _to_number(text)
    if num is None:
        return 0.0
    upper = text.upper()
    if "T" in upper:
        return num * 1000
    if "B" in upper:
        return num
    if "M" in upper:
        return num / 1000
    if "K" in upper:
        return num / 1_000_000
    return num


def parse_competition_level(value) -> float:
    if isinstance(value, bool):
        return 5.0
    if isinstance(value, (int, float)):
        return clamp(float(value), 1, 10)
    if isinstance(value, str):
        lowered = value.lower()
        if "low" in lowered:
            return 3.0
        if "high" in lowered:
            return 8.0
        return 5.0
    return 5.0


def parse_growth_rate(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) or 10.0
    num = _to_number(str(value or ""))
    return num or 10.0


def parse_sentiment(value) -> float:
    """0-1 values are fractions, anything above 1 is already a percentage."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 50.0
    if 0 <= value <= 1:
        return float(round(value * 100))
    if value > 1:
        return clamp(float(value), 0, 100)
    return 50.0


# ─────────────────────────────────────────────────────────────────────────────
# Heuristic estimators
# ─────────────────────────────────────────────────────────────────────────────


def _user_messages(chat_history: list[dict]) -> list[dict]:
    return [m for m in chat_history or [] if isinstance(m, dict) and m.get("type") == "user"]


def estimate_execution_difficulty(idea: str | None) -> float:
    difficulty = 5.0
    lowered = (idea or "").lower()
    for keyword in COMPLEX_KEYWORDS:
        if keyword in lowered:
            difficulty += 1
    for keyword in SIMPLE_KEYWORDS:
        if keyword in lowered:
            difficulty -= 0.5
    return clamp(difficulty, 1, 10)


def estimate_pmf(market_data: dict, sentiment_data: dict, competition_data: dict) -> float:
    pmf = 50.0
    if parse_market_size(market_data.get("TAM") or market_data.get("tam") or "0") > 10:
        pmf += 10
    if parse_sentiment(sentiment_data.get("score", 0.5)) > 70:
        pmf += 15
    competition = parse_competition_level(competition_data.get("level", 5))
    if 3 <= competition <= 7:
        pmf += 10
    if competition >= 9 or competition <= 1:
        pmf -= 10
    return clamp(pmf, 0, 100)


def calculate_idea_refinement(idea: str | None, chat_history: list[dict], user_answers: dict) -> float:
    refinement = 20.0
    idea = idea or ""
    if len(idea) > 100:
        refinement += 10
    if len(idea) > 300:
        refinement += 10

    messages = _user_messages(chat_history)
    avg_length = sum(len(m.get("content") or "") for m in messages) / (len(messages) or 1)
    if avg_length > 50:
        refinement += 15

    refinement += min(len(user_answers or {}) * 5, 25)
    return min(refinement, 100.0)


def evaluate_answer_quality(user_answers: dict, chat_history: list[dict]) -> float:
    quality = 30.0
    for answer in (user_answers or {}).values():
        if isinstance(answer, str) and len(answer) > 50:
            quality += 5
    if any(re.search(r"\d+", m.get("content") or "") for m in _user_messages(chat_history)):
        quality += 15
    return min(quality, 100.0)


def extract_factors(
    idea: str | None,
    wrinkle_points: float = 0,
    market_data: dict | None = None,
    competition_data: dict | None = None,
    sentiment_data: dict | None = None,
    chat_history: list[dict] | None = None,
    user_answers: dict | None = None,
) -> ScoreFactors:
    """Build ScoreFactors from the loosely-shaped blobs the dashboard sends."""
    market_data = market_data or {}
    competition_data = competition_data or {}
    sentiment_data = sentiment_data or {}
    chat_history = chat_history or []
    user_answers = user_answers or {}

    return ScoreFactors(
        wrinkle_points=float(wrinkle_points or 0),
        market_size=parse_market_size(market_data.get("TAM") or market_data.get("tam") or "0"),
        competition_level=parse_competition_level(
            competition_data.get("level") or competition_data.get("score") or 5
        ),
        growth_rate=parse_growth_rate(
            market_data.get("growth_rate") or market_data.get("growthRate") or "10%"
        ),
        sentiment=parse_sentiment(sentiment_data.get("score") or sentiment_data.get("sentiment") or 50),
        execution_difficulty=estimate_execution_difficulty(idea),
        product_market_fit=estimate_pmf(market_data, sentiment_data, competition_data),
        conversation_depth=len(_user_messages(chat_history)),
        idea_refinement=calculate_idea_refinement(idea, chat_history, user_answers),
        user_answer_quality=evaluate_answer_quality(user_answers, chat_history),
    )


def generate_recommendations(result: ScoreResult, factors: ScoreFactors) -> list[str]:
    recommendations = []
    if factors.wrinkle_points < 30:
        recommendations.append(
            "Focus on earning more Wrinkle Points by providing detailed, thoughtful answers to deepen your understanding"
        )
    if result.breakdown["marketOpportunity"] < 50:
        recommendations.append("Research and validate a larger market opportunity or identify high-growth segments")
    if result.breakdown["productMarketFit"] < 60:
        recommendations.append("Conduct user interviews and validate product-market fit with potential customers")
    if result.breakdown["executionViability"] < 70:
        recommendations.append("Simplify the execution strategy or build a stronger technical team")
    if result.breakdown["sentiment"] < 50:
        recommendations.append("Test market reception with surveys or landing pages to improve sentiment signals")
    return recommendations


def factors_to_dict(factors: ScoreFactors) -> dict:
    """camelCase view of the factors, matching the dashboard's field names."""
    data = asdict(factors)
    return {_camel(k): v for k, v in data.items()}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


# ─────────────────────────────────────────────────────────────────────────────
# Quick score (heuristic fallback when the LLM is unavailable)
# ─────────────────────────────────────────────────────────────────────────────


def quick_score(market_size: str | None, competition: str | None, sentiment: str | None) -> int:
    score = 50
    if market_size and "B" in market_size:
        score += 15
    elif market_size and "M" in market_size:
        score += 5

    if competition == "Low":
        score += 20
    elif competition == "High":
        score -= 20

    sentiment_value = _to_number(str(sentiment)) if sentiment else None
    if sentiment_value is not None:
        if sentiment_value > 70:
            score += 15
        elif sentiment_value < 30:
            score -= 15

    return int(clamp(score, 0, 100))


def score_trend(score: float) -> str:
    if score > 60:
        return "positive"
    if score > 40:
        return "neutral"
    return "negative"
