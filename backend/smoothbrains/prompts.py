"""
SmoothBrains Backend: LLM Prompt Templates

All prompts are defined here. Persona system prompt is injected in llm.py.
Fallback copy used when the LLM is unavailable also lives here.
"""

import json
import random


def _format_results(results: list[dict]) -> str:
    return json.dumps(results, indent=2, ensure_ascii=False)


# -----------------------------------------------------------------------------
# 1. build_quick_score_prompt
# -----------------------------------------------------------------------------

QUICK_SCORE_PROMPT = """
# Role
You are the "Quick Scorer" module for SmoothBrains. Calculate a SmoothBrains score (0-100) for a startup idea from three market signals.

# Guidelines
- Large market + low competition + positive sentiment = 80-100
- Medium market + medium competition + mixed sentiment = 40-70
- Small market + high competition + negative sentiment = 0-40

# Output Format
Return ONLY a JSON object, no markdown:
{"score": 0-100, "rationale": "one sentence explanation"}
"""


def build_quick_score_prompt(
    idea: str | None,
    market_size: str | None,
    competition: str | None,
    sentiment: str | None,
) -> list[dict]:
    """Expected output schema: QuickScoreResult"""
    content = (
        QUICK_SCORE_PROMPT
        + f"\n\n# Idea\n{idea or 'Not specified'}"
        + f"\n\n# Signals\nMarket Size: {market_size or 'Unknown'}\n"
        f"Competition: {competition or 'Medium'}\n"
        f"Sentiment: {sentiment or '50%'}"
    )
    return [{"role": "user", "content": content}]


# -----------------------------------------------------------------------------
# 2. build_pmf_prompt
# -----------------------------------------------------------------------------

PMF_PROMPT = """
# Role
You are a senior startup advisor. Analyze the startup idea below and produce a Product-Market Fit (PMF) score with the three most critical next steps.

# Scoring Criteria (each 0-100)
- market_size: Size and accessibility of the target market
- competition: Competitive advantage and differentiation
- execution: Ability to execute based on available data
- timing: Market timing and readiness
- team: Team composition and experience (50 if unknown)
- product_uniqueness: How differentiated the solution is
- customer_validation: Evidence of customer demand

pmf_score is a weighted average with market_size and customer_validation weighted highest.

# Output Format
Return ONLY a single JSON object. No markdown code fences. No trailing commas.

{
  "pmf_score": 0-100,
  "confidence": 0.0-1.0,
  "score_breakdown": {"market_size": 0, "competition": 0, "execution": 0, "timing": 0, "team": 0, "product_uniqueness": 0, "customer_validation": 0},
  "reasoning": "Detailed explanation of the score",
  "strengths": ["..."],
  "weaknesses": ["..."],
  "next_steps": [
    {
      "title": "Conduct Customer Interviews",
      "description": "Interview 20 potential customers to validate core assumptions",
      "priority": 1,
      "category": "market_research",
      "estimated_effort": "low | medium | high",
      "confidence": 0.9,
      "due_date": "YYYY-MM-DD or null",
      "reasoning": "Why this action is critical now",
      "success_metrics": ["..."]
    }
  ],
  "data_sources": ["..."]
}

# Rules
- Exactly 3 next_steps, specific and actionable.
- Ground the score in the context provided. Where context is empty, say so in reasoning and lower confidence.
"""


def build_pmf_prompt(idea_text: str, live_context: dict, feedback: list[dict], user_context: dict) -> list[dict]:
    """Expected output schema: PMFAnalysis"""
    parts = [PMF_PROMPT]
    parts.append(f"\n\n# Idea\n{idea_text}")
    parts.append(f"\n\n# Market Context\n{json.dumps(live_context.get('market') or {})}")
    parts.append(f"\n\n# Competitive Landscape\n{json.dumps(live_context.get('competitor') or {})}")
    parts.append(f"\n\n# Sentiment Data\n{json.dumps(live_context.get('sentiment') or {})}")
    parts.append(f"\n\n# Trends\n{json.dumps(live_context.get('trends') or {})}")
    parts.append(f"\n\n# User Feedback\n{json.dumps(feedback, default=str)}")
    if user_context:
        parts.append(f"\n\n# Founder Context\n{json.dumps(user_context)}")
    return [{"role": "user", "content": "".join(parts)}]


# -----------------------------------------------------------------------------
# 3. build_competitor_prompt
# -----------------------------------------------------------------------------

COMPETITOR_PROMPT = """
# Role
You are a competitive intelligence expert. Analyze the competitive landscape for the given idea using the web search results provided plus your own knowledge.

# Output Format
Return ONLY a single JSON object. No markdown code fences. No trailing commas.

{
  "top_competitors": [
    {
      "name": "Company Name",
      "description": "brief description",
      "funding_stage": "Seed / Series A / ... / IPO or null",
      "funding_amount": "$XX M or null",
      "user_base": "XX K/M users or null",
      "valuation": "$XX M/B or null",
      "strengths": ["..."],
      "weaknesses": ["..."],
      "traction_score": 0-100,
      "url": "https://... or null"
    }
  ],
  "market_leader": {"name": "Leader Name", "market_share": 35, "key_advantage": "description"},
  "emerging_players": ["Player1", "Player2"],
  "competitive_dynamics": {
    "market_concentration": "high | medium | low",
    "entry_barriers": ["..."],
    "differentiation_opportunities": ["..."]
  },
  "insights": ["..."]
}

# Rules
- 3-6 top competitors, real companies only. Do NOT invent URLs: use null if unknown.
- Funding and user figures only when you are confident; otherwise null.
"""


def build_competitor_prompt(idea: str, industry: str | None, search_results: list[dict]) -> list[dict]:
    """Expected output schema: CompetitorAnalysis"""
    parts = [COMPETITOR_PROMPT]
    parts.append(f'\n\n# Idea\n"{idea}" in the {industry or "general"} industry.')
    if search_results:
        parts.append(f"\n\n# Web Search Results\n{_format_results(search_results)}")
    else:
        parts.append("\n\n# Web Search Results\nNo external data provided. Use your knowledge of the space.")
    return [{"role": "user", "content": "".join(parts)}]


# -----------------------------------------------------------------------------
# 4. build_twitter_prompt
# -----------------------------------------------------------------------------

TWITTER_PROMPT = """
# Role
You are a Twitter/X analyst. Summarize what people on Twitter/X are saying about a topic, using ONLY the search results provided (each is a real x.com or twitter.com page).

# Output Format
Return ONLY a single JSON object. No markdown code fences.

{
  "volume": 0-100,
  "sentiment": -100 to 100,
  "influencer_interest": 0-100,
  "top_tweets": [{"text": "...", "likes": 0, "retweets": 0, "replies": 0, "author": "@handle or null", "url": "https://x.com/..."}],
  "trending_hashtags": ["#tag"],
  "key_opinions": ["..."],
  "sources": ["https://x.com/..."]
}

# Rules
- Only quote tweets that appear in the results. Engagement numbers you cannot see are 0.
- sources must be URLs from the results.
"""


def build_twitter_prompt(q: str, lang: str, since: str, search_results: list[dict]) -> list[dict]:
    """Expected output schema: TwitterSummary"""
    content = (
        TWITTER_PROMPT
        + f'\n\n# Topic\n"{q}" (language: {lang}, window: last {since})'
        + f"\n\n# Search Results\n{_format_results(search_results)}"
    )
    return [{"role": "user", "content": content}]


# -----------------------------------------------------------------------------
# 5. build_summary_prompt
# -----------------------------------------------------------------------------

SUMMARY_SYSTEM_PROMPT = """You are a startup idea analyzer. Read a conversation about a startup idea and write a 2-sentence summary.

RULES:
1. EXACTLY 2 sentences.
2. First sentence: WHAT the startup does (the main product/service).
3. Second sentence: the PROBLEM it solves or the VALUE it provides.
4. Be specific, using details from the conversation. 15-25 words per sentence.
5. Focus on the core business concept, not implementation details.

Return only the 2-sentence summary, no explanations."""

FALLBACK_SUMMARY = (
    "A startup platform focused on innovative solutions. "
    "It helps users solve key challenges through technology and innovation."
)


def build_summary_prompt(conversation_text: str) -> list[dict]:
    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Analyze this conversation and create a 2-sentence startup idea summary:\n\n{conversation_text}",
        },
    ]


# -----------------------------------------------------------------------------
# 6. build_session_name_prompt
# -----------------------------------------------------------------------------

FALLBACK_SESSION_NAMES = ["Ideas", "Strategy", "Innovation", "Planning", "Concept", "Vision", "Growth", "Analysis"]


def build_session_name_prompt(context: str | None) -> list[dict]:
    return [
        {"role": "system", "content": "You generate a single descriptive word for an idea. Return ONLY one word, nothing else."},
        {"role": "user", "content": f"Give one word that describes the idea: {context or 'startup brainstorming'}"},
    ]


def get_fallback_session_name() -> str:
    return random.choice(FALLBACK_SESSION_NAMES)


# -----------------------------------------------------------------------------
# 7. build_wrinkle_prompt
# -----------------------------------------------------------------------------

WRINKLE_PROMPT = """You are a brain wrinkle evaluator. Evaluate the QUALITY of the USER'S MESSAGE, not the assistant's response.

CONTEXT:
- User currently has {points} wrinkle points
- User's current idea: "{idea}"
- User's message to evaluate: "{message}"
- Recent conversation: {history}

EVALUATE THE USER'S INPUT ON:
1. Specificity: concrete details, numbers, examples
2. Strategic thinking: business acumen, market understanding
3. Evidence: research, testing, customer feedback
4. Depth of refinement: how much the idea improved
5. Problem-solving: challenges or opportunities addressed

SCORING:
- Exceptional insights with data/evidence: +3.0 to +5.0
- Strong strategic thinking with specifics: +2.0 to +3.0
- Good elaboration and refinement: +1.0 to +2.0
- Basic contribution: +0.5 to +1.0
- Minimal input but trying: +0.1 to +0.5
- Off-topic: +0.1 minimum

ALWAYS return positive points (minimum 0.1). Use decimals for nuance.
BE STRICT. Higher point totals should earn fewer points for the same quality of thinking.

Return ONLY a JSON object:
{{"point_change": 1.5, "explanation": "Good market validation insight - shows deeper understanding of customer needs"}}"""

WRINKLE_FALLBACK_EXPLANATIONS = [
    "Brain processing your idea refinement!",
    "Making progress with your idea!",
]


def build_wrinkle_prompt(
    user_message: str,
    current_idea: str | None,
    conversation_history: list[dict],
    current_wrinkle_points: float,
) -> list[dict]:
    """Expected output schema: WrinkleEvaluation"""
    content = WRINKLE_PROMPT.format(
        points=current_wrinkle_points,
        idea=current_idea or "Not yet defined",
        message=user_message,
        history=json.dumps(conversation_history[-6:], default=str),
    )
    return [{"role": "system", "content": content}]


# -----------------------------------------------------------------------------
# 8. build_chat_pmf_prompt
# -----------------------------------------------------------------------------

CHAT_PMF_PROMPT = """
# Role
You are a venture capital analyst providing data-driven Product-Market Fit analysis. Use the web search results as real market data.

# Output Format
Return ONLY a single JSON object. No markdown code fences.

{
  "pmf_score": 0-100,
  "score_breakdown": {"demand": 0, "pain_intensity": 0, "competition_gap": 0, "differentiation": 0, "distribution": 0},
  "competitors": [{"name": "real competitor", "market_share": 0, "funding": "$XX M or null", "strengths": ["..."], "weaknesses": ["..."]}],
  "market_size": {"current": "$X B", "growth": "X% CAGR", "potential": "TAM/SAM/SOM breakdown"},
  "refinements": [{"title": "specific improvement", "description": "how, with metrics", "impact": "high | medium | low", "effort": "low | medium | high"}]
}
"""

PMF_FOLLOW_UP_SUGGESTIONS = [
    "View detailed market analysis",
    "Explore competitor insights",
    "Review improvement suggestions",
    "Check target demographics",
]


def build_chat_pmf_prompt(idea: str, search_results: list[dict]) -> list[dict]:
    """Expected output schema: ChatPMFAnalysis"""
    parts = [CHAT_PMF_PROMPT, f'\n\n# Startup Idea\n"{idea}"']
    if search_results:
        parts.append(f"\n\n# Web Search Results\n{_format_results(search_results)}")
    return [{"role": "user", "content": "".join(parts)}]


# -----------------------------------------------------------------------------
# 9. build_chat_prompt
# -----------------------------------------------------------------------------

CHAT_SYSTEM_PROMPT = """You are SmoothBrains, an expert Product-Market Fit advisor helping a founder think through their startup idea.

{idea_line}
{question_line}
{market_line}

Be conversational, specific and concise (under 200 words). Ask one sharp follow-up question when useful.

After your reply, on its own final line, output a JSON array of exactly 4 short follow-up suggestions (max 15 words each) the founder could send next, e.g. ["...", "...", "...", "..."]."""

NO_IDEA_SUGGESTIONS = [
    "AI-powered productivity tool for remote teams",
    "Sustainable fashion marketplace for Gen Z",
    "Mental health support platform for students",
    "Carbon footprint tracker with rewards",
]

QUESTION_KEYWORDS = [
    ("problem", "problems pain points"),
    ("audience", "target market demographics"),
    ("value", "unique value proposition benefits"),
    ("monetization", "pricing business model revenue"),
    ("competitor", "competitors alternatives market analysis"),
]


def build_chat_search_query(idea: str, question: str | None) -> str:
    """Web search query that matches what the current question is about."""
    lowered = (question or "").lower()
    focus = next((q for key, q in QUESTION_KEYWORDS if key in lowered), "market analysis")
    return f"{idea} {focus}"


def build_chat_prompt(
    message: str,
    conversation_history: list[dict],
    idea: str | None,
    current_question: str | None,
    search_results: list[dict],
) -> list[dict]:
    system = CHAT_SYSTEM_PROMPT.format(
        idea_line=f'The founder\'s idea is: "{idea}"' if idea else "Help the founder develop and analyze their product idea.",
        question_line=f'They are answering: "{current_question}"' if current_question else "",
        market_line=f"Market data from the web:\n{_format_results(search_results)}" if search_results else "",
    )
    return [{"role": "system", "content": system}, *conversation_history, {"role": "user", "content": message}]


def get_fallback_suggestions(idea: str | None) -> list[str]:
    if not idea:
        return list(NO_IDEA_SUGGESTIONS)
    return [
        f"Analyze {idea} market opportunity",
        f"Find {idea} target customers",
        f"Research {idea} competitors",
        f"Validate {idea} business model",
    ]


# -----------------------------------------------------------------------------
# 10. build_live_context_prompt
# -----------------------------------------------------------------------------

LIVE_CONTEXT_PROMPT = """
# Role
You are a business analyst. Structure the raw market, competitor, sentiment and trends data gathered for a startup idea.

# Output Format
Return ONLY a single JSON object. No markdown code fences. No explanations.

{
  "market_analysis": {"size_estimate": "string", "growth_rate": "string", "key_trends": ["string"], "opportunities": ["string"]},
  "competitive_landscape": {"main_competitors": ["string"], "competitive_advantage": "string", "market_positioning": "string"},
  "sentiment_analysis": {"overall_sentiment": "positive | neutral | negative", "confidence": 0.0-1.0, "key_insights": ["string"]},
  "trending_topics": ["string"],
  "risk_factors": ["string"],
  "recommendations": ["string"]
}
"""


def build_live_context_prompt(idea_text: str, category: str | None, raw_context: dict) -> list[dict]:
    """Expected output schema: LiveContextAnalysis"""
    parts = [LIVE_CONTEXT_PROMPT, f'\n\n# Idea\n"{idea_text}"']
    if category:
        parts.append(f"\n\n# Category\n{category}")
    parts.append(f"\n\n# Market Data\n{json.dumps(raw_context.get('market') or {}, default=str)}")
    parts.append(f"\n\n# Competitor Data\n{json.dumps(raw_context.get('competitor') or {}, default=str)}")
    parts.append(f"\n\n# Sentiment Data\n{json.dumps(raw_context.get('sentiment') or {}, default=str)}")
    parts.append(f"\n\n# Trends Data\n{json.dumps(raw_context.get('trends') or {}, default=str)}")
    return [{"role": "user", "content": "".join(parts)}]
