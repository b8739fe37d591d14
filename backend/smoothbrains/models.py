"""
Single source of truth for all Pydantic models (requests, LLM structured outputs, SSE events).
Request bodies arrive in the frontend's camelCase; snake_case names are accepted too.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Score Requests
# -----------------------------------------------------------------------------


class ScoreRequest(CamelModel):
    idea: Optional[str] = None
    wrinkle_points: float = 0
    market_data: dict = {}
    competition_data: dict = {}
    sentiment_data: dict = {}
    chat_history: list[dict] = []
    user_answers: dict = {}

    @field_validator("market_data", "competition_data", "sentiment_data", "user_answers", mode="before")
    @classmethod
    def none_to_empty_dict(cls, value: object) -> object:
        return value if value is not None else {}

    @field_validator("chat_history", mode="before")
    @classmethod
    def none_to_empty_list(cls, value: object) -> object:
        return value if value is not None else []


class QuickScoreRequest(CamelModel):
    idea: Optional[str] = None
    market_size: Optional[str] = None
    competition: Optional[str] = None
    sentiment: Optional[str] = None

    @field_validator("market_size", "competition", "sentiment", mode="before")
    @classmethod
    def numbers_to_str(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class PMFRequest(BaseModel):
    idea_id: Optional[str] = None
    idea_text: Optional[str] = None
    user_context: dict = {}
    force_recalculate: bool = False


class LiveContextRequest(BaseModel):
    idea_id: Optional[str] = None
    idea_text: Optional[str] = None
    category: Optional[str] = None
    force_refresh: bool = False


# -----------------------------------------------------------------------------
# Market / Sentiment Requests
# -----------------------------------------------------------------------------


class MarketSizeRequest(CamelModel):
    idea: Optional[str] = None
    industry: Optional[str] = None
    geography: Optional[str] = None
    detailed: bool = True


class CompetitorRequest(CamelModel):
    idea: Optional[str] = None
    industry: Optional[str] = None


class IdeaRequest(CamelModel):
    idea: Optional[str] = None


class RedditSentimentRequest(CamelModel):
    idea: Optional[str] = None
    industry: Optional[str] = None
    geography: Optional[str] = None
    time_window: Optional[str] = None


class YouTubeRequest(CamelModel):
    query: Optional[str] = None
    industry: Optional[str] = None


class TwitterRequest(CamelModel):
    q: Optional[str] = None
    lang: str = "en"
    since: str = "7d"


# -----------------------------------------------------------------------------
# Chat Requests
# -----------------------------------------------------------------------------


class ChatSummaryRequest(CamelModel):
    messages: Optional[list[dict]] = None


class SessionNameRequest(CamelModel):
    context: Optional[str] = None


class WrinklePointsRequest(CamelModel):
    user_message: str = ""
    current_idea: Optional[str] = None
    conversation_history: list[dict] = []
    current_wrinkle_points: float = 0


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1)
    conversation_history: list[dict] = []
    idea: Optional[str] = None
    current_question: Optional[str] = None
    generate_pmf_analysis: bool = Field(False, alias="generatePMFAnalysis")


# -----------------------------------------------------------------------------
# Session / Dashboard Requests
# -----------------------------------------------------------------------------


class SessionCreateRequest(CamelModel):
    name: Optional[str] = None
    state: dict = {}


class SessionStateRequest(CamelModel):
    state: dict


class SessionRenameRequest(CamelModel):
    name: str


class TileSaveRequest(CamelModel):
    session_id: Optional[str] = None
    data: Any
    metadata: dict = {}
    expires_in_minutes: int = Field(30, gt=0)


class TileBatchRequest(CamelModel):
    session_id: Optional[str] = None
    tile_types: list[str] = []


class AnalyzeRequest(CamelModel):
    session_id: Optional[str] = None
    idea: str = Field(..., min_length=1, max_length=2000)
    industry: Optional[str] = None
    wrinkle_points: float = 0
    chat_history: list[dict] = []
    user_answers: dict = {}


class PageFetchRequest(CamelModel):
    urls: Any = None
    max_chars: int = Field(800, gt=0, le=20000)


# -----------------------------------------------------------------------------
# LLM Response Models (for structured output validation)
# -----------------------------------------------------------------------------


class QuickScoreResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    rationale: str = "Calculated based on market signals"


class NextStep(BaseModel):
    title: str
    description: str = ""
    priority: Optional[int] = None
    category: str = "general"
    estimated_effort: str = "medium"
    confidence: float = 0.8
    due_date: Optional[str] = None
    reasoning: Optional[str] = None
    success_metrics: list[str] = []


class PMFAnalysis(BaseModel):
    pmf_score: int = Field(..., ge=0, le=100)
    confidence: float = Field(0.5, ge=0, le=1)
    score_breakdown: dict[str, float] = {}
    reasoning: str = ""
    strengths: list[str] = []
    weaknesses: list[str] = []
    next_steps: list[NextStep] = []
    data_sources: list[str] = []


class CompetitorProfile(BaseModel):
    name: str
    description: str = ""
    funding_stage: Optional[str] = None
    funding_amount: Optional[str] = None
    user_base: Optional[str] = None
    valuation: Optional[str] = None
    strengths: list[str] = []
    weaknesses: list[str] = []
    traction_score: Optional[int] = None
    url: Optional[str] = None


class MarketLeader(BaseModel):
    name: str
    market_share: Optional[float] = None
    key_advantage: str = ""


class CompetitiveDynamics(BaseModel):
    market_concentration: str = "medium"
    entry_barriers: list[str] = []
    differentiation_opportunities: list[str] = []


class CompetitorAnalysis(BaseModel):
    top_competitors: list[CompetitorProfile]
    market_leader: Optional[MarketLeader] = None
    emerging_players: list[str] = []
    competitive_dynamics: CompetitiveDynamics = CompetitiveDynamics()
    insights: list[str] = []


class Tweet(BaseModel):
    text: str
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    author: Optional[str] = None
    url: Optional[str] = None


class TwitterSummary(BaseModel):
    volume: Optional[int] = Field(None, ge=0, le=100)
    sentiment: Optional[int] = Field(None, ge=-100, le=100)
    influencer_interest: Optional[int] = Field(None, ge=0, le=100)
    top_tweets: list[Tweet] = []
    trending_hashtags: list[str] = []
    key_opinions: list[str] = []
    sources: list[str] = []


class WrinkleEvaluation(BaseModel):
    point_change: float
    explanation: str = "Making progress with your idea!"


class ChatCompetitor(BaseModel):
    name: str
    market_share: Optional[float] = None
    funding: Optional[str] = None
    strengths: list[str] = []
    weaknesses: list[str] = []


class ChatMarketSize(BaseModel):
    current: str = ""
    growth: str = ""
    potential: str = ""


class Refinement(BaseModel):
    title: str
    description: str = ""
    impact: str = "medium"
    effort: str = "medium"


class ChatPMFAnalysis(BaseModel):
    pmf_score: int = Field(..., ge=0, le=100)
    score_breakdown: dict[str, float] = {}
    competitors: list[ChatCompetitor] = []
    market_size: ChatMarketSize = ChatMarketSize()
    refinements: list[Refinement] = []


class MarketContext(BaseModel):
    size_estimate: str = "Unknown"
    growth_rate: str = "Unknown"
    key_trends: list[str] = []
    opportunities: list[str] = []


class CompetitiveLandscape(BaseModel):
    main_competitors: list[str] = []
    competitive_advantage: str = "Unknown"
    market_positioning: str = "Unknown"


class SentimentContext(BaseModel):
    overall_sentiment: str = "neutral"
    confidence: float = Field(0.5, ge=0, le=1)
    key_insights: list[str] = []


class LiveContextAnalysis(BaseModel):
    market_analysis: MarketContext = MarketContext()
    competitive_landscape: CompetitiveLandscape = CompetitiveLandscape()
    sentiment_analysis: SentimentContext = SentimentContext()
    trending_topics: list[str] = []
    risk_factors: list[str] = []
    recommendations: list[str] = []


# -----------------------------------------------------------------------------
# SSE Event Models
# -----------------------------------------------------------------------------


class AnalysisStartedEvent(BaseModel):
    type: str = "analysis_started"
    session_id: Optional[str] = None
    tiles: list[str]


class TileReadyEvent(BaseModel):
    type: str = "tile_ready"
    tile_type: str
    data: Any


class TileErrorEvent(BaseModel):
    type: str = "tile_error"
    tile_type: str
    error: str
    error_code: str


class ScoreReadyEvent(BaseModel):
    type: str = "score_ready"
    score: dict


class AnalysisCompleteEvent(BaseModel):
    type: str = "analysis_complete"
    session_id: Optional[str] = None
    tiles_ready: list[str]
    tiles_failed: list[str]
