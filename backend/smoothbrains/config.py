"""
SmoothBrains Backend: Central Configuration

All environment variables and LLM settings live here.
Import `settings`, `LLM_CONFIG`, `log`, and `generate_error_code` from this module.
Do not read `os.environ` anywhere else.
"""

import uuid
from datetime import datetime, timezone

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All environment variables. Loaded from .env or the deploy environment."""

    # LLM Providers
    groq_api_key: str
    openai_api_key: str = ""          # Optional fallback
    gemini_api_key: str = ""          # Optional fallback

    # Search
    tavily_api_key: str              # Tavily Search API - primary web search
    serper_api_key: str = ""         # Serper API - fallback search provider

    # Social sources
    reddit_client_id: str = ""
    reddit_client_secret: str = ""
    youtube_api_key: str = ""

    # Scraping
    jina_api_key: str = ""            # Optional - Jina works without key at lower rate

    # Database
    supabase_url: str
    supabase_service_key: str

    # App
    environment: str = "development"  # "development" | "production" | "test"
    cors_origins: str = "http://localhost:5173"  # Comma-separated for multiple origins
    rate_limit: str = "30/minute"     # Applied to LLM-backed endpoints

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton - import this everywhere
settings = Settings()


# ──────────────────────────────────────────────────────
# Logging Utilities
# ──────────────────────────────────────────────────────

def generate_error_code() -> str:
    """Generate a short, user-friendly error reference code.

    Format: 'SB-' followed by 6 uppercase hex characters.
    Example: 'SB-3F8A2C'

    The same code is logged on the backend AND returned to the client, so the
    user can quote it and the team can grep logs for it.
    """
    return f"SB-{uuid.uuid4().hex[:6].upper()}"


def log(level: str, message: str, **context) -> None:
    """Structured print-based logger.

    Every log line follows the format:
        [ISO_TIMESTAMP] [LEVEL] message | key1=value1 key2=value2

    Args:
        level: One of "INFO", "WARN", "ERROR".
        message: Human-readable description of what happened.
        **context: Arbitrary key-value pairs. Include session_id or idea_id when available.

    Usage:
        log("INFO", "tile computed", session_id="abc-123", tile_type="market_size")
        log("ERROR", "llm call failed", provider="groq/llama-3.3-70b-versatile",
            error_code="SB-3F8A2C", error=str(e))
    """
    ts = datetime.now(timezone.utc).isoformat()
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    print(f"[{ts}] [{level}] {message} | {ctx}", flush=True)


# ──────────────────────────────────────────────────────
# LLM Configuration
# ──────────────────────────────────────────────────────

LLM_CONFIG = {
    "persona": {
        "name": "SmoothBrains",
        "system_prompt": (
            "You are SmoothBrains, a startup analyst that helps founders pressure-test ideas "
            "for product-market fit.\n\n"
            "Guidelines:\n"
            "- Be concise, specific and honest. Founders need signal, not flattery.\n"
            "- Ground market claims in the data you are given. If a number is unknown, say so - never fabricate sources.\n"
            "- Output strictly valid JSON when instructed. No markdown code fences, no explanation text outside the JSON.\n"
            "- Stay within your domain: startup ideas, markets, competitors, customers and go-to-market.\n"
            "- When judging an idea, name both its strengths and its weaknesses."
        ),
    },
    "temperature": 0.3,
    "max_tokens": 2000,
    "fallback_chain": [
        "groq/llama-3.3-70b-versatile",  # Primary - fast, cheap
        "openai/gpt-4o-mini",            # Fallback 1
        "gemini/gemini-2.0-flash",       # Fallback 2 - last resort
    ],
}

# Dashboard tiles expire after this many minutes unless the caller says otherwise
DASHBOARD_CACHE_MINUTES = 30

# Stored PMF scores younger than this are served without recomputation
PMF_SCORE_MAX_AGE_MINUTES = 60

# Structured competitor analyses are cached this long in llm_cache
COMPETITOR_CACHE_MINUTES = 24 * 60

# Live idea context (market, competitor, sentiment, trends) is refreshed after this many hours
LIVE_CONTEXT_TTL_HOURS = 24
