"""
SmoothBrains Backend: Shared Test Fixtures

Provides mocked versions of external services (LLM, search, DB, scraper, auth)
for deterministic, fast unit tests.
"""

import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

# Ensure smoothbrains is importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


# -----------------------------------------------------------------------------
# Environment Setup (before importing smoothbrains modules)
# -----------------------------------------------------------------------------

os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("TAVILY_API_KEY", "test-tavily-key")
os.environ.setdefault("SERPER_API_KEY", "test-serper-key")
os.environ.setdefault("JINA_API_KEY", "test-jina-key")
os.environ.setdefault("REDDIT_CLIENT_ID", "test-reddit-id")
os.environ.setdefault("REDDIT_CLIENT_SECRET", "test-reddit-secret")
os.environ.setdefault("YOUTUBE_API_KEY", "test-youtube-key")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-supabase-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:5173")

TEST_USER_ID = "user-123"


# -----------------------------------------------------------------------------
# Mock Response Classes
# -----------------------------------------------------------------------------


@dataclass
class MockLLMMessage:
    """Mock message from LLM response."""
    content: str


@dataclass
class MockLLMChoice:
    """Mock choice from LLM response."""
    message: MockLLMMessage


@dataclass
class MockLLMUsage:
    """Mock usage stats from LLM response."""
    total_tokens: int = 100
    prompt_tokens: int = 50
    completion_tokens: int = 50


@dataclass
class MockLLMResponse:
    """Mock LLM completion response."""
    choices: list[MockLLMChoice]
    usage: MockLLMUsage = None

    def __post_init__(self):
        if self.usage is None:
            self.usage = MockLLMUsage()


def create_mock_llm_response(content: str) -> MockLLMResponse:
    """Create a mock LLM response with given content."""
    return MockLLMResponse(
        choices=[MockLLMChoice(message=MockLLMMessage(content=content))]
    )


class MockHTTPResponse:
    """Minimal stand-in for httpx.Response."""

    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        import httpx
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://test")
            raise httpx.HTTPStatusError(
                f"HTTP {self.status_code}",
                request=request,
                response=httpx.Response(self.status_code, request=request),
            )


class MockAsyncClient:
    """
    Replacement for httpx.AsyncClient that routes requests through a
    handler(method, url, **kwargs) -> MockHTTPResponse. Records every call.
    """

    def __init__(self, handler):
        self.handler = handler
        self.calls: list[tuple[str, str, dict]] = []

    def __call__(self, *args, **kwargs):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self.handler("GET", url, **kwargs)

    async def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        return self.handler("POST", url, **kwargs)


@pytest.fixture
def mock_http(monkeypatch):
    """
    Factory fixture patching httpx.AsyncClient inside one module.

    Usage:
        client = mock_http("smoothbrains.sentiment", handler)
    """
    def _install(module: str, handler) -> MockAsyncClient:
        client = MockAsyncClient(handler)
        monkeypatch.setattr(f"{module}.httpx.AsyncClient", client)
        return client

    return _install


# -----------------------------------------------------------------------------
# Mock Data Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_search_results():
    """Sample search results with market figures in the snippets."""
    from smoothbrains.search import SearchResult
    return [
        SearchResult(
            title="Meal planning app market report",
            url="https://example.com/meal-planning-market",
            snippet="The global meal planning app market was valued at $2.5 billion in 2023, "
                    "growing at a CAGR of 14%.",
        ),
        SearchResult(
            title="Meal kit and planning trends",
            url="https://example.com/meal-trends",
            snippet="The meal planning segment reached $400 million as demand grew 20% year over year.",
        ),
    ]


@pytest.fixture
def mock_competitor_response() -> dict:
    """Sample structured competitor analysis."""
    return {
        "top_competitors": [
            {
                "name": "Mealime",
                "description": "Free meal planning app with grocery lists.",
                "funding_stage": "Seed",
                "strengths": ["Simple UX"],
                "weaknesses": ["Limited diets"],
                "traction_score": 7,
                "url": "https://mealime.com",
            }
        ],
        "market_leader": {"name": "Mealime", "market_share": 12.5, "key_advantage": "Brand"},
        "emerging_players": ["Plan to Eat"],
        "competitive_dynamics": {
            "market_concentration": "low",
            "entry_barriers": ["Content library"],
            "differentiation_opportunities": ["AI personalization"],
        },
        "insights": ["Fragmented market"],
    }


# -----------------------------------------------------------------------------
# LLM Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_llm(monkeypatch):
    """
    Mock litellm.acompletion to return predictable responses.

    Returns the mock function so tests can customize responses.
    """
    async def mock_acompletion(*args, **kwargs) -> MockLLMResponse:
        return create_mock_llm_response('{"score": 72, "rationale": "Solid signals"}')

    mock = AsyncMock(side_effect=mock_acompletion)
    monkeypatch.setattr("litellm.acompletion", mock)
    return mock


@pytest.fixture
def mock_llm_with_response(monkeypatch):
    """
    Factory fixture to mock LLM with a specific response.

    Usage:
        def test_example(mock_llm_with_response):
            mock = mock_llm_with_response({"key": "value"})
            # strings are returned verbatim, anything else is JSON-encoded
    """
    def _create_mock(response_data):
        content = response_data if isinstance(response_data, str) else json.dumps(response_data)

        async def mock_acompletion(*args, **kwargs) -> MockLLMResponse:
            return create_mock_llm_response(content)

        mock = AsyncMock(side_effect=mock_acompletion)
        monkeypatch.setattr("litellm.acompletion", mock)
        return mock

    return _create_mock


@pytest.fixture
def mock_llm_failure(monkeypatch):
    """Mock LLM to simulate all providers failing."""
    async def mock_acompletion(*args, **kwargs):
        raise Exception("Service unavailable")

    mock = AsyncMock(side_effect=mock_acompletion)
    monkeypatch.setattr("litellm.acompletion", mock)
    return mock


@pytest.fixture
def mock_llm_rate_limit_then_success(monkeypatch):
    """Mock LLM to fail with rate limit once, then succeed."""
    call_count = 0

    async def mock_acompletion(*args, **kwargs) -> MockLLMResponse:
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise Exception("429 rate_limit_exceeded")
        return create_mock_llm_response('{"score": 60, "rationale": "ok"}')

    mock = AsyncMock(side_effect=mock_acompletion)
    monkeypatch.setattr("litellm.acompletion", mock)
    return mock


# -----------------------------------------------------------------------------
# Search Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_search(monkeypatch, mock_search_results):
    """Mock search module to return predictable results."""
    async def mock_search_fn(query: str, num_results: int = 10):
        return mock_search_results[:num_results]

    mock = AsyncMock(side_effect=mock_search_fn)
    monkeypatch.setattr("smoothbrains.search.search", mock)
    return mock


@pytest.fixture
def mock_search_failure(monkeypatch):
    """Mock search to return empty results (simulates all providers failing)."""
    async def mock_search_fn(*args, **kwargs):
        return []

    mock = AsyncMock(side_effect=mock_search_fn)
    monkeypatch.setattr("smoothbrains.search.search", mock)
    monkeypatch.setattr("smoothbrains.search.search_social", mock)
    return mock


# -----------------------------------------------------------------------------
# Database Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_db(monkeypatch):
    """
    Mock all database operations with in-memory storage.

    Returns the storage dict for inspection.
    """
    storage = {
        "sessions": {},
        "tiles": {},
        "idea_scores": [],
        "live_context": {},
        "live_context_rows": {},
        "feedback": {},
        "actions": {},
        "llm_cache": {},
        "llm_state": {"active_provider": "groq/llama-3.3-70b-versatile"},
    }
    session_counter = 0

    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def mock_list_sessions(user_id: str) -> list[dict]:
        rows = [s for s in storage["sessions"].values() if s["user_id"] == user_id]
        return sorted(rows, key=lambda s: s["updated_at"], reverse=True)

    async def mock_create_session(user_id: str, name: str, state: dict | None = None) -> Optional[dict]:
        nonlocal session_counter
        session_counter += 1
        now = _now().isoformat()
        row = {
            "id": f"test-session-{session_counter}",
            "user_id": user_id,
            "name": name,
            "state": state or {},
            "created_at": now,
            "updated_at": now,
        }
        storage["sessions"][row["id"]] = row
        return dict(row)

    async def mock_get_session(user_id: str, session_id: str) -> Optional[dict]:
        row = storage["sessions"].get(session_id)
        if not row or row["user_id"] != user_id:
            return None
        row["updated_at"] = _now().isoformat()
        return dict(row)

    async def mock_update_session(user_id: str, session_id: str, fields: dict) -> Optional[dict]:
        row = storage["sessions"].get(session_id)
        if not row or row["user_id"] != user_id:
            return None
        row.update(fields)
        row["updated_at"] = _now().isoformat()
        return dict(row)

    async def mock_delete_session(user_id: str, session_id: str) -> bool:
        row = storage["sessions"].get(session_id)
        if not row or row["user_id"] != user_id:
            return False
        del storage["sessions"][session_id]
        for key in [k for k in storage["tiles"] if k[0] == user_id and k[1] == session_id]:
            del storage["tiles"][key]
        return True

    def _live_tile(key) -> Optional[dict]:
        row = storage["tiles"].get(key)
        if row is None:
            return None
        if datetime.fromisoformat(row["expires_at"]) <= _now():
            del storage["tiles"][key]
            return None
        return row

    async def mock_get_dashboard_tile(user_id: str, session_id: Optional[str], tile_type: str) -> Optional[dict]:
        row = _live_tile((user_id, session_id, tile_type))
        return dict(row) if row else None

    async def mock_save_dashboard_tile(
        user_id: str,
        session_id: Optional[str],
        tile_type: str,
        data: Any,
        metadata: dict | None = None,
        expires_in_minutes: int = 30,
    ) -> bool:
        now = _now()
        storage["tiles"][(user_id, session_id, tile_type)] = {
            "user_id": user_id,
            "session_id": session_id,
            "tile_type": tile_type,
            "data": data,
            "metadata": metadata or {},
            "expires_at": (now + timedelta(minutes=expires_in_minutes)).isoformat(),
            "updated_at": now.isoformat(),
        }
        return True

    async def mock_delete_dashboard_tile(user_id: str, session_id: Optional[str], tile_type: str) -> bool:
        storage["tiles"].pop((user_id, session_id, tile_type), None)
        return True

    async def mock_clear_dashboard(user_id: str, session_id: Optional[str] = None) -> bool:
        for key in list(storage["tiles"]):
            if key[0] == user_id and (session_id is None or key[1] == session_id):
                del storage["tiles"][key]
        return True

    async def mock_get_dashboard_tile_rows(
        user_id: str, session_id: Optional[str], tile_types: list[str] | None = None
    ) -> dict:
        rows = {}
        for key in list(storage["tiles"]):
            if key[0] != user_id or key[1] != session_id:
                continue
            if tile_types and key[2] not in tile_types:
                continue
            row = _live_tile(key)
            if row:
                rows[key[2]] = dict(row)
        return rows

    async def mock_get_dashboard_tiles(
        user_id: str, session_id: Optional[str], tile_types: list[str] | None = None
    ) -> dict:
        result = {}
        for key in list(storage["tiles"]):
            if key[0] != user_id or key[1] != session_id:
                continue
            if tile_types and key[2] not in tile_types:
                continue
            row = _live_tile(key)
            if row:
                result[key[2]] = row["data"]
        return result

    async def mock_get_latest_idea_score(idea_id: str) -> Optional[dict]:
        rows = [r for r in storage["idea_scores"] if r["idea_id"] == idea_id]
        return dict(rows[-1]) if rows else None

    async def mock_store_idea_score(idea_id: str, result: dict) -> str:
        row = {
            "id": f"score-{len(storage['idea_scores']) + 1}",
            "idea_id": idea_id,
            "pmf_score": result.get("pmf_score"),
            "score_breakdown": result.get("score_breakdown") or {},
            "created_at": _now().isoformat(),
        }
        storage["idea_scores"].append(row)
        return row["id"]

    async def mock_get_live_context(idea_id: str) -> dict:
        return dict(storage["live_context"].get(idea_id, {}))

    async def mock_get_live_context_rows(idea_id: str) -> list[dict]:
        return [dict(r) for r in storage["live_context_rows"].get(idea_id, {}).values()]

    async def mock_upsert_live_context(idea_id: str, entries: list[dict], ttl_hours: int) -> bool:
        expires_at = (_now() + timedelta(hours=ttl_hours)).isoformat()
        for entry in entries:
            row = {**entry, "idea_id": idea_id, "expires_at": expires_at}
            storage["live_context_rows"].setdefault(idea_id, {})[entry["context_type"]] = row
            storage["live_context"].setdefault(idea_id, {})[entry["context_type"]] = entry["data"]
        return True

    async def mock_get_idea_feedback(idea_id: str, limit: int = 10) -> list[dict]:
        return list(storage["feedback"].get(idea_id, []))[:limit]

    async def mock_get_pending_actions(idea_id: str, limit: int = 3) -> list[dict]:
        rows = sorted(storage["actions"].get(idea_id, []), key=lambda a: a.get("priority") or 99)
        return rows[:limit]

    async def mock_replace_pending_actions(idea_id: str, actions: list[dict]) -> list[dict]:
        rows = [
            {**a, "id": f"action-{i + 1}", "idea_id": idea_id, "status": "pending"}
            for i, a in enumerate(actions)
        ]
        storage["actions"][idea_id] = rows
        return rows

    async def mock_get_cached_llm_response(cache_key: str) -> Optional[Any]:
        entry = storage["llm_cache"].get(cache_key)
        if entry is None:
            return None
        entry["hit_count"] += 1
        return entry["response"]

    async def mock_store_llm_response(cache_key: str, model: str, response: Any, ttl_minutes: int) -> None:
        storage["llm_cache"][cache_key] = {"model": model, "response": response, "hit_count": 0}

    async def mock_get_llm_state() -> str:
        return storage["llm_state"]["active_provider"]

    async def mock_update_llm_state(provider: str, reason: str) -> None:
        storage["llm_state"]["active_provider"] = provider

    # Apply mocks
    mocks = {
        "list_sessions": mock_list_sessions,
        "create_session": mock_create_session,
        "get_session": mock_get_session,
        "update_session": mock_update_session,
        "delete_session": mock_delete_session,
        "get_dashboard_tile": mock_get_dashboard_tile,
        "save_dashboard_tile": mock_save_dashboard_tile,
        "delete_dashboard_tile": mock_delete_dashboard_tile,
        "clear_dashboard": mock_clear_dashboard,
        "get_dashboard_tile_rows": mock_get_dashboard_tile_rows,
        "get_dashboard_tiles": mock_get_dashboard_tiles,
        "get_latest_idea_score": mock_get_latest_idea_score,
        "store_idea_score": mock_store_idea_score,
        "get_live_context": mock_get_live_context,
        "get_live_context_rows": mock_get_live_context_rows,
        "upsert_live_context": mock_upsert_live_context,
        "get_idea_feedback": mock_get_idea_feedback,
        "get_pending_actions": mock_get_pending_actions,
        "replace_pending_actions": mock_replace_pending_actions,
        "get_cached_llm_response": mock_get_cached_llm_response,
        "store_llm_response": mock_store_llm_response,
        "get_llm_state": mock_get_llm_state,
        "update_llm_state": mock_update_llm_state,
    }
    for name, fn in mocks.items():
        monkeypatch.setattr(f"smoothbrains.db.{name}", AsyncMock(side_effect=fn))

    return storage


# -----------------------------------------------------------------------------
# Auth Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def auth_user(monkeypatch):
    """Every request resolves to TEST_USER_ID."""
    monkeypatch.setattr("smoothbrains.auth.get_current_user_id", lambda request: TEST_USER_ID)
    return TEST_USER_ID


@pytest.fixture
def anonymous(monkeypatch):
    """Every request is anonymous."""
    monkeypatch.setattr("smoothbrains.auth.get_current_user_id", lambda request: None)


# -----------------------------------------------------------------------------
# Scraper Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_scraper(monkeypatch):
    """Mock scraper.scrape to return predictable content; URLs containing 'fail' raise."""
    from smoothbrains.scraper import PageContent, ScraperError

    async def mock_scrape(url: str, max_chars: int = 15000) -> PageContent:
        if "fail" in url:
            raise ScraperError(f"Could not fetch {url}")
        return PageContent(url=url, title=f"Title of {url}", content=f"Content from {url}."[:max_chars])

    mock = AsyncMock(side_effect=mock_scrape)
    monkeypatch.setattr("smoothbrains.scraper.scrape", mock)
    return mock


# -----------------------------------------------------------------------------
# HTTP Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def client():
    """Async HTTP client for testing FastAPI endpoints."""
    from smoothbrains.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Module State Reset Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_llm_state(monkeypatch):
    """Reset LLM module state before each test and remove retry backoff."""
    import smoothbrains.llm as llm_module
    llm_module._active_provider = None
    llm_module._initialized = False
    llm_module._rate_limited_until.clear()
    monkeypatch.setattr(llm_module, "RETRY_BASE_SECONDS", 0)
    yield
    llm_module._active_provider = None
    llm_module._initialized = False
    llm_module._rate_limited_until.clear()


@pytest.fixture(autouse=True)
def reset_active_analyses():
    """Clear the in-flight analysis tracker between tests."""
    from smoothbrains.api import dashboard
    dashboard._active_analyses.clear()
    yield
    dashboard._active_analyses.clear()


# -----------------------------------------------------------------------------
# SSE Parsing Helpers
# -----------------------------------------------------------------------------


def parse_sse_events(content: str) -> list[dict]:
    """Parse SSE event stream into list of event dicts."""
    events = []
    for line in content.split("\n"):
        if line.startswith("data: "):
            try:
                events.append(json.loads(line[6:]))
            except json.JSONDecodeError:
                continue
    return events


@pytest.fixture
def parse_sse():
    """Fixture providing SSE parsing helper."""
    return parse_sse_events
