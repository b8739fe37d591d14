"""
SmoothBrains Backend: Dashboard API Tests

Tests for /api/dashboard: tile persistence, the analysis SSE stream
(event order, cached tiles, tile errors, dedup), and score_from_tiles.
"""

from unittest.mock import AsyncMock

import pytest

from tests.conftest import TEST_USER_ID
from smoothbrains.api import dashboard
from smoothbrains.api.dashboard import ANALYSIS_TILES, _make_dedup_key, score_from_tiles
from smoothbrains.llm import LLMError

IDEA = "Meal planning app for busy parents"

MARKET_TILE = {"tam": 2.5e9, "sam": 4e8, "som": 1.2e7, "cagr": 14}
COMPETITOR_TILE = {"top_competitors": [{"name": "Mealime"}], "competitive_dynamics": {"market_concentration": "low"}}
TRENDS_TILE = {"google_trends": {"metrics": {"12m_growth": "+14%"}}}
SENTIMENT_TILE = {"sentiment": {"metrics": {"overall_distribution": {"positive": 70, "neutral": 20, "negative": 10}}}}


@pytest.fixture
def mock_tiles(monkeypatch):
    """Patch every tile computation with a canned result."""
    mocks = {
        "market_size": AsyncMock(return_value=MARKET_TILE),
        "competitors": AsyncMock(return_value=COMPETITOR_TILE),
        "trends": AsyncMock(return_value=TRENDS_TILE),
        "sentiment": AsyncMock(return_value=SENTIMENT_TILE),
    }
    monkeypatch.setattr("smoothbrains.market.estimate_market_size", mocks["market_size"])
    monkeypatch.setattr("smoothbrains.market.analyze_competitors", mocks["competitors"])
    monkeypatch.setattr("smoothbrains.market.fetch_trends", mocks["trends"])
    monkeypatch.setattr("smoothbrains.sentiment.unified_sentiment", mocks["sentiment"])
    return mocks


# -----------------------------------------------------------------------------
# Tile Persistence
# -----------------------------------------------------------------------------


class TestTiles:
    """Tests for the tile endpoints."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, client, mock_db, auth_user):
        response = await client.put("/api/dashboard/tiles/market_size", json={
            "sessionId": "s1", "data": MARKET_TILE, "metadata": {"idea": IDEA},
        })
        assert response.json() == {"success": True}

        response = await client.get("/api/dashboard/tiles/market_size", params={"session_id": "s1"})

        assert response.status_code == 200
        data = response.json()
        assert data["tile_type"] == "market_size"
        assert data["data"] == MARKET_TILE
        assert data["metadata"] == {"idea": IDEA}
        assert data["expires_at"]

    @pytest.mark.asyncio
    async def test_missing_tile_is_404(self, client, mock_db, auth_user):
        response = await client.get("/api/dashboard/tiles/trends", params={"session_id": "s1"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_tiles_are_scoped_by_session(self, client, mock_db, auth_user):
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s1", "data": TRENDS_TILE})

        response = await client.get("/api/dashboard/tiles/trends", params={"session_id": "s2"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_expired_tile_is_404(self, client, mock_db, auth_user):
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s1", "data": TRENDS_TILE})
        mock_db["tiles"][(TEST_USER_ID, "s1", "trends")]["expires_at"] = "2020-01-01T00:00:00+00:00"

        response = await client.get("/api/dashboard/tiles/trends", params={"session_id": "s1"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_save_failure_is_500(self, client, mock_db, auth_user, monkeypatch):
        monkeypatch.setattr("smoothbrains.db.save_dashboard_tile", AsyncMock(return_value=False))

        response = await client.put("/api/dashboard/tiles/trends", json={"data": TRENDS_TILE})

        assert response.status_code == 500
        assert response.json()["detail"]["error_code"].startswith("SB-")

    @pytest.mark.asyncio
    async def test_invalid_expiry_is_422(self, client, mock_db, auth_user):
        response = await client.put("/api/dashboard/tiles/trends", json={"data": {}, "expiresInMinutes": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_tile(self, client, mock_db, auth_user):
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s1", "data": TRENDS_TILE})

        response = await client.delete("/api/dashboard/tiles/trends", params={"session_id": "s1"})

        assert response.json() == {"success": True}
        assert mock_db["tiles"] == {}

    @pytest.mark.asyncio
    async def test_batch(self, client, mock_db, auth_user):
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s1", "data": TRENDS_TILE})
        await client.put("/api/dashboard/tiles/market_size", json={"sessionId": "s1", "data": MARKET_TILE})

        response = await client.post("/api/dashboard/tiles/batch", json={
            "sessionId": "s1", "tileTypes": ["trends", "competitors"],
        })

        assert response.json() == {"tiles": {"trends": TRENDS_TILE}}

    @pytest.mark.asyncio
    async def test_clear_session(self, client, mock_db, auth_user):
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s1", "data": TRENDS_TILE})
        await client.put("/api/dashboard/tiles/trends", json={"sessionId": "s2", "data": TRENDS_TILE})

        response = await client.delete("/api/dashboard", params={"session_id": "s1"})

        assert response.json() == {"success": True}
        assert list(mock_db["tiles"]) == [(TEST_USER_ID, "s2", "trends")]

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client, mock_db, anonymous):
        response = await client.get("/api/dashboard/tiles/trends")
        assert response.status_code == 401


# -----------------------------------------------------------------------------
# Analysis Stream
# -----------------------------------------------------------------------------


class TestAnalyzeStream:
    """Tests for POST /api/dashboard/analyze."""

    @pytest.mark.asyncio
    async def test_event_order(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        response = await client.post("/api/dashboard/analyze", json={
            "sessionId": "s1", "idea": IDEA, "industry": "FoodTech", "wrinklePoints": 40,
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        types = [e["type"] for e in events]

        assert types[0] == "analysis_started"
        assert events[0]["tiles"] == ANALYSIS_TILES
        assert sorted(types[1:5]) == ["tile_ready"] * 4
        assert {e["tile_type"] for e in events[1:5]} == set(ANALYSIS_TILES)
        assert types[5:] == ["score_ready", "analysis_complete"]
        assert events[-1]["tiles_ready"] == ANALYSIS_TILES
        assert events[-1]["tiles_failed"] == []

        mock_tiles["market_size"].assert_called_once_with(IDEA, "FoodTech")
        mock_tiles["competitors"].assert_called_once_with(IDEA, "FoodTech", session_id="s1")
        mock_tiles["sentiment"].assert_called_once_with(IDEA, session_id="s1")

    @pytest.mark.asyncio
    async def test_tiles_and_score_are_persisted(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        score_event = next(e for e in parse_sse(response.text) if e["type"] == "score_ready")
        stored = {key[2] for key in mock_db["tiles"] if key[:2] == (TEST_USER_ID, "s1")}
        assert stored == set(ANALYSIS_TILES) | {"score"}
        assert mock_db["tiles"][(TEST_USER_ID, "s1", "score")]["data"] == score_event["score"]
        assert mock_db["tiles"][(TEST_USER_ID, "s1", "trends")]["metadata"] == {"idea": IDEA}

    @pytest.mark.asyncio
    async def test_cached_tiles_are_not_recomputed(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        cached = {"tam": 1e9, "cagr": 9}
        await client.put("/api/dashboard/tiles/market_size", json={
            "sessionId": "s1", "data": cached, "metadata": {"idea": IDEA},
        })

        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        events = parse_sse(response.text)
        assert events[1] == {"type": "tile_ready", "tile_type": "market_size", "data": cached}
        mock_tiles["market_size"].assert_not_called()
        mock_tiles["trends"].assert_called_once()

    @pytest.mark.asyncio
    async def test_cached_tiles_match_idea_ignoring_case_and_spacing(self, client, mock_db, auth_user, mock_tiles):
        await client.put("/api/dashboard/tiles/market_size", json={
            "sessionId": "s1", "data": {"tam": 1e9}, "metadata": {"idea": f"  {IDEA.upper()}  "},
        })

        await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        mock_tiles["market_size"].assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_idea_recomputes_tiles(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        new_idea = "Quantum drone logistics"
        await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": new_idea})

        assert mock_tiles["market_size"].call_count == 2
        mock_tiles["market_size"].assert_called_with(new_idea, None)
        mock_tiles["sentiment"].assert_called_with(new_idea, session_id="s1")
        for tile_type in ANALYSIS_TILES:
            assert mock_db["tiles"][(TEST_USER_ID, "s1", tile_type)]["metadata"] == {"idea": new_idea}
        events = parse_sse(response.text)
        assert events[-1]["tiles_ready"] == ANALYSIS_TILES

    @pytest.mark.asyncio
    async def test_cached_tile_without_idea_is_recomputed(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        await client.put("/api/dashboard/tiles/market_size", json={"sessionId": "s1", "data": {"tam": 1e9}})

        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        mock_tiles["market_size"].assert_called_once_with(IDEA, None)
        ready = [e for e in parse_sse(response.text) if e["type"] == "tile_ready" and e["tile_type"] == "market_size"]
        assert [e["data"] for e in ready] == [MARKET_TILE]

    @pytest.mark.asyncio
    async def test_tile_error_does_not_stop_stream(self, client, mock_db, auth_user, mock_tiles, parse_sse):
        mock_tiles["competitors"].side_effect = LLMError("all providers failed")

        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        events = parse_sse(response.text)
        errors = [e for e in events if e["type"] == "tile_error"]
        assert len(errors) == 1
        assert errors[0]["tile_type"] == "competitors"
        assert errors[0]["error_code"].startswith("SB-")
        assert "all providers failed" not in errors[0]["error"]
        assert events[-1]["tiles_failed"] == ["competitors"]
        assert events[-1]["tiles_ready"] == ["market_size", "trends", "sentiment"]
        assert (TEST_USER_ID, "s1", "competitors") not in mock_db["tiles"]

    @pytest.mark.asyncio
    async def test_duplicate_analysis_is_409(self, client, mock_db, auth_user, mock_tiles):
        dashboard._active_analyses[_make_dedup_key(TEST_USER_ID, "s1", IDEA)] = True

        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": f"  {IDEA.upper()} "})

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_tracker_cleared_after_stream(self, client, mock_db, auth_user, mock_tiles):
        await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})

        assert dashboard._active_analyses == {}
        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": IDEA})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_idea_is_required(self, client, mock_db, auth_user):
        response = await client.post("/api/dashboard/analyze", json={"sessionId": "s1", "idea": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client, mock_db, anonymous):
        response = await client.post("/api/dashboard/analyze", json={"idea": IDEA})
        assert response.status_code == 401


# -----------------------------------------------------------------------------
# Score From Tiles
# -----------------------------------------------------------------------------


class TestScoreFromTiles:
    """Tests for score_from_tiles."""

    def test_uses_tile_data(self):
        result = score_from_tiles(IDEA, {
            "market_size": MARKET_TILE,
            "competitors": COMPETITOR_TILE,
            "sentiment": SENTIMENT_TILE,
        }, wrinkle_points=40)

        factors = result["factors"]
        assert factors["marketSize"] == pytest.approx(2.5)
        assert factors["growthRate"] == 14
        assert factors["competitionLevel"] == 3
        assert factors["sentiment"] == 70
        assert factors["wrinklePoints"] == 40
        assert 0 <= result["score"] <= 100

    def test_empty_sentiment_distribution_is_ignored(self):
        empty = {"sentiment": {"metrics": {"overall_distribution": {"positive": 0, "neutral": 0, "negative": 0}}}}

        result = score_from_tiles(IDEA, {"sentiment": empty})

        assert result["factors"]["sentiment"] == 50

    @pytest.mark.parametrize("positive", [0, 1, 2])
    def test_low_positive_share_is_a_percentage(self, positive):
        tile = {"sentiment": {"metrics": {"overall_distribution": {
            "positive": positive, "neutral": 100 - positive - 10, "negative": 10,
        }}}}

        result = score_from_tiles(IDEA, {"sentiment": tile})

        assert result["factors"]["sentiment"] == positive

    def test_sentiment_breakdown_rises_with_positive_share(self):
        shares = [0, 1, 2, 50, 70, 71, 100]

        curves = []
        for positive in shares:
            tile = {"sentiment": {"metrics": {"overall_distribution": {
                "positive": positive, "neutral": 0, "negative": 100 - positive,
            }}}}
            curves.append(score_from_tiles(IDEA, {"sentiment": tile})["breakdown"]["sentiment"])

        assert curves == sorted(curves)
        assert len(set(curves)) == len(shares)

    def test_tolerates_unexpected_tile_shapes(self):
        result = score_from_tiles(IDEA, {"market_size": {}, "competitors": {}, "sentiment": {}})

        assert result["factors"]["marketSize"] == 0
        assert result["factors"]["competitionLevel"] == 5
        assert result["category"]
