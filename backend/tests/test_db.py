"""
SmoothBrains Backend: Database Helper Tests

Runs the real db helpers against a recording stand-in for the Supabase
client, so the query shapes (filters, upsert conflict targets) are checked.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from smoothbrains import db


class FakeQuery:
    """Chainable query builder that records every call and returns canned rows."""

    def __init__(self, table: str, rows: list[dict] | None = None):
        self.table = table
        self.rows = rows or []
        self.calls: list[tuple] = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        self.calls.append(("execute", (), {}))
        return SimpleNamespace(data=self.rows)

    def called(self, name: str) -> list[tuple]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]


@pytest.fixture
def fake_supabase(monkeypatch):
    """Patch get_supabase; returns {table: FakeQuery} filled by each table() call."""
    tables: dict[str, FakeQuery] = {}
    rows: dict[str, list[dict]] = {}

    def table(name: str) -> FakeQuery:
        tables[name] = FakeQuery(name, rows.get(name))
        return tables[name]

    client = SimpleNamespace(table=table)
    monkeypatch.setattr("smoothbrains.db.get_supabase", lambda: client)
    return SimpleNamespace(tables=tables, rows=rows)


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


# -----------------------------------------------------------------------------
# Dashboard Tiles
# -----------------------------------------------------------------------------


class TestSaveDashboardTile:
    """Tests for save_dashboard_tile."""

    @pytest.mark.asyncio
    async def test_session_tile_conflicts_on_session(self, fake_supabase):
        saved = await db.save_dashboard_tile("user-1", "s1", "market_size", {"tam": 1e9}, {"idea": "x"})

        assert saved is True
        (args, kwargs), = fake_supabase.tables["dashboard_data"].called("upsert")
        assert kwargs["on_conflict"] == "user_id,session_id,tile_type"
        assert args[0]["session_id"] == "s1"
        assert args[0]["metadata"] == {"idea": "x"}

    @pytest.mark.asyncio
    async def test_sessionless_tile_conflicts_on_user_and_type(self, fake_supabase):
        saved = await db.save_dashboard_tile("user-1", None, "market_size", {"tam": 1e9})

        assert saved is True
        (args, kwargs), = fake_supabase.tables["dashboard_data"].called("upsert")
        assert kwargs["on_conflict"] == "user_id,tile_type"
        assert args[0]["session_id"] is None

    @pytest.mark.asyncio
    async def test_expiry_follows_minutes(self, fake_supabase):
        await db.save_dashboard_tile("user-1", "s1", "trends", {}, expires_in_minutes=5)

        (args, _), = fake_supabase.tables["dashboard_data"].called("upsert")
        expires_at = datetime.fromisoformat(args[0]["expires_at"])
        remaining = expires_at - datetime.now(timezone.utc)
        assert timedelta(minutes=4) < remaining <= timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_client_error_returns_false(self, monkeypatch):
        def broken():
            raise RuntimeError("connection refused")

        monkeypatch.setattr("smoothbrains.db.get_supabase", broken)

        assert await db.save_dashboard_tile("user-1", None, "trends", {}) is False


class TestGetDashboardTileRows:
    """Tests for get_dashboard_tile_rows / get_dashboard_tiles."""

    @pytest.mark.asyncio
    async def test_returns_rows_with_metadata_and_drops_expired(self, fake_supabase):
        fake_supabase.rows["dashboard_data"] = [
            {"tile_type": "market_size", "data": {"tam": 1}, "metadata": {"idea": "a"},
             "expires_at": _iso(timedelta(minutes=10))},
            {"tile_type": "trends", "data": {}, "metadata": {"idea": "a"},
             "expires_at": _iso(timedelta(minutes=-1))},
        ]

        rows = await db.get_dashboard_tile_rows("user-1", "s1", ["market_size", "trends"])

        assert list(rows) == ["market_size"]
        assert rows["market_size"]["metadata"] == {"idea": "a"}
        query = fake_supabase.tables["dashboard_data"]
        assert query.called("in_") == [(("tile_type", ["market_size", "trends"]), {})]
        assert (("session_id", "s1"), {}) in query.called("eq")

    @pytest.mark.asyncio
    async def test_sessionless_read_filters_null_session(self, fake_supabase):
        fake_supabase.rows["dashboard_data"] = [
            {"tile_type": "sentiment", "data": {"ok": True}, "metadata": {}, "expires_at": _iso(timedelta(hours=1))},
        ]

        tiles = await db.get_dashboard_tiles("user-1", None)

        assert tiles == {"sentiment": {"ok": True}}
        assert fake_supabase.tables["dashboard_data"].called("is_") == [(("session_id", "null"), {})]


# -----------------------------------------------------------------------------
# Live Context
# -----------------------------------------------------------------------------


class TestLiveContext:
    """Tests for the idea_live_context helpers."""

    @pytest.mark.asyncio
    async def test_upsert_sets_expiry_and_conflict_target(self, fake_supabase):
        entries = [
            {"context_type": "market", "data": {"a": 1}, "confidence_score": 0.85, "sources": []},
            {"context_type": "trends", "data": {"b": 2}, "confidence_score": 0.75, "sources": []},
        ]

        saved = await db.upsert_live_context("idea-1", entries, ttl_hours=24)

        assert saved is True
        (args, kwargs), = fake_supabase.tables["idea_live_context"].called("upsert")
        assert kwargs["on_conflict"] == "idea_id,context_type"
        rows = args[0]
        assert [r["context_type"] for r in rows] == ["market", "trends"]
        assert all(r["idea_id"] == "idea-1" for r in rows)
        remaining = datetime.fromisoformat(rows[0]["expires_at"]) - datetime.fromisoformat(rows[0]["last_updated"])
        assert remaining == timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_reads_only_unexpired_rows(self, fake_supabase):
        fake_supabase.rows["idea_live_context"] = [
            {"context_type": "market", "data": {"a": 1}},
            {"context_type": "sentiment", "data": {"b": 2}},
        ]

        context = await db.get_live_context("idea-1")

        assert context == {"market": {"a": 1}, "sentiment": {"b": 2}}
        (args, _), = fake_supabase.tables["idea_live_context"].called("gt")
        assert args[0] == "expires_at"

    @pytest.mark.asyncio
    async def test_read_error_returns_empty(self, monkeypatch):
        def broken():
            raise RuntimeError("timeout")

        monkeypatch.setattr("smoothbrains.db.get_supabase", broken)

        assert await db.get_live_context_rows("idea-1") == []
