"""
SmoothBrains Backend: Database Operations

All Supabase/PostgreSQL operations: brainstorming sessions, dashboard tiles,
PMF scores and actions, LLM response cache, LLM state.

Every function catches its own errors, logs them with an error code and
returns a neutral default. Callers never see a database exception.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from supabase import Client, create_client

from smoothbrains.config import DASHBOARD_CACHE_MINUTES, LLM_CONFIG, generate_error_code, log, settings

# ─────────────────────────────────────────────────────────────────────────────
# Supabase Client (singleton)
# ─────────────────────────────────────────────────────────────────────────────

_supabase: Client | None = None


def get_supabase() -> Client:
    """Return the Supabase client singleton. Creates it on first call."""
    global _supabase
    if _supabase is None:
        _supabase = create_client(settings.supabase_url, settings.supabase_service_key)
    return _supabase


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(value: Any) -> Optional[datetime]:
    """ISO-8601 timestamp as an aware datetime, or None when missing or unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _first_row(response) -> Optional[dict]:
    if response is None or not response.data:
        return None
    row = response.data[0] if isinstance(response.data, list) else response.data
    return dict(row)


# ─────────────────────────────────────────────────────────────────────────────
# Brainstorming Sessions
# ─────────────────────────────────────────────────────────────────────────────


async def list_sessions(user_id: str) -> list[dict]:
    """All sessions for a user, most recently updated first."""
    try:
        sb = get_supabase()
        response = (
            sb.table("brainstorming_sessions")
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .execute()
        )
        return [dict(r) for r in (response.data or [])]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", user_id=user_id, operation="list_sessions", error=str(e), error_code=code)
        return []


async def create_session(user_id: str, name: str, state: dict | None = None) -> Optional[dict]:
    """Insert a new session row. Returns the created row or None."""
    try:
        sb = get_supabase()
        now = _now().isoformat()
        data = {
            "user_id": user_id,
            "name": name,
            "state": state or {},
            "created_at": now,
            "updated_at": now,
        }
        response = sb.table("brainstorming_sessions").insert(data).execute()
        return _first_row(response)
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", user_id=user_id, operation="create_session", error=str(e), error_code=code)
        return None


async def get_session(user_id: str, session_id: str) -> Optional[dict]:
    """
    Fetch one session owned by user_id. Touches updated_at so opening a
    session moves it to the top of the list. None if missing or not owned.
    """
    try:
        sb = get_supabase()
        response = (
            sb.table("brainstorming_sessions")
            .select("*")
            .eq("id", session_id)
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        row = _first_row(response)
        if row is None:
            return None
        now = _now().isoformat()
        sb.table("brainstorming_sessions").update({"updated_at": now}).eq("id", session_id).execute()
        row["updated_at"] = now
        return row
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", session_id=session_id, operation="get_session", error=str(e), error_code=code)
        return None


async def update_session(user_id: str, session_id: str, fields: dict) -> Optional[dict]:
    """Update name and/or state of a session. Returns the updated row or None."""
    try:
        sb = get_supabase()
        data = {**fields, "updated_at": _now().isoformat()}
        response = (
            sb.table("brainstorming_sessions")
            .update(data)
            .eq("id", session_id)
            .eq("user_id", user_id)
            .execute()
        )
        return _first_row(response)
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", session_id=session_id, operation="update_session", error=str(e), error_code=code)
        return None


async def delete_session(user_id: str, session_id: str) -> bool:
    """Delete a session and its dashboard tiles. Returns True if a row was removed."""
    try:
        sb = get_supabase()
        response = (
            sb.table("brainstorming_sessions")
            .delete()
            .eq("id", session_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not response.data:
            return False
        sb.table("dashboard_data").delete().eq("user_id", user_id).eq("session_id", session_id).execute()
        return True
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", session_id=session_id, operation="delete_session", error=str(e), error_code=code)
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard Tiles
# ─────────────────────────────────────────────────────────────────────────────


def _is_expired(row: dict) -> bool:
    expires_at = parse_ts(row.get("expires_at"))
    return expires_at is not None and expires_at <= _now()


async def get_dashboard_tile(user_id: str, session_id: Optional[str], tile_type: str) -> Optional[dict]:
    """
    Return the stored tile row, or None. Expired rows are deleted on read and
    treated as missing.
    """
    try:
        sb = get_supabase()
        query = sb.table("dashboard_data").select("*").eq("user_id", user_id).eq("tile_type", tile_type)
        query = query.eq("session_id", session_id) if session_id else query.is_("session_id", "null")
        row = _first_row(query.maybe_single().execute())
        if row is None:
            return None
        if _is_expired(row):
            await delete_dashboard_tile(user_id, session_id, tile_type)
            return None
        return row
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", session_id=session_id, tile_type=tile_type,
            operation="get_dashboard_tile", error=str(e), error_code=code)
        return None


async def save_dashboard_tile(
    user_id: str,
    session_id: Optional[str],
    tile_type: str,
    data: Any,
    metadata: dict | None = None,
    expires_in_minutes: int = DASHBOARD_CACHE_MINUTES,
) -> bool:
    """
    Upsert a tile with an expiry. Conflicts on (user_id, session_id, tile_type),
    or on (user_id, tile_type) without a session since NULL session_ids never conflict.
    """
    try:
        sb = get_supabase()
        now = _now()
        row = {
            "user_id": user_id,
            "session_id": session_id,
            "tile_type": tile_type,
            "data": data,
            "metadata": metadata or {},
            "expires_at": (now + timedelta(minutes=expires_in_minutes)).isoformat(),
            "updated_at": now.isoformat(),
        }
        on_conflict = "user_id,session_id,tile_type" if session_id else "user_id,tile_type"
        sb.table("dashboard_data").upsert(row, on_conflict=on_conflict).execute()
        return True
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", session_id=session_id, tile_type=tile_type,
            operation="save_dashboard_tile", error=str(e), error_code=code)
        return False


async def delete_dashboard_tile(user_id: str, session_id: Optional[str], tile_type: str) -> bool:
    try:
        sb = get_supabase()
        query = sb.table("dashboard_data").delete().eq("user_id", user_id).eq("tile_type", tile_type)
        query = query.eq("session_id", session_id) if session_id else query.is_("session_id", "null")
        query.execute()
        return True
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", session_id=session_id, tile_type=tile_type,
            operation="delete_dashboard_tile", error=str(e), error_code=code)
        return False


async def clear_dashboard(user_id: str, session_id: Optional[str] = None) -> bool:
    """Delete every tile for the user, or only the tiles of one session."""
    try:
        sb = get_supabase()
        query = sb.table("dashboard_data").delete().eq("user_id", user_id)
        if session_id:
            query = query.eq("session_id", session_id)
        query.execute()
        return True
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", session_id=session_id, operation="clear_dashboard",
            error=str(e), error_code=code)
        return False


async def get_dashboard_tile_rows(
    user_id: str,
    session_id: Optional[str],
    tile_types: list[str] | None = None,
) -> dict[str, dict]:
    """Batch read of full rows (data, metadata, expiry). Returns {tile_type: row}, non-expired only."""
    try:
        sb = get_supabase()
        query = sb.table("dashboard_data").select("*").eq("user_id", user_id)
        query = query.eq("session_id", session_id) if session_id else query.is_("session_id", "null")
        if tile_types:
            query = query.in_("tile_type", tile_types)
        response = query.execute()
        return {
            row["tile_type"]: dict(row)
            for row in (response.data or [])
            if not _is_expired(row)
        }
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", session_id=session_id, operation="get_dashboard_tile_rows",
            error=str(e), error_code=code)
        return {}


async def get_dashboard_tiles(
    user_id: str,
    session_id: Optional[str],
    tile_types: list[str] | None = None,
) -> dict[str, Any]:
    """Batch read. Returns {tile_type: data} for non-expired tiles only."""
    rows = await get_dashboard_tile_rows(user_id, session_id, tile_types)
    return {tile_type: row["data"] for tile_type, row in rows.items()}


# ─────────────────────────────────────────────────────────────────────────────
# Idea Scores, Live Context & Actions
# ─────────────────────────────────────────────────────────────────────────────


async def get_latest_idea_score(idea_id: str) -> Optional[dict]:
    """Most recent idea_scores row for an idea."""
    try:
        sb = get_supabase()
        response = (
            sb.table("idea_scores")
            .select("*")
            .eq("idea_id", idea_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first_row(response)
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", idea_id=idea_id, operation="get_latest_idea_score", error=str(e), error_code=code)
        return None


async def store_idea_score(idea_id: str, result: dict) -> str:
    """Insert a computed PMF score. Returns the row id."""
    try:
        sb = get_supabase()
        breakdown = result.get("score_breakdown") or {}
        data = {
            "idea_id": idea_id,
            "pmf_score": result.get("pmf_score"),
            "score_breakdown": breakdown,
            "market_size_score": breakdown.get("market_size", 0),
            "competition_score": breakdown.get("competition", 0),
            "execution_score": breakdown.get("execution", 0),
            "timing_score": breakdown.get("timing", 0),
            "team_score": breakdown.get("team", 0),
            "ai_confidence": result.get("confidence"),
            "data_sources": result.get("data_sources") or [],
            "created_at": _now().isoformat(),
        }
        row = _first_row(sb.table("idea_scores").insert(data).execute())
        return str(row["id"]) if row and row.get("id") is not None else ""
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", idea_id=idea_id, operation="store_idea_score", error=str(e), error_code=code)
        return ""


async def get_live_context(idea_id: str) -> dict[str, Any]:
    """Non-expired idea_live_context rows folded into {context_type: data}."""
    rows = await get_live_context_rows(idea_id)
    return {row["context_type"]: row["data"] for row in rows}


async def get_live_context_rows(idea_id: str) -> list[dict]:
    """Non-expired idea_live_context rows for an idea, as stored."""
    try:
        sb = get_supabase()
        response = (
            sb.table("idea_live_context")
            .select("*")
            .eq("idea_id", idea_id)
            .gt("expires_at", _now().isoformat())
            .execute()
        )
        return [dict(r) for r in (response.data or [])]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", idea_id=idea_id, operation="get_live_context_rows", error=str(e), error_code=code)
        return []


async def upsert_live_context(idea_id: str, entries: list[dict], ttl_hours: int) -> bool:
    """Upsert one idea_live_context row per entry on (idea_id, context_type)."""
    try:
        sb = get_supabase()
        now = _now()
        rows = [
            {
                **entry,
                "idea_id": idea_id,
                "last_updated": now.isoformat(),
                "expires_at": (now + timedelta(hours=ttl_hours)).isoformat(),
            }
            for entry in entries
        ]
        sb.table("idea_live_context").upsert(rows, on_conflict="idea_id,context_type").execute()
        return True
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", idea_id=idea_id, operation="upsert_live_context", error=str(e), error_code=code)
        return False


async def get_idea_feedback(idea_id: str, limit: int = 10) -> list[dict]:
    try:
        sb = get_supabase()
        response = (
            sb.table("idea_feedback")
            .select("*")
            .eq("idea_id", idea_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [dict(r) for r in (response.data or [])]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", idea_id=idea_id, operation="get_idea_feedback", error=str(e), error_code=code)
        return []


async def get_pending_actions(idea_id: str, limit: int = 3) -> list[dict]:
    """Pending actions for an idea, highest priority (lowest number) first."""
    try:
        sb = get_supabase()
        response = (
            sb.table("actions")
            .select("*")
            .eq("idea_id", idea_id)
            .eq("status", "pending")
            .order("priority")
            .limit(limit)
            .execute()
        )
        return [dict(r) for r in (response.data or [])]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", idea_id=idea_id, operation="get_pending_actions", error=str(e), error_code=code)
        return []


async def replace_pending_actions(idea_id: str, actions: list[dict]) -> list[dict]:
    """Drop the idea's pending actions and insert the new ones. Returns inserted rows."""
    try:
        sb = get_supabase()
        sb.table("actions").delete().eq("idea_id", idea_id).eq("status", "pending").execute()
        if not actions:
            return []
        rows = [{**a, "idea_id": idea_id, "status": "pending"} for a in actions]
        response = sb.table("actions").insert(rows).execute()
        return [dict(r) for r in (response.data or [])]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", idea_id=idea_id, operation="replace_pending_actions", error=str(e), error_code=code)
        return []


# ─────────────────────────────────────────────────────────────────────────────
# LLM Response Cache
# ─────────────────────────────────────────────────────────────────────────────


async def get_cached_llm_response(cache_key: str) -> Optional[Any]:
    """
    Return the cached response for cache_key if present and unexpired.
    Increments hit_count on every hit.
    """
    try:
        sb = get_supabase()
        response = (
            sb.table("llm_cache")
            .select("*")
            .eq("cache_key", cache_key)
            .gt("expires_at", _now().isoformat())
            .maybe_single()
            .execute()
        )
        row = _first_row(response)
        if row is None:
            return None
        sb.table("llm_cache").update({"hit_count": int(row.get("hit_count") or 0) + 1}).eq(
            "cache_key", cache_key
        ).execute()
        return row.get("response")
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", operation="get_cached_llm_response", error=str(e), error_code=code)
        return None


async def store_llm_response(cache_key: str, model: str, response: Any, ttl_minutes: int) -> None:
    try:
        sb = get_supabase()
        now = _now()
        data = {
            "cache_key": cache_key,
            "model": model,
            "response": response,
            "hit_count": 0,
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(minutes=ttl_minutes)).isoformat(),
        }
        sb.table("llm_cache").upsert(data, on_conflict="cache_key").execute()
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", operation="store_llm_response", error=str(e), error_code=code)


# ─────────────────────────────────────────────────────────────────────────────
# LLM State
# ─────────────────────────────────────────────────────────────────────────────


async def get_llm_state() -> str:
    """
    Get the active LLM provider from llm_state table.
    If no row exists, returns first provider in LLM_CONFIG fallback_chain.
    """
    try:
        sb = get_supabase()
        response = (
            sb.table("llm_state")
            .select("active_provider")
            .eq("id", 1)
            .maybe_single()
            .execute()
        )
        if response is not None and response.data and response.data.get("active_provider"):
            return response.data["active_provider"]
        return LLM_CONFIG["fallback_chain"][0]
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db read failed", operation="get_llm_state", error=str(e), error_code=code)
        return LLM_CONFIG["fallback_chain"][0]


async def update_llm_state(provider: str, reason: str) -> None:
    """Upsert on id=1: active_provider, switched_at, switch_reason, updated_at."""
    try:
        sb = get_supabase()
        now = _now().isoformat()
        data = {
            "id": 1,
            "active_provider": provider,
            "switched_at": now,
            "switch_reason": reason,
            "updated_at": now,
        }
        sb.table("llm_state").upsert(data, on_conflict="id").execute()
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "db write failed", operation="update_llm_state", error=str(e), error_code=code)
