"""
SmoothBrains Backend: Sessions API (/api/sessions)

CRUD for brainstorming sessions owned by the authenticated user.
"""

from fastapi import APIRouter, Depends, HTTPException

from smoothbrains import conversation, db
from smoothbrains.auth import require_user_id
from smoothbrains.config import generate_error_code, log
from smoothbrains.models import SessionCreateRequest, SessionRenameRequest, SessionStateRequest

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _write_failed(operation: str, session_id: str | None = None) -> HTTPException:
    code = generate_error_code()
    log("ERROR", "session write failed", operation=operation, session_id=session_id, error_code=code)
    return HTTPException(status_code=500, detail={"message": "Could not save the session.", "error_code": code})


async def _owned_session(user_id: str, session_id: str) -> dict:
    session = await db.get_session(user_id, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("")
async def list_sessions(user_id: str = Depends(require_user_id)):
    """GET /api/sessions. Most recently updated first."""
    return {"sessions": await db.list_sessions(user_id)}


@router.post("", status_code=201)
async def create_session(body: SessionCreateRequest, user_id: str = Depends(require_user_id)):
    """
    POST /api/sessions

    Without a name, one word describing the idea in `state` is generated.
    """
    name = (body.name or "").strip()
    if not name:
        context = body.state.get("currentIdea") or body.state.get("idea")
        name = await conversation.generate_session_name(context)

    session = await db.create_session(user_id, name, body.state)
    if not session:
        raise _write_failed("create_session")
    log("INFO", "session created", session_id=session.get("id"), user_id=user_id)
    return session


@router.get("/{session_id}")
async def get_session(session_id: str, user_id: str = Depends(require_user_id)):
    """GET /api/sessions/{session_id}. 404 when missing or owned by someone else."""
    return await _owned_session(user_id, session_id)


@router.put("/{session_id}/state")
async def save_state(session_id: str, body: SessionStateRequest, user_id: str = Depends(require_user_id)):
    """PUT /api/sessions/{session_id}/state"""
    await _owned_session(user_id, session_id)
    session = await db.update_session(user_id, session_id, {"state": body.state})
    if not session:
        raise _write_failed("save_state", session_id)
    return session


@router.patch("/{session_id}")
async def rename_session(session_id: str, body: SessionRenameRequest, user_id: str = Depends(require_user_id)):
    """PATCH /api/sessions/{session_id}. Body: { name }"""
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Session name cannot be empty")

    await _owned_session(user_id, session_id)
    session = await db.update_session(user_id, session_id, {"name": name})
    if not session:
        raise _write_failed("rename_session", session_id)
    return session


@router.delete("/{session_id}")
async def delete_session(session_id: str, user_id: str = Depends(require_user_id)):
    """DELETE /api/sessions/{session_id}. Also removes the session's dashboard tiles."""
    if not await db.delete_session(user_id, session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    log("INFO", "session deleted", session_id=session_id, user_id=user_id)
    return {"success": True}


@router.post("/{session_id}/duplicate", status_code=201)
async def duplicate_session(session_id: str, user_id: str = Depends(require_user_id)):
    """POST /api/sessions/{session_id}/duplicate. The copy is named '<name> (Copy)'."""
    original = await _owned_session(user_id, session_id)
    copy = await db.create_session(user_id, f"{original.get('name') or 'Session'} (Copy)", original.get("state") or {})
    if not copy:
        raise _write_failed("duplicate_session", session_id)
    return copy
