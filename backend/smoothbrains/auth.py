"""
SmoothBrains Backend: Auth Helpers

Resolves the Supabase Auth JWT in `Authorization: Bearer <jwt>` to a user id.
"""

from fastapi import HTTPException, Request

from smoothbrains import db
from smoothbrains.config import generate_error_code, log


def get_current_user_id(request: Request) -> str | None:
    """
    Return the authenticated user's ID, or None if anonymous or the token
    does not resolve.
    """
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    if not token:
        return None

    try:
        response = db.get_supabase().auth.get_user(token)
    except Exception as e:
        log("WARN", "auth token rejected", error=str(e), error_code=generate_error_code())
        return None

    user = getattr(response, "user", None)
    return str(user.id) if user and getattr(user, "id", None) else None


def require_user_id(request: Request) -> str:
    """Like get_current_user_id but 401s for anonymous requests."""
    user_id = get_current_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id
