"""Public session endpoints used by the profile page after a scan.

The session id returned by ``GET /p/{token}`` is the only handle; it is
random and unguessable, so these endpoints need no further authentication.
"""

from fastapi import APIRouter, Request

from app.api.deps import DBSession
from app.core.errors import APIError, ErrorCode, NotFoundError, SessionNotFoundError
from app.core.rate_limit import RateLimits, limiter
from app.schemas.sessions import SessionActionCreate, SessionStatus
from app.services.session_recorder import SessionRecorder

router = APIRouter(responses={404: {"model": APIError, "description": "Session not found"}})


def _session_not_found() -> NotFoundError:
    return NotFoundError("Session not found", code=ErrorCode.SESSION_NOT_FOUND)


@router.post("/{session_id}/actions", response_model=SessionStatus)
@limiter.limit(RateLimits.SESSION_EVENTS)
async def record_session_action(
    request: Request,
    session_id: str,
    data: SessionActionCreate,
    db: DBSession,
):
    """Record a visitor action (call, share, download, print, view)."""
    try:
        session = await SessionRecorder(db).record_action(session_id, data.action, data.details)
    except SessionNotFoundError:
        raise _session_not_found()
    return SessionStatus.model_validate(session)


@router.post("/{session_id}/end", response_model=SessionStatus)
@limiter.limit(RateLimits.SESSION_EVENTS)
async def end_session(
    request: Request,
    session_id: str,
    db: DBSession,
):
    """End a session. Ending an already ended session returns its final state."""
    try:
        session = await SessionRecorder(db).end(session_id)
    except SessionNotFoundError:
        raise _session_not_found()
    return SessionStatus.model_validate(session)
