"""Admin session reporting and maintenance endpoints."""

from fastapi import APIRouter, Query, Request

from app.api.deps import AdminUser, DBSession
from app.core.errors import ErrorCode, NotFoundError, SessionNotFoundError, ValidationError
from app.core.rate_limit import RateLimits, get_admin_identifier, limiter
from app.models.entity import EntityRef, EntityType
from app.schemas.common import PaginatedResponse
from app.schemas.sessions import (
    SessionAnalytics,
    SessionCleanupRequest,
    SessionCleanupResponse,
    SessionOverview,
    SessionResponse,
)
from app.services.session_recorder import SessionRecorder

router = APIRouter()


def _entity_ref(entity_type: EntityType, entity_id: str) -> EntityRef:
    try:
        return EntityRef(entity_type, entity_id)
    except ValueError as e:
        raise ValidationError(str(e))


@router.get("", response_model=PaginatedResponse[SessionResponse])
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def list_sessions(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    entity_type: EntityType = Query(...),
    entity_id: str = Query(..., min_length=1, max_length=50),
    active: bool | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """Sessions for one student or artist, newest first."""
    sessions, total = await SessionRecorder(db).list_for_entity(
        _entity_ref(entity_type, entity_id), active=active, page=page, page_size=page_size
    )
    return PaginatedResponse[SessionResponse].build(
        items=[SessionResponse.model_validate(s) for s in sessions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/active", response_model=list[SessionResponse])
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def list_active_sessions(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    limit: int = Query(100, ge=1, le=500),
):
    """Currently active sessions across all profiles, newest first."""
    sessions = await SessionRecorder(db).list_active(limit=limit)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/analytics", response_model=SessionAnalytics)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def get_entity_analytics(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    entity_type: EntityType = Query(...),
    entity_id: str = Query(..., min_length=1, max_length=50),
    days: int = Query(30, ge=1, le=365),
):
    """Visitor analytics for one student or artist."""
    entity_ref = _entity_ref(entity_type, entity_id)
    return await SessionRecorder(db).entity_analytics(entity_ref, days=days)


@router.get("/overview", response_model=SessionOverview)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def get_overview(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    days: int = Query(7, ge=1, le=365),
):
    """Service-wide session statistics."""
    return await SessionRecorder(db).overview(days=days)


@router.post("/cleanup", response_model=SessionCleanupResponse)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def cleanup_sessions(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    data: SessionCleanupRequest | None = None,
):
    """End active sessions idle longer than ``inactivity_minutes`` (default 30)."""
    inactivity_minutes = data.inactivity_minutes if data else None
    closed = await SessionRecorder(db).cleanup_stale(inactivity_minutes)
    return SessionCleanupResponse(sessions_updated=closed)


@router.get("/{session_id}", response_model=SessionResponse)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def get_session(
    request: Request,
    session_id: str,
    db: DBSession,
    admin: AdminUser,
):
    """Details of one session including its action log."""
    try:
        session = await SessionRecorder(db).get(session_id)
    except SessionNotFoundError:
        raise NotFoundError("Session not found", code=ErrorCode.SESSION_NOT_FOUND)
    return SessionResponse.model_validate(session)
