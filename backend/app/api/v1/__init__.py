"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    admin_sessions,
    admin_tokens,
    profiles,
    realtime,
    sessions,
)

api_router = APIRouter()

# Public (token or session id is the credential)
api_router.include_router(profiles.router, prefix="/p", tags=["Profiles"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])

# Admin (bearer token with admin role)
api_router.include_router(admin_tokens.router, prefix="/admin/tokens", tags=["Admin - Access Tokens"])
api_router.include_router(admin_sessions.router, prefix="/admin/sessions", tags=["Admin - Sessions"])
api_router.include_router(realtime.router, prefix="/ws", tags=["Realtime"])
