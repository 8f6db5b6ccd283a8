"""Pydantic schemas for API validation."""

from app.schemas.common import HealthResponse, PaginatedResponse
from app.schemas.profile import ArtistProfile, ProfileResponse, StudentProfile
from app.schemas.sessions import (
    SessionActionCreate,
    SessionAnalytics,
    SessionCleanupRequest,
    SessionCleanupResponse,
    SessionOverview,
    SessionResponse,
    SessionStatus,
)
from app.schemas.tokens import TokenCreate, TokenIssued, TokenListResponse, TokenSummary

__all__ = [
    # Common
    "HealthResponse",
    "PaginatedResponse",
    # Profile
    "ProfileResponse",
    "StudentProfile",
    "ArtistProfile",
    # Sessions
    "SessionActionCreate",
    "SessionAnalytics",
    "SessionCleanupRequest",
    "SessionCleanupResponse",
    "SessionOverview",
    "SessionResponse",
    "SessionStatus",
    # Tokens
    "TokenCreate",
    "TokenIssued",
    "TokenListResponse",
    "TokenSummary",
]
