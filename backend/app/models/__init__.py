"""Database models for NFC Profile Access."""

from app.models.access_token import AccessToken, TokenKind
from app.models.entity import Artist, EntityRef, EntityType, Student
from app.models.profile_session import (
    DeviceType,
    ProfileSession,
    SessionAction,
    SessionActionType,
)

__all__ = [
    # Profiles
    "Student",
    "Artist",
    "EntityRef",
    "EntityType",
    # Tokens
    "AccessToken",
    "TokenKind",
    # Sessions
    "ProfileSession",
    "SessionAction",
    "SessionActionType",
    "DeviceType",
]
