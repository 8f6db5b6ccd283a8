"""Profile session schemas."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from app.models.entity import EntityType
from app.models.profile_session import DeviceType, SessionActionType
from app.schemas.common import BaseSchema


class SessionActionCreate(BaseModel):
    """Action reported by the profile page."""

    action: SessionActionType
    details: str | None = Field(None, max_length=500)


class SessionActionResponse(BaseSchema):
    action_type: SessionActionType
    occurred_at: datetime
    details: str | None = None


class SessionStatus(BaseSchema):
    """Public view of a session, returned to the profile page."""

    session_id: str
    is_active: bool
    page_views: int
    duration: int
    duration_formatted: str


class SessionResponse(BaseSchema):
    """Admin view of a session."""

    session_id: str
    entity_type: EntityType
    student_id: str | None = None
    artist_id: str | None = None
    ip_address: str
    user_agent: str
    referrer: str | None = None
    device_type: DeviceType
    browser: str
    os: str
    start_time: datetime
    end_time: datetime | None = None
    duration: int
    duration_formatted: str
    is_active: bool
    page_views: int
    # ORM classes expose Base.metadata, so the column attribute is tried first
    session_metadata: dict[str, Any] | None = Field(
        None,
        validation_alias=AliasChoices("session_metadata", "metadata"),
        serialization_alias="metadata",
    )
    actions: list[SessionActionResponse] = []


class SessionCleanupRequest(BaseModel):
    inactivity_minutes: int | None = Field(None, ge=1, le=24 * 60)


class SessionCleanupResponse(BaseModel):
    success: bool = True
    message: str = "Cleanup completed"
    sessions_updated: int


class SessionAnalytics(BaseModel):
    total_sessions: int
    unique_visitors: int
    total_page_views: int
    avg_duration: int
    avg_page_views_per_session: float
    device_breakdown: dict[str, int]
    browser_breakdown: dict[str, int]
    hourly_breakdown: dict[int, int]
    period: str


class TopViewedEntity(BaseModel):
    entity_type: str
    entity_id: str
    view_count: int
    unique_views: int


class DailySessions(BaseModel):
    date: str
    sessions: int
    unique_visitors: int


class SessionOverview(BaseModel):
    period: str
    total_sessions: int
    active_sessions: int
    unique_visitors: int
    top_viewed: list[TopViewedEntity]
    device_breakdown: dict[str, int]
    browser_breakdown: dict[str, int]
    daily_trend: list[DailySessions]
