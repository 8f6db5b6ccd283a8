"""Access token admin schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.models.access_token import TokenKind
from app.models.entity import EntityRef, EntityType


class EntityRefIn(BaseModel):
    """Student or artist reference as accepted by admin endpoints."""

    entity_type: EntityType
    entity_id: str = Field(..., min_length=1, max_length=50)

    def to_ref(self) -> EntityRef:
        return EntityRef(self.entity_type, self.entity_id.strip())


class TokenCreate(EntityRefIn):
    """Issue a token of the requested kind."""

    kind: TokenKind = TokenKind.PERMANENT
    hours_valid: float | None = Field(None, ge=0, le=24 * 365)
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def hours_only_for_temporary(self) -> "TokenCreate":
        if self.hours_valid is not None and self.kind != TokenKind.TEMPORARY:
            raise ValueError("hours_valid only applies to temporary tokens")
        return self


class TokenIssued(BaseModel):
    """
    Response for a newly issued token.

    This is the only response that carries the full token string; listings
    show the masked prefix only.
    """

    id: str
    token: str
    url: str
    kind: TokenKind
    entity_type: EntityType
    entity_id: str
    expires_at: datetime | None = None
    created_at: datetime


class TokenSummary(BaseModel):
    """Masked admin view of a token."""

    id: str
    token: str  # first 10 characters + "..."
    kind: TokenKind
    entity_type: EntityType
    entity_id: str
    is_valid: bool
    is_used: bool
    used_at: datetime | None = None
    expires_at: datetime | None = None
    access_count: int
    last_accessed_at: datetime | None = None
    created_by: str
    notes: str | None = None
    created_at: datetime


class TokenListResponse(BaseModel):
    items: list[TokenSummary]
    total: int
