"""Resolve a presented access token string to the profile it points at.

Validation and mutation happen in one conditional UPDATE:

    UPDATE access_tokens SET access_count = access_count + 1, ...
    WHERE token = :t AND (<token is still valid at :now>)
    RETURNING entity_type, student_id, artist_id, ...

For one-time tokens the predicate includes ``is_used = false``, so of N
concurrent resolutions exactly one matches a row; the rest see zero rows and
are classified by re-reading the token. No row lock or read-then-write window
exists on the success path.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, case, false, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InvalidTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenResolutionError,
)
from app.core.logging_config import token_event, token_logger
from app.core.metrics import track_token_resolution
from app.models.access_token import AccessToken, TokenKind
from app.models.base import utc_now
from app.models.entity import EntityRef, EntityType

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 500
MAX_IP_LENGTH = 45


@dataclass(frozen=True)
class Resolution:
    """Outcome of a successful resolution and the telemetry written for it."""

    entity_ref: EntityRef
    token_kind: TokenKind
    token_prefix: str
    access_count: int
    accessed_at: datetime
    ip_address: str | None
    user_agent: str | None


def _still_valid(now: datetime):
    """SQL predicate equivalent to ``AccessToken.is_valid(now)``."""
    return or_(
        AccessToken.kind == TokenKind.PERMANENT,
        and_(AccessToken.kind == TokenKind.ONE_TIME, AccessToken.is_used == false()),
        and_(
            AccessToken.kind == TokenKind.TEMPORARY,
            or_(AccessToken.expires_at.is_(None), AccessToken.expires_at >= now),
        ),
    )


class TokenResolver:
    """Atomic check-then-mutate resolution of raw token strings."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    async def resolve(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Resolution:
        """
        Validate ``token`` and record the access.

        Raises:
            InvalidTokenError: no token matches
            TokenAlreadyUsedError: one-time token already consumed
            TokenExpiredError: temporary token past expiry
        """
        if not token:
            self._record_failure(InvalidTokenError(), ip_address)
            raise InvalidTokenError()

        now = self.clock()
        ip_address = ip_address[:MAX_IP_LENGTH] if ip_address else None
        user_agent = user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None
        is_one_time = AccessToken.kind == TokenKind.ONE_TIME

        stmt = (
            update(AccessToken)
            .where(AccessToken.token == token, _still_valid(now))
            .values(
                access_count=AccessToken.access_count + 1,
                last_accessed_at=now,
                ip_address=ip_address,
                user_agent=user_agent,
                is_used=case((is_one_time, True), else_=AccessToken.is_used),
                used_at=case((is_one_time, now), else_=AccessToken.used_at),
                updated_at=now,
            )
            .returning(
                AccessToken.entity_type,
                AccessToken.student_id,
                AccessToken.artist_id,
                AccessToken.kind,
                AccessToken.access_count,
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(stmt)
        row = result.first()
        # Commit immediately so the consumption is durable before any later step runs
        await self.db.commit()

        if row is None:
            error = await self._classify_failure(token, now)
            self._record_failure(error, ip_address)
            raise error

        entity_type, student_id, artist_id, kind, access_count = row
        entity_type = EntityType(entity_type)
        entity_id = student_id if entity_type == EntityType.STUDENT else artist_id

        resolution = Resolution(
            entity_ref=EntityRef(entity_type, entity_id),
            token_kind=TokenKind(kind),
            token_prefix=f"{token[:10]}...",
            access_count=access_count,
            accessed_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        track_token_resolution("success")
        token_logger.info(
            "Token resolved",
            extra=token_event(
                "success",
                ip_address=ip_address,
                entity_type=entity_type.value,
                entity_id=entity_id,
                token_kind=resolution.token_kind.value,
            ),
        )
        return resolution

    async def _classify_failure(self, token: str, now: datetime) -> TokenResolutionError:
        """Re-read a token that matched no row to decide why it was rejected."""
        result = await self.db.execute(
            select(AccessToken)
            .where(AccessToken.token == token)
            .execution_options(populate_existing=True)
        )
        existing = result.scalar_one_or_none()

        if existing is None:
            return InvalidTokenError()
        if existing.is_consumed:
            return TokenAlreadyUsedError()
        if existing.is_expired(now):
            return TokenExpiredError()

        # Valid on re-read: the row changed between the update and the read.
        # Treat as a miss rather than serving the profile without recording the access.
        logger.warning("Token matched no row but re-read as valid")
        return InvalidTokenError()

    def _record_failure(self, error: TokenResolutionError, ip_address: str | None) -> None:
        track_token_resolution(error.outcome)
        token_logger.warning(
            "Token resolution failed",
            extra=token_event(
                error.outcome,
                severity="warning",
                ip_address=ip_address,
                code=error.code.value,
            ),
        )
