"""Access token issuance, listing and revocation.

Tokens are 32 bytes of ``secrets`` randomness encoded as URL-safe base64 and
are the only identifier ever written to an NFC tag. A unique-constraint
violation on insert (a collision) is retried with a fresh value a bounded
number of times before the error propagates.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidTokenError
from app.core.metrics import access_tokens_created_total, access_tokens_revoked_total
from app.models.access_token import AccessToken, TokenKind
from app.models.base import utc_now
from app.models.entity import EntityRef, EntityType

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    """Opaque URL-safe token (43 characters)."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _entity_filter(entity_ref: EntityRef):
    column = (
        AccessToken.student_id
        if entity_ref.entity_type == EntityType.STUDENT
        else AccessToken.artist_id
    )
    return and_(AccessToken.entity_type == entity_ref.entity_type, column == entity_ref.entity_id)


class TokenStore:
    """
    Service for access token lifecycle.

    Each create/revoke/purge call commits its own transaction.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    async def _create(
        self,
        entity_ref: EntityRef,
        kind: TokenKind,
        expires_at: datetime | None = None,
        notes: str | None = None,
        created_by: str = "system",
    ) -> AccessToken:
        attempts = max(1, settings.TOKEN_GENERATION_ATTEMPTS)

        attempt = 0
        while True:
            attempt += 1
            token = AccessToken(
                entity_ref=entity_ref,
                token=generate_token(),
                kind=kind,
                is_used=False,
                expires_at=expires_at,
                notes=notes,
                created_by=created_by,
            )
            self.db.add(token)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if attempt == attempts:
                    logger.error(
                        f"Token generation for {entity_ref} failed after {attempts} attempts"
                    )
                    raise
                logger.warning(
                    f"Token collision for {entity_ref}, retrying ({attempt}/{attempts})"
                )
                continue
            break

        access_tokens_created_total.labels(kind=kind.value).inc()
        logger.info(
            f"Created {kind.value} access token {token.masked} for {entity_ref}",
            extra={
                "event_type": "token.created",
                "token_kind": kind.value,
                "entity_type": entity_ref.entity_type.value,
                "entity_id": entity_ref.entity_id,
            },
        )
        return token

    async def create_permanent(
        self,
        entity_ref: EntityRef,
        notes: str | None = None,
        created_by: str = "system",
    ) -> AccessToken:
        """Permanent token: no expiry, unlimited resolutions."""
        return await self._create(
            entity_ref, TokenKind.PERMANENT, notes=notes, created_by=created_by
        )

    async def create_temporary(
        self,
        entity_ref: EntityRef,
        hours_valid: float | None = None,
        notes: str | None = None,
        created_by: str = "system",
    ) -> AccessToken:
        """Temporary token valid until ``now + hours_valid``."""
        if hours_valid is None:
            hours_valid = settings.TEMPORARY_TOKEN_DEFAULT_HOURS
        if hours_valid < 0:
            raise ValueError("hours_valid must not be negative")

        expires_at = self.clock() + timedelta(hours=hours_valid)
        return await self._create(
            entity_ref,
            TokenKind.TEMPORARY,
            expires_at=expires_at,
            notes=notes,
            created_by=created_by,
        )

    async def create_one_time(
        self,
        entity_ref: EntityRef,
        notes: str | None = None,
        created_by: str = "system",
    ) -> AccessToken:
        """One-time token, consumed by its first successful resolution."""
        return await self._create(
            entity_ref, TokenKind.ONE_TIME, notes=notes, created_by=created_by
        )

    async def ensure_permanent(
        self,
        entity_ref: EntityRef,
        notes: str | None = None,
    ) -> AccessToken:
        """Return the entity's permanent token, creating one if none exists."""
        result = await self.db.execute(
            select(AccessToken)
            .where(_entity_filter(entity_ref), AccessToken.kind == TokenKind.PERMANENT)
            .order_by(AccessToken.created_at.asc())
            .limit(1)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        return await self.create_permanent(
            entity_ref, notes=notes or f"Auto-generated for {entity_ref}"
        )

    async def get(self, token: str) -> AccessToken | None:
        result = await self.db.execute(select(AccessToken).where(AccessToken.token == token))
        return result.scalar_one_or_none()

    async def get_by_id(self, token_id: str) -> AccessToken | None:
        result = await self.db.execute(select(AccessToken).where(AccessToken.id == token_id))
        return result.scalar_one_or_none()

    async def revoke(self, token: str) -> None:
        """Hard-delete a token by its string. Later resolutions fail as invalid."""
        result = await self.db.execute(delete(AccessToken).where(AccessToken.token == token))
        await self.db.commit()

        if result.rowcount == 0:
            raise InvalidTokenError()

        access_tokens_revoked_total.inc()
        logger.info(
            "Revoked access token",
            extra={"event_type": "token.revoked", "token_prefix": token[:10]},
        )

    async def revoke_by_id(self, token_id: str) -> None:
        """Hard-delete a token by its database id (admin surface)."""
        result = await self.db.execute(delete(AccessToken).where(AccessToken.id == token_id))
        await self.db.commit()

        if result.rowcount == 0:
            raise InvalidTokenError()

        access_tokens_revoked_total.inc()
        logger.info(
            f"Revoked access token {token_id}",
            extra={"event_type": "token.revoked", "token_id": token_id},
        )

    async def list_for_entity(self, entity_ref: EntityRef) -> list[AccessToken]:
        """All tokens for one entity, newest first."""
        result = await self.db.execute(
            select(AccessToken)
            .where(_entity_filter(entity_ref))
            .order_by(AccessToken.created_at.desc(), AccessToken.id.desc())
        )
        return list(result.scalars().all())

    async def purge_expired_temporary(self) -> int:
        """Delete temporary tokens whose expiry has passed. Returns rows removed."""
        now = self.clock()
        result = await self.db.execute(
            delete(AccessToken).where(
                AccessToken.kind == TokenKind.TEMPORARY,
                AccessToken.expires_at < now,
            )
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(
                f"Purged {result.rowcount} expired temporary tokens",
                extra={"event_type": "token.purged", "count": result.rowcount},
            )
        return result.rowcount or 0

    def describe(self, token: AccessToken) -> dict[str, Any]:
        """Admin view of a token. The full token string is never included."""
        now = self.clock()
        return {
            "id": token.id,
            "token": token.masked,
            "kind": token.kind.value,
            "entity_type": token.entity_type.value,
            "entity_id": token.entity_ref.entity_id,
            "is_valid": token.is_valid(now),
            "is_used": token.is_used,
            "used_at": token.used_at,
            "expires_at": token.expires_at,
            "access_count": token.access_count,
            "last_accessed_at": token.last_accessed_at,
            "created_by": token.created_by,
            "notes": token.notes,
            "created_at": token.created_at,
        }
