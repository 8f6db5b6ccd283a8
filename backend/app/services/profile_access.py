"""Public profile access: the fixed-order flow behind ``GET /p/{token}``.

    resolve token -> load active entity -> record scan -> begin session -> notify

Only the first two steps can fail the request. Resolution commits before
anything else runs, so a one-time token stays consumed even if a later step
fails. The scan, session and notification steps are best effort: each is
attempted independently and its failure is logged and counted but never
surfaced.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import EntityNotFoundError
from app.core.logging_config import token_event, token_logger
from app.core.metrics import track_best_effort_failure, track_token_resolution
from app.models.base import utc_now
from app.models.entity import Artist, EntityRef, ProfileEntity, Student
from app.services.entity_repository import EntityRepository
from app.services.notifier import ScanBroadcaster, ScanEvent
from app.services.scan_counter import ScanCounter
from app.services.session_recorder import SessionRecorder
from app.services.token_resolver import TokenResolver

logger = logging.getLogger(__name__)


@dataclass
class ProfileAccessResult:
    session_id: str | None
    data: dict[str, Any]


def build_profile_projection(entity: ProfileEntity) -> dict[str, Any]:
    """Public view of a profile. Database ids and tokens are never included."""
    if isinstance(entity, Student):
        return {
            "type": "student",
            "name": entity.name,
            "roll_number": entity.roll_number,
            "class_name": entity.class_name,
            "photo": entity.photo,
            "blood_group": entity.blood_group,
            "mother_name": entity.mother_name,
            "father_name": entity.father_name,
            "mother_phone": entity.mother_phone,
            "father_phone": entity.father_phone,
            "address": entity.address,
            "school": {"code": entity.school_code, "name": entity.school_name},
            "scan_count": entity.scan_count,
            "last_scanned": entity.last_scanned,
        }

    if isinstance(entity, Artist):
        return {
            "type": "artist",
            "name": entity.name,
            "code": entity.code,
            "bio": entity.bio,
            "photo": entity.photo,
            "phone": entity.phone,
            "email": entity.email,
            "website": entity.website,
            "instagram": entity.instagram,
            "facebook": entity.facebook,
            "twitter": entity.twitter,
            "specialization": entity.specialization,
            "scan_count": entity.scan_count,
            "last_scanned": entity.last_scanned,
        }

    raise TypeError(f"Unsupported profile entity: {type(entity).__name__}")


class ProfileAccessService:
    """Orchestrates token resolution and the best-effort steps that follow it."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: ScanBroadcaster | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def access(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> ProfileAccessResult:
        """
        Resolve ``token`` and return the profile projection with a new session id.

        Raises:
            TokenResolutionError: the token is invalid, expired or used, or
                its entity is missing or deactivated
        """
        resolution = await TokenResolver(self.db, self.clock).resolve(
            token, ip_address, user_agent
        )
        entity_ref = resolution.entity_ref

        entity = await EntityRepository(self.db).get_active(entity_ref)
        if entity is None:
            # A valid token whose profile is gone or deactivated is a data problem
            track_token_resolution(EntityNotFoundError.outcome)
            token_logger.error(
                f"Token resolved to missing or inactive {entity_ref}",
                extra=token_event(
                    EntityNotFoundError.outcome,
                    severity="error",
                    ip_address=ip_address,
                    entity_type=entity_ref.entity_type.value,
                    entity_id=entity_ref.entity_id,
                    token_kind=resolution.token_kind.value,
                    code=EntityNotFoundError.code.value,
                ),
            )
            raise EntityNotFoundError()

        # Everything read from the ORM instance happens before the best-effort
        # steps; a rollback in one of them expires the instance.
        projection = build_profile_projection(entity)
        display_name = entity.display_name
        subtitle = entity.display_subtitle

        scan_count = await self._record_scan(entity, resolution.accessed_at, ip_address, user_agent)
        if scan_count is not None:
            projection["scan_count"] = scan_count
            projection["last_scanned"] = resolution.accessed_at

        session = await self._begin_session(
            entity_ref,
            ip_address,
            user_agent,
            referrer,
            metadata={
                "name": display_name,
                "subtitle": subtitle,
                "entity_type": entity_ref.entity_type.value,
                "access_token": resolution.token_prefix,
            },
        )
        session_id = session[0] if session else None
        device_type = session[1] if session else None

        self._notify(
            ScanEvent(
                entity_type=entity_ref.entity_type,
                entity_id=entity_ref.entity_id,
                display_name=display_name,
                subtitle=subtitle,
                scan_count=projection["scan_count"],
                session_id=session_id,
                device_type=device_type,
                timestamp=resolution.accessed_at,
            )
        )

        return ProfileAccessResult(session_id=session_id, data=projection)

    async def _record_scan(
        self,
        entity: ProfileEntity,
        scanned_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> int | None:
        entity_ref = entity.entity_ref
        try:
            return await ScanCounter(self.db, self.clock).record_scan(
                entity, ip_address, user_agent, scanned_at=scanned_at
            )
        except Exception:
            logger.exception(f"Scan recording failed for {entity_ref}")
            track_best_effort_failure("scan")
            await self._rollback()
            return None

    async def _begin_session(
        self,
        entity_ref: EntityRef,
        ip_address: str | None,
        user_agent: str | None,
        referrer: str | None,
        metadata: dict[str, Any],
    ) -> tuple[str, str] | None:
        try:
            session = await SessionRecorder(self.db, self.clock).begin(
                entity_ref,
                ip_address=ip_address,
                user_agent=user_agent,
                referrer=referrer,
                metadata=metadata,
            )
            return session.session_id, session.device_type.value
        except Exception:
            logger.exception(f"Session creation failed for {entity_ref}")
            track_best_effort_failure("session")
            await self._rollback()
            return None

    def _notify(self, event: ScanEvent) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(event)
        except Exception:
            logger.exception(
                f"Scan notification failed for {event.entity_type.value}:{event.entity_id}"
            )
            track_best_effort_failure("notify")

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except Exception:
            logger.exception("Rollback after best-effort failure failed")
