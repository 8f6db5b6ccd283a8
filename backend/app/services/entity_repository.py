"""Read access to students and artists plus the onboarding step.

Student and artist records are maintained by the school and artist admin
workflows. The token/session core reads them by public id and only ever
mutates their scan state (see ``ScanCounter``).
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.access_token import AccessToken
from app.models.entity import Artist, EntityRef, EntityType, ProfileEntity, Student
from app.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def nfc_url(token: str, base_url: str | None = None) -> str:
    """URL written to a physical tag for ``token``."""
    base = (base_url or settings.PUBLIC_PROFILE_BASE_URL).rstrip("/")
    return f"{base}/p/{token}"


class EntityRepository:
    """Lookup and creation of profile records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, entity_ref: EntityRef) -> ProfileEntity | None:
        if entity_ref.entity_type == EntityType.STUDENT:
            stmt = select(Student).where(Student.student_id == entity_ref.entity_id)
        else:
            stmt = select(Artist).where(Artist.artist_id == entity_ref.entity_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, entity_ref: EntityRef) -> ProfileEntity | None:
        """The referenced entity, or None when it is missing or deactivated."""
        entity = await self.get(entity_ref)
        if entity is None or not entity.is_active:
            return None
        return entity

    async def add_student(self, **fields: Any) -> Student:
        student = Student(**fields)
        self.db.add(student)
        await self.db.commit()
        logger.info(f"Added student {student.student_id}")
        return student

    async def add_artist(self, **fields: Any) -> Artist:
        artist = Artist(**fields)
        self.db.add(artist)
        await self.db.commit()
        logger.info(f"Added artist {artist.artist_id}")
        return artist


async def onboard_entity(
    db: AsyncSession,
    entity_type: EntityType,
    **fields: Any,
) -> tuple[ProfileEntity, AccessToken]:
    """
    Create a student or artist and make sure it has a permanent NFC token.

    The record and its token are committed separately; calling
    ``TokenStore.ensure_permanent`` again for an onboarded entity returns the
    existing token.
    """
    repository = EntityRepository(db)
    if EntityType(entity_type) == EntityType.STUDENT:
        entity = await repository.add_student(**fields)
    else:
        entity = await repository.add_artist(**fields)

    token = await TokenStore(db).ensure_permanent(
        entity.entity_ref,
        notes=f"NFC Tag for {entity.entity_ref.entity_type.value.title()} {entity.display_name}",
    )
    return entity, token
