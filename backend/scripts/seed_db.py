"""Seed the database with sample profiles and their NFC tokens."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.core.config import settings
from app.db.session import AsyncSessionLocal, Base, engine

# Import ALL models to register them with Base.metadata
from app.models import AccessToken, Artist, EntityType, ProfileSession, SessionAction, Student  # noqa: F401
from app.services.entity_repository import nfc_url, onboard_entity

SAMPLE_STUDENTS = [
    {
        "student_id": "SL1-01",
        "school_code": "SL1",
        "school_name": "Sunrise Lower School",
        "name": "Asha Rao",
        "roll_number": "01",
        "class_name": "5A",
        "blood_group": "O+",
        "mother_name": "Meera Rao",
        "mother_phone": "+91 90000 00001",
        "address": "12 Lake Road",
    },
    {
        "student_id": "SL1-02",
        "school_code": "SL1",
        "school_name": "Sunrise Lower School",
        "name": "Kabir Singh",
        "roll_number": "02",
        "class_name": "5A",
        "blood_group": "B+",
        "father_name": "Arjun Singh",
        "father_phone": "+91 90000 00002",
    },
]

SAMPLE_ARTISTS = [
    {
        "artist_id": "AT-01",
        "code": "AT-01",
        "name": "Lena Ortiz",
        "bio": "Muralist working with reclaimed materials.",
        "specialization": "Murals",
        "email": "lena@example.com",
        "instagram": "@lena.paints",
    },
]


async def seed_database():
    """Create tables and onboard the sample students and artists."""
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created successfully!")

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Student).limit(1))
        if result.scalar_one_or_none():
            print("Database already seeded!")
            return

        issued = []
        for fields in SAMPLE_STUDENTS:
            issued.append(await onboard_entity(db, EntityType.STUDENT, **fields))
        for fields in SAMPLE_ARTISTS:
            issued.append(await onboard_entity(db, EntityType.ARTIST, **fields))

        print("Database seeded successfully!")
        print(f"\nNFC tag URLs ({settings.PUBLIC_PROFILE_BASE_URL}):")
        for entity, token in issued:
            print(f"  {entity.entity_ref}: {nfc_url(token.token)}")


if __name__ == "__main__":
    asyncio.run(seed_database())
