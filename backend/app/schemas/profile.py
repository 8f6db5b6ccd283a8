"""Public profile projection schemas.

These are the only shapes returned by the unauthenticated profile endpoint.
They carry no database ids and never echo the access token.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class SchoolInfo(BaseModel):
    code: str
    name: str | None = None


class StudentProfile(BaseModel):
    type: Literal["student"] = "student"
    name: str
    roll_number: str
    class_name: str
    photo: str | None = None
    blood_group: str | None = None
    mother_name: str | None = None
    father_name: str | None = None
    mother_phone: str | None = None
    father_phone: str | None = None
    address: str | None = None
    school: SchoolInfo
    scan_count: int
    last_scanned: datetime | None = None


class ArtistProfile(BaseModel):
    type: Literal["artist"] = "artist"
    name: str
    code: str | None = None
    bio: str = ""
    photo: str | None = None
    phone: str = ""
    email: str = ""
    website: str = ""
    instagram: str = ""
    facebook: str = ""
    twitter: str = ""
    specialization: str = ""
    scan_count: int
    last_scanned: datetime | None = None


ProfileProjection = Annotated[StudentProfile | ArtistProfile, Field(discriminator="type")]


class ProfileResponse(BaseModel):
    """Response for a successful NFC resolution."""

    success: bool = True
    session_id: str | None = None
    data: ProfileProjection
