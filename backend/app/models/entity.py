"""Profile entities (students and artists) and the tagged entity reference.

Students and artists are owned by the school/artist administration workflows.
The token/session core only reads them and mutates their scan state.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db.session import Base
from app.models.base import TimestampMixin, UTCDateTime, UUIDMixin


class EntityType(str, Enum):
    """Kind of profile a token or session points at."""

    STUDENT = "student"
    ARTIST = "artist"


@dataclass(frozen=True)
class EntityRef:
    """Reference to exactly one student or artist by its public entity id.

    Examples: ``EntityRef(EntityType.STUDENT, "SL1-01")``,
    ``EntityRef(EntityType.ARTIST, "AT-07")``.
    """

    entity_type: EntityType
    entity_id: str

    def __post_init__(self) -> None:
        try:
            entity_type = EntityType(self.entity_type)
        except ValueError:
            raise ValueError(f"Unknown entity type: {self.entity_type!r}") from None
        object.__setattr__(self, "entity_type", entity_type)

        if not isinstance(self.entity_id, str) or not self.entity_id.strip():
            raise ValueError("entity_id must be a non-empty string")

    @classmethod
    def student(cls, student_id: str) -> "EntityRef":
        return cls(EntityType.STUDENT, student_id)

    @classmethod
    def artist(cls, artist_id: str) -> "EntityRef":
        return cls(EntityType.ARTIST, artist_id)

    def column_values(self) -> dict[str, Any]:
        """Column values for a row carrying this reference."""
        return {
            "entity_type": self.entity_type,
            "student_id": self.entity_id if self.entity_type == EntityType.STUDENT else None,
            "artist_id": self.entity_id if self.entity_type == EntityType.ARTIST else None,
        }

    def __str__(self) -> str:
        return f"{self.entity_type.value}:{self.entity_id}"


def _entity_ref_from_columns(values: dict[str, Any]) -> EntityRef:
    """Build an EntityRef from raw column kwargs, rejecting ambiguous combinations."""
    student_id = values.get("student_id")
    artist_id = values.get("artist_id")
    if student_id and artist_id:
        raise ValueError("Only one of student_id / artist_id may be set")

    entity_type = EntityType(values.get("entity_type")) if values.get("entity_type") else None
    if entity_type is None:
        raise ValueError("An entity reference is required")

    entity_id = student_id if entity_type == EntityType.STUDENT else artist_id
    if not entity_id:
        raise ValueError(f"{entity_type.value} reference requires {entity_type.value}_id")
    return EntityRef(entity_type, entity_id)


class EntityRefMixin:
    """Discriminated student/artist reference columns.

    Exactly one of ``student_id`` / ``artist_id`` is populated and it must
    match ``entity_type``. Rows are built from an :class:`EntityRef` and the
    pairing is also enforced by a CHECK constraint. The mixin must precede
    ``Base`` in the class bases so its constructor runs first.
    """

    entity_type: Mapped[EntityType] = mapped_column(
        SQLEnum(
            EntityType,
            name="entity_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    student_id: Mapped[str | None] = mapped_column(String(50), index=True)
    artist_id: Mapped[str | None] = mapped_column(String(50), index=True)

    @classmethod
    def entity_ref_constraint(cls, table_name: str) -> CheckConstraint:
        return CheckConstraint(
            "(entity_type = 'student' AND student_id IS NOT NULL AND artist_id IS NULL) "
            "OR (entity_type = 'artist' AND artist_id IS NOT NULL AND student_id IS NULL)",
            name=f"ck_{table_name}_entity_ref",
        )

    def __init__(self, *, entity_ref: EntityRef | None = None, **kwargs: Any) -> None:
        if entity_ref is None:
            entity_ref = _entity_ref_from_columns(kwargs)
        kwargs.update(entity_ref.column_values())
        super().__init__(**kwargs)

    @property
    def entity_ref(self) -> EntityRef:
        entity_id = self.student_id if self.entity_type == EntityType.STUDENT else self.artist_id
        return EntityRef(self.entity_type, entity_id)


class ScanStateMixin:
    """Scan counter state owned by the profile record, mutated on every NFC resolution."""

    scan_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_scanned: Mapped[datetime | None] = mapped_column(UTCDateTime())
    # [{"scanned_at": iso8601, "ip_address": str | None, "user_agent": str | None}, ...]
    scan_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class Student(Base, UUIDMixin, TimestampMixin, ScanStateMixin):
    """Student profile. ``student_id`` format: ``{SchoolCode}-{NN}`` (e.g. SL1-01)."""

    __tablename__ = "students"

    student_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    school_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    school_name: Mapped[str | None] = mapped_column(String(200))

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    roll_number: Mapped[str] = mapped_column(String(50), nullable=False)
    class_name: Mapped[str] = mapped_column(String(50), nullable=False)
    photo: Mapped[str | None] = mapped_column(String(500))
    blood_group: Mapped[str | None] = mapped_column(String(10))
    mother_name: Mapped[str | None] = mapped_column(String(100))
    father_name: Mapped[str | None] = mapped_column(String(100))
    mother_phone: Mapped[str | None] = mapped_column(String(30))
    father_phone: Mapped[str | None] = mapped_column(String(30))
    address: Mapped[str | None] = mapped_column(Text)

    @property
    def entity_ref(self) -> EntityRef:
        return EntityRef.student(self.student_id)

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def display_subtitle(self) -> str:
        return self.roll_number


class Artist(Base, UUIDMixin, TimestampMixin, ScanStateMixin):
    """Artist profile. ``artist_id`` format: ``AT-{NN}``."""

    __tablename__ = "artists"

    artist_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(50), unique=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False, default="New Artist")
    bio: Mapped[str] = mapped_column(Text, default="", nullable=False)
    photo: Mapped[str | None] = mapped_column(String(500))
    phone: Mapped[str] = mapped_column(String(30), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    website: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    instagram: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    facebook: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    twitter: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    specialization: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    owner_email: Mapped[str | None] = mapped_column(String(255), index=True)

    @validates("email", "owner_email")
    def _lowercase_email(self, key: str, value: str | None) -> str | None:
        return value.strip().lower() if value else value

    @property
    def entity_ref(self) -> EntityRef:
        return EntityRef.artist(self.artist_id)

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def display_subtitle(self) -> str:
        return self.specialization


ProfileEntity = Student | Artist
