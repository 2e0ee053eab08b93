"""
Module: visit_kernel.db.base
Responsibility: Declarative base and column types shared by the ORM models:
    string-stored UUID keys and a UTC-normalizing timestamp type.
Architecture position: Kernel > DB.  Imported by models/ and nothing lower;
    imports nothing from the rest of the kernel.

Invariants enforced:
    - UUID primary keys: Every model inherits a uuid4-generated primary key.
    - Aware timestamps: every datetime column round-trips as a UTC-aware
      ``datetime`` on every backend (SQLite stores naive text, so values are
      normalized to UTC on the way in and re-tagged on the way out).

Failure modes:
    - ValueError if a naive datetime is bound to a UTCDateTime column.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUIDs as 36-character strings, so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Only aware datetimes may be bound.  Values are stored as UTC and
        always loaded back as UTC-aware, so comparisons against an injected
        Clock never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Every visit table row gets a uuid4 primary key and UTC-aware datetimes."""

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )
