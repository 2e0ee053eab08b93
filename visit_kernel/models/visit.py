"""
Module: visit_kernel.models.visit
Responsibility: ORM persistence for the Visit record.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain types are imported lazily inside ``to_dto``).

Invariants enforced:
    - Enumerated columns are limited by CHECK constraints.
    - check_in_time set => approval_status = 'APPROVED'.
    - check_out_time set => check_in_time set and check_out_time >= check_in_time.
    - actual_duration_minutes is only present once the visit is checked out.
    - code and credential_token are unique.

Failure modes:
    - IntegrityError if a write would violate one of the constraints above.
      Coordinators check the same conditions before writing, so hitting
      one indicates a bug or a direct database write.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from visit_kernel.db.base import Base

if TYPE_CHECKING:
    from visit_kernel.domain.visit import Visit


class VisitModel(Base):
    """Persistent visit.

    Contract:
        Rows are never deleted by the engine.  Lifecycle columns move only
        through the coordinators' conditional updates.
    """

    __tablename__ = "visits"

    __table_args__ = (
        CheckConstraint(
            "visit_type IN ('PRE_APPROVED', 'WALK_IN', 'SCHEDULED')",
            name="ck_visits_valid_type",
        ),
        CheckConstraint(
            "approval_status IN ('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="ck_visits_valid_approval_status",
        ),
        CheckConstraint(
            "status IN ('SCHEDULED', 'IN_PROGRESS', 'COMPLETED', "
            "'CANCELLED', 'EXPIRED')",
            name="ck_visits_valid_status",
        ),
        CheckConstraint(
            "vehicle_type IS NULL OR vehicle_type IN "
            "('CAR', 'BIKE', 'SCOOTER', 'AUTO', 'OTHER')",
            name="ck_visits_valid_vehicle_type",
        ),
        CheckConstraint(
            "check_in_time IS NULL OR approval_status = 'APPROVED'",
            name="ck_visits_check_in_requires_approval",
        ),
        CheckConstraint(
            "check_out_time IS NULL OR "
            "(check_in_time IS NOT NULL AND check_out_time >= check_in_time)",
            name="ck_visits_check_out_after_check_in",
        ),
        CheckConstraint(
            "actual_duration_minutes IS NULL OR check_out_time IS NOT NULL",
            name="ck_visits_duration_at_check_out",
        ),
        CheckConstraint(
            "expected_duration_minutes IS NULL OR "
            "expected_duration_minutes BETWEEN 15 AND 1440",
            name="ck_visits_expected_duration_range",
        ),
        Index("ix_visits_building_created", "building_id", "created_at"),
        Index("ix_visits_building_status", "building_id", "status"),
        Index("ix_visits_host", "host_ref", "created_at"),
        Index("ix_visits_visitor", "visitor_ref", "created_at"),
        Index("ix_visits_credential_expiry", "status", "credential_expires_at"),
    )

    code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    building_id: Mapped[str] = mapped_column(String(64), nullable=False)
    visitor_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    host_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    host_flat_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    purpose: Mapped[str] = mapped_column(String(200), nullable=False)
    visit_type: Mapped[str] = mapped_column(String(20), nullable=False)
    approval_status: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_by_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    scheduled_time: Mapped[str | None] = mapped_column(String(10), nullable=True)
    expected_duration_minutes: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )
    vehicle_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    vehicle_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    credential_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True,
    )
    credential_issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    credential_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    check_in_time: Mapped[datetime | None] = mapped_column(nullable=True)
    check_out_time: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_duration_minutes: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )
    entry_evidence_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    exit_evidence_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    security_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    notified_host: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notified_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notified_check_in: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    notified_check_out: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Visit {self.code} building={self.building_id} "
            f"approval={self.approval_status} status={self.status}>"
        )

    def to_dto(self) -> Visit:
        """Convert ORM model to frozen domain DTO."""
        from visit_kernel.domain.visit import (
            ApprovalStatus,
            NotificationFlag,
            VehicleType,
            Visit,
            VisitStatus,
            VisitType,
        )

        sent = frozenset(
            flag for flag, on in (
                (NotificationFlag.HOST, self.notified_host),
                (NotificationFlag.ADMIN, self.notified_admin),
                (NotificationFlag.CHECK_IN, self.notified_check_in),
                (NotificationFlag.CHECK_OUT, self.notified_check_out),
            )
            if on
        )

        return Visit(
            id=self.id,
            code=self.code,
            building_id=self.building_id,
            visitor_ref=self.visitor_ref,
            purpose=self.purpose,
            visit_type=VisitType(self.visit_type),
            approval_status=ApprovalStatus(self.approval_status),
            status=VisitStatus(self.status),
            created_at=self.created_at,
            updated_at=self.updated_at,
            host_ref=self.host_ref,
            host_flat_number=self.host_flat_number,
            created_by=self.created_by,
            approved_by=self.approved_by,
            approved_by_name=self.approved_by_name,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            scheduled_date=self.scheduled_date,
            scheduled_time=self.scheduled_time,
            expected_duration_minutes=self.expected_duration_minutes,
            vehicle_number=self.vehicle_number,
            vehicle_type=(
                VehicleType(self.vehicle_type) if self.vehicle_type else None
            ),
            credential_token=self.credential_token,
            credential_issued_at=self.credential_issued_at,
            credential_expires_at=self.credential_expires_at,
            check_in_time=self.check_in_time,
            check_out_time=self.check_out_time,
            actual_duration_minutes=self.actual_duration_minutes,
            entry_evidence_ref=self.entry_evidence_ref,
            exit_evidence_ref=self.exit_evidence_ref,
            verified_by=self.verified_by,
            verified_at=self.verified_at,
            security_notes=self.security_notes,
            notifications_sent=sent,
        )


NOTIFICATION_FLAG_COLUMNS = {
    "host": "notified_host",
    "admin": "notified_admin",
    "check_in": "notified_check_in",
    "check_out": "notified_check_out",
}
