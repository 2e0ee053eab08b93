"""
Visit domain types (``visit_kernel.domain.visit``).

Responsibility
--------------
Pure value objects for the visit lifecycle: visit type, the approval
sub-state machine, the presence sub-state, notification flags, the
credential pair and the frozen ``Visit`` projection handed to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``models/`` or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid approval transitions.
  Terminal approval states have no outgoing edges.
* ``initial_approval_status`` seeds APPROVED only for PRE_APPROVED visits.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from uuid import UUID


class VisitType(str, Enum):
    """How the visit entered the system. Immutable after creation."""

    PRE_APPROVED = "PRE_APPROVED"
    WALK_IN = "WALK_IN"
    SCHEDULED = "SCHEDULED"


class ApprovalStatus(str, Enum):
    """Approval sub-state: whether entry is authorized."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class VisitStatus(str, Enum):
    """Presence sub-state: physical movement of the visitor."""

    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class VehicleType(str, Enum):
    CAR = "CAR"
    BIKE = "BIKE"
    SCOOTER = "SCOOTER"
    AUTO = "AUTO"
    OTHER = "OTHER"


class NotificationFlag(str, Enum):
    """Which notifications have fired for a visit."""

    HOST = "host"
    ADMIN = "admin"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.CANCELLED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.CANCELLED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.CANCELLED,
})


def initial_approval_status(visit_type: VisitType) -> ApprovalStatus:
    """Seed the approval sub-state from the visit type."""
    if visit_type == VisitType.PRE_APPROVED:
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


def can_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


def generate_visit_code(at: datetime) -> str:
    """Human-readable unique code, e.g. ``VISIT_20240101120000_9F86D081``."""
    return f"VISIT_{at.strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4).upper()}"


@dataclass(frozen=True)
class Credential:
    """Opaque entry token and the end of its validity window."""

    token: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, at: datetime) -> bool:
        """Strictly after ``expires_at``; the boundary instant is still valid."""
        return at > self.expires_at


@dataclass(frozen=True)
class Visit:
    """Immutable projection of a visit record."""

    id: UUID
    code: str
    building_id: str
    visitor_ref: str
    purpose: str
    visit_type: VisitType
    approval_status: ApprovalStatus
    status: VisitStatus
    created_at: datetime
    updated_at: datetime
    host_ref: str | None = None
    host_flat_number: str | None = None
    created_by: str | None = None
    approved_by: str | None = None
    approved_by_name: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    expected_duration_minutes: int | None = None
    vehicle_number: str | None = None
    vehicle_type: VehicleType | None = None
    credential_token: str | None = None
    credential_issued_at: datetime | None = None
    credential_expires_at: datetime | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    actual_duration_minutes: int | None = None
    entry_evidence_ref: str | None = None
    exit_evidence_ref: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    security_notes: str | None = None
    notifications_sent: frozenset[NotificationFlag] = field(default_factory=frozenset)

    @property
    def is_checked_in(self) -> bool:
        return self.check_in_time is not None

    @property
    def is_checked_out(self) -> bool:
        return self.check_out_time is not None

    @property
    def credential(self) -> Credential | None:
        if self.credential_token is None:
            return None
        return Credential(
            token=self.credential_token,
            issued_at=self.credential_issued_at,
            expires_at=self.credential_expires_at,
        )

    def credential_expired(self, at: datetime) -> bool:
        credential = self.credential
        return credential is not None and credential.is_expired(at)

    def is_overdue(self, at: datetime) -> bool:
        """Checked in, not out, and past the expected duration."""
        if (
            self.expected_duration_minutes is None
            or self.check_in_time is None
            or self.check_out_time is not None
        ):
            return False
        expected_end = self.check_in_time + timedelta(
            minutes=self.expected_duration_minutes
        )
        return at > expected_end


@dataclass(frozen=True)
class VisitPage:
    """One page of a visit listing, newest first."""

    visits: tuple[Visit, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class VisitStats:
    """Aggregate counters for a building over an optional date range."""

    total_visits: int
    today_visits: int
    recent_visits: int
    average_duration_minutes: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_approval: dict[str, int]
