"""
Discriminated request types, one per engine operation.

Each operation accepts exactly one request shape so the legal field
combinations are visible in the type rather than validated ad hoc against
a loose "update" payload.  Field limits are checked by
``visit_kernel.domain.validation``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from visit_kernel.domain.visit import (
    ApprovalStatus,
    VehicleType,
    VisitStatus,
    VisitType,
)


class DecisionOutcome(str, Enum):
    """Terminal outcomes a decision may move a PENDING visit to."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def approval_status(self) -> ApprovalStatus:
        return ApprovalStatus(self.value)


@dataclass(frozen=True)
class VisitSchedule:
    scheduled_date: date
    scheduled_time: str | None = None


@dataclass(frozen=True)
class VehicleInfo:
    number: str
    vehicle_type: VehicleType = VehicleType.OTHER


@dataclass(frozen=True)
class CreateVisitRequest:
    building_id: str
    visitor_ref: str
    purpose: str
    visit_type: VisitType = VisitType.WALK_IN
    host_ref: str | None = None
    host_flat_number: str | None = None
    schedule: VisitSchedule | None = None
    expected_duration_minutes: int | None = None
    vehicle: VehicleInfo | None = None


@dataclass(frozen=True)
class DecideByRole:
    """Approve, reject or cancel under the actor's own identity."""

    building_id: str
    visit_key: str
    outcome: DecisionOutcome
    reason: str | None = None
    security_notes: str | None = None


@dataclass(frozen=True)
class DecideByName:
    """Approve on behalf of a host without an account, recording a name."""

    building_id: str
    visit_key: str
    approved_by_name: str

    @property
    def outcome(self) -> DecisionOutcome:
        return DecisionOutcome.APPROVED


@dataclass(frozen=True)
class ScanCredentialRequest:
    building_id: str
    token: str
    evidence_ref: str | None = None
    security_notes: str | None = None


@dataclass(frozen=True)
class CheckOutRequest:
    building_id: str
    visit_key: str
    evidence_ref: str | None = None
    security_notes: str | None = None


@dataclass(frozen=True)
class VisitQuery:
    """
    Filters for listing one building's visits.

    ``text`` matches case-insensitively anywhere in the visit code, purpose,
    host flat number or vehicle number.  ``active_only`` keeps visits that
    are SCHEDULED or IN_PROGRESS.
    """

    building_id: str
    page: int = 1
    limit: int = 10
    status: VisitStatus | None = None
    visit_type: VisitType | None = None
    approval_status: ApprovalStatus | None = None
    host_ref: str | None = None
    visitor_ref: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    text: str | None = None
    active_only: bool = False
