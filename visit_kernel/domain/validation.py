"""
Request field validation (kernel primitives).

Pure checks with no I/O.  Every failure raises ``InvalidRequestError``
naming the offending field, so the request boundary can answer 400 without
inspecting messages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from visit_kernel.domain.requests import (
    CheckOutRequest,
    CreateVisitRequest,
    DecideByName,
    DecideByRole,
    DecisionOutcome,
    ScanCredentialRequest,
    VisitQuery,
)
from visit_kernel.domain.visit import VisitType
from visit_kernel.exceptions import InvalidRequestError

SCHEDULED_TIME_PATTERN = re.compile(
    r"^([01]?[0-9]|2[0-3]):[0-5][0-9](\s?(AM|PM))?$",
    re.IGNORECASE,
)

REFERENCE_MAX = 64
FLAT_NUMBER_MAX = 20
EVIDENCE_REF_MAX = 255
TOKEN_MAX = 256


@dataclass(frozen=True)
class FieldLimits:
    """Maximum lengths and ranges for free-text and numeric request fields."""

    purpose_max: int = 200
    rejection_reason_max: int = 500
    security_notes_max: int = 1000
    approved_by_name_max: int = 100
    vehicle_number_max: int = 20
    duration_min_minutes: int = 15
    duration_max_minutes: int = 1440
    page_limit_max: int = 100
    search_text_max: int = 100


def require_text(value: str | None, name: str, max_length: int) -> str:
    """Return the trimmed value; reject blank or over-long text."""
    if value is None or not value.strip():
        raise InvalidRequestError(name, "is required")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidRequestError(
            name, f"cannot exceed {max_length} characters"
        )
    return value


def optional_text(value: str | None, name: str, max_length: int) -> str | None:
    if value is None or not value.strip():
        return None
    return require_text(value, name, max_length)


def require_duration(minutes: int | None, limits: FieldLimits) -> int | None:
    if minutes is None:
        return None
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidRequestError("expected_duration_minutes", "must be an integer")
    if not limits.duration_min_minutes <= minutes <= limits.duration_max_minutes:
        raise InvalidRequestError(
            "expected_duration_minutes",
            f"must be between {limits.duration_min_minutes} and "
            f"{limits.duration_max_minutes} minutes",
        )
    return minutes


def validate_create(
    request: CreateVisitRequest, limits: FieldLimits
) -> CreateVisitRequest:
    """Check a creation request and return a normalized copy."""
    purpose = require_text(request.purpose, "purpose", limits.purpose_max)
    visitor_ref = require_text(request.visitor_ref, "visitor_ref", REFERENCE_MAX)
    building_id = require_text(request.building_id, "building_id", REFERENCE_MAX)
    host_ref = optional_text(request.host_ref, "host_ref", REFERENCE_MAX)
    flat_number = optional_text(
        request.host_flat_number, "host_flat_number", FLAT_NUMBER_MAX
    )

    schedule = request.schedule
    if request.visit_type == VisitType.SCHEDULED and (
        schedule is None or schedule.scheduled_date is None
    ):
        raise InvalidRequestError(
            "scheduled_date", "is required for scheduled visits"
        )
    if schedule is not None:
        if schedule.scheduled_time is not None and not SCHEDULED_TIME_PATTERN.match(
            schedule.scheduled_time.strip()
        ):
            raise InvalidRequestError(
                "scheduled_time", "must be in HH:MM format, optionally with AM/PM"
            )
    require_duration(request.expected_duration_minutes, limits)

    vehicle = request.vehicle
    if vehicle is not None:
        number = require_text(vehicle.number, "vehicle_number", limits.vehicle_number_max)
        vehicle = replace(vehicle, number=number.upper())

    return replace(
        request,
        building_id=building_id,
        visitor_ref=visitor_ref,
        purpose=purpose,
        host_ref=host_ref,
        host_flat_number=flat_number,
        vehicle=vehicle,
    )


def validate_decision(
    request: DecideByRole | DecideByName, limits: FieldLimits
) -> DecideByRole | DecideByName:
    if isinstance(request, DecideByName):
        name = require_text(
            request.approved_by_name, "approved_by_name", limits.approved_by_name_max
        )
        return replace(request, approved_by_name=name)

    reason = optional_text(
        request.reason, "rejection_reason", limits.rejection_reason_max
    )
    if request.outcome == DecisionOutcome.REJECTED and reason is None:
        raise InvalidRequestError("rejection_reason", "is required when rejecting")
    notes = optional_text(
        request.security_notes, "security_notes", limits.security_notes_max
    )
    return replace(request, reason=reason, security_notes=notes)


def validate_scan(
    request: ScanCredentialRequest, limits: FieldLimits
) -> ScanCredentialRequest:
    token = require_text(request.token, "token", TOKEN_MAX)
    evidence = optional_text(request.evidence_ref, "evidence_ref", EVIDENCE_REF_MAX)
    notes = optional_text(
        request.security_notes, "security_notes", limits.security_notes_max
    )
    return replace(request, token=token, evidence_ref=evidence, security_notes=notes)


def validate_check_out(
    request: CheckOutRequest, limits: FieldLimits
) -> CheckOutRequest:
    visit_key = require_text(request.visit_key, "visit_key", REFERENCE_MAX)
    evidence = optional_text(request.evidence_ref, "evidence_ref", EVIDENCE_REF_MAX)
    notes = optional_text(
        request.security_notes, "security_notes", limits.security_notes_max
    )
    return replace(
        request, visit_key=visit_key, evidence_ref=evidence, security_notes=notes,
    )


def validate_query(query: VisitQuery, limits: FieldLimits) -> VisitQuery:
    if query.page < 1:
        raise InvalidRequestError("page", "must be at least 1")
    if not 1 <= query.limit <= limits.page_limit_max:
        raise InvalidRequestError(
            "limit", f"must be between 1 and {limits.page_limit_max}"
        )
    if (
        query.created_from is not None
        and query.created_to is not None
        and query.created_from > query.created_to
    ):
        raise InvalidRequestError("created_from", "must not be after created_to")
    text = optional_text(query.text, "query", limits.search_text_max)
    return replace(query, text=text)
