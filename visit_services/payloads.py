"""
Payload parsing: loose request bodies -> discriminated request types.

Every operation has exactly one parser.  Missing required fields, wrong
types and unknown enum values raise ``InvalidRequestError`` naming the
field; length limits are left to the kernel's validation.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, TypeVar

from visit_kernel.domain.requests import (
    CheckOutRequest,
    CreateVisitRequest,
    DecideByName,
    DecideByRole,
    DecisionOutcome,
    ScanCredentialRequest,
    VehicleInfo,
    VisitQuery,
    VisitSchedule,
)
from visit_kernel.domain.visit import (
    ApprovalStatus,
    VehicleType,
    VisitStatus,
    VisitType,
)
from visit_kernel.exceptions import InvalidRequestError

E = TypeVar("E", bound=Enum)

INTEGER_PATTERN = re.compile(r"^\s*-?[0-9]+\s*$", re.ASCII)
FLAG_VALUES = {"true": True, "1": True, "false": False, "0": False}


def _require_str(body: Mapping[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(name, "is required")
    return value


def _optional_str(body: Mapping[str, Any], name: str) -> str | None:
    value = body.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(name, "must be a string")
    return value


def _enum(enum_cls: type[E], value: Any, name: str) -> E:
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_cls)
    raise InvalidRequestError(name, f"must be one of {allowed}")


def _optional_enum(enum_cls: type[E], body: Mapping[str, Any], name: str) -> E | None:
    value = body.get(name)
    if value is None or value == "":
        return None
    return _enum(enum_cls, value, name)


def _optional_int(body: Mapping[str, Any], name: str, default: int | None = None) -> int | None:
    value = body.get(name)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidRequestError(name, "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and INTEGER_PATTERN.match(value):
        return int(value)
    raise InvalidRequestError(name, "must be an integer")


def _optional_flag(body: Mapping[str, Any], name: str) -> bool:
    value = body.get(name)
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in FLAG_VALUES:
        return FLAG_VALUES[value.strip().lower()]
    raise InvalidRequestError(name, "must be true or false")


def _optional_date(body: Mapping[str, Any], name: str) -> date | None:
    value = body.get(name)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidRequestError(name, "must be an ISO date (YYYY-MM-DD)") from None


def _optional_datetime(body: Mapping[str, Any], name: str) -> datetime | None:
    value = body.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except ValueError:
            raise InvalidRequestError(name, "must be an ISO timestamp") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_create(building_id: str, body: Mapping[str, Any]) -> CreateVisitRequest:
    visit_type = _optional_enum(VisitType, body, "visit_type") or VisitType.WALK_IN

    scheduled_date = _optional_date(body, "scheduled_date")
    scheduled_time = _optional_str(body, "scheduled_time")
    schedule = None
    if scheduled_date is not None:
        schedule = VisitSchedule(
            scheduled_date=scheduled_date, scheduled_time=scheduled_time,
        )
    elif scheduled_time is not None:
        raise InvalidRequestError("scheduled_date", "is required with scheduled_time")

    vehicle = None
    raw_vehicle = body.get("vehicle")
    if raw_vehicle is not None:
        if not isinstance(raw_vehicle, Mapping):
            raise InvalidRequestError("vehicle", "must be an object")
        vehicle = VehicleInfo(
            number=_require_str(raw_vehicle, "number"),
            vehicle_type=(
                _optional_enum(VehicleType, raw_vehicle, "type") or VehicleType.OTHER
            ),
        )

    return CreateVisitRequest(
        building_id=building_id,
        visitor_ref=_require_str(body, "visitor_ref"),
        purpose=_require_str(body, "purpose"),
        visit_type=visit_type,
        host_ref=_optional_str(body, "host_ref"),
        host_flat_number=_optional_str(body, "host_flat_number"),
        schedule=schedule,
        expected_duration_minutes=_optional_int(body, "expected_duration_minutes"),
        vehicle=vehicle,
    )


def parse_decision(
    building_id: str, visit_key: str, body: Mapping[str, Any]
) -> DecideByRole:
    if body.get("outcome") is None:
        raise InvalidRequestError("outcome", "is required")
    return DecideByRole(
        building_id=building_id,
        visit_key=visit_key,
        outcome=_enum(DecisionOutcome, body.get("outcome"), "outcome"),
        reason=_optional_str(body, "reason"),
        security_notes=_optional_str(body, "security_notes"),
    )


def parse_approve_by_name(
    building_id: str, visit_key: str, body: Mapping[str, Any]
) -> DecideByName:
    return DecideByName(
        building_id=building_id,
        visit_key=visit_key,
        approved_by_name=_require_str(body, "approved_by_name"),
    )


def parse_scan(building_id: str, body: Mapping[str, Any]) -> ScanCredentialRequest:
    return ScanCredentialRequest(
        building_id=building_id,
        token=_require_str(body, "token"),
        evidence_ref=_optional_str(body, "evidence_ref"),
        security_notes=_optional_str(body, "security_notes"),
    )


def parse_check_out(
    building_id: str, visit_key: str, body: Mapping[str, Any]
) -> CheckOutRequest:
    return CheckOutRequest(
        building_id=building_id,
        visit_key=visit_key,
        evidence_ref=_optional_str(body, "evidence_ref"),
        security_notes=_optional_str(body, "security_notes"),
    )


def parse_query(building_id: str, params: Mapping[str, Any]) -> VisitQuery:
    return VisitQuery(
        building_id=building_id,
        page=_optional_int(params, "page", 1),
        limit=_optional_int(params, "limit", 10),
        status=_optional_enum(VisitStatus, params, "status"),
        visit_type=_optional_enum(VisitType, params, "visit_type"),
        approval_status=_optional_enum(ApprovalStatus, params, "approval_status"),
        host_ref=_optional_str(params, "host_ref"),
        visitor_ref=_optional_str(params, "visitor_ref"),
        created_from=_optional_datetime(params, "created_from"),
        created_to=_optional_datetime(params, "created_to"),
        text=_optional_str(params, "query"),
        active_only=_optional_flag(params, "active"),
    )


def parse_range(params: Mapping[str, Any]) -> tuple[datetime | None, datetime | None]:
    return (
        _optional_datetime(params, "start"),
        _optional_datetime(params, "end"),
    )
