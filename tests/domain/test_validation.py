"""
Tests for request validation (``visit_kernel.domain.validation``).

Every failure is an InvalidRequestError naming the offending field.
"""

from datetime import date, datetime, timezone

import pytest

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
from visit_kernel.domain.validation import (
    FieldLimits,
    validate_check_out,
    validate_create,
    validate_decision,
    validate_query,
    validate_scan,
)
from visit_kernel.domain.visit import VehicleType, VisitType
from visit_kernel.exceptions import InvalidRequestError

LIMITS = FieldLimits()


def _create(**overrides) -> CreateVisitRequest:
    fields = dict(building_id="bldg-1", visitor_ref="visitor-1", purpose="Delivery")
    fields.update(overrides)
    return CreateVisitRequest(**fields)


def _field_of(call) -> str:
    with pytest.raises(InvalidRequestError) as exc_info:
        call()
    return exc_info.value.field


class TestValidateCreate:
    def test_purpose_trimmed(self):
        assert validate_create(_create(purpose="  Delivery  "), LIMITS).purpose == "Delivery"

    @pytest.mark.parametrize("purpose", ["", "   ", None])
    def test_purpose_required(self, purpose):
        assert _field_of(lambda: validate_create(_create(purpose=purpose), LIMITS)) == "purpose"

    def test_purpose_length_limit(self):
        ok = validate_create(_create(purpose="x" * 200), LIMITS)
        assert len(ok.purpose) == 200
        assert _field_of(
            lambda: validate_create(_create(purpose="x" * 201), LIMITS)
        ) == "purpose"

    def test_scheduled_visit_requires_date(self):
        request = _create(visit_type=VisitType.SCHEDULED)
        assert _field_of(lambda: validate_create(request, LIMITS)) == "scheduled_date"

    @pytest.mark.parametrize("value", ["09:30", "9:05", "23:59", "10:30 AM", "4:15pm"])
    def test_scheduled_time_accepted(self, value):
        request = _create(
            visit_type=VisitType.SCHEDULED,
            schedule=VisitSchedule(date(2024, 1, 2), value),
        )
        validate_create(request, LIMITS)

    @pytest.mark.parametrize("value", ["24:00", "9.30", "noon", "10:60", "10:30 XM"])
    def test_scheduled_time_rejected(self, value):
        request = _create(
            visit_type=VisitType.SCHEDULED,
            schedule=VisitSchedule(date(2024, 1, 2), value),
        )
        assert _field_of(lambda: validate_create(request, LIMITS)) == "scheduled_time"

    @pytest.mark.parametrize("minutes", [15, 60, 1440])
    def test_duration_in_range(self, minutes):
        validate_create(_create(expected_duration_minutes=minutes), LIMITS)

    @pytest.mark.parametrize("minutes", [0, 14, 1441])
    def test_duration_out_of_range(self, minutes):
        request = _create(expected_duration_minutes=minutes)
        assert _field_of(lambda: validate_create(request, LIMITS)) == "expected_duration_minutes"

    def test_vehicle_number_uppercased(self):
        request = _create(vehicle=VehicleInfo(" ka01ab1234 ", VehicleType.CAR))
        assert validate_create(request, LIMITS).vehicle.number == "KA01AB1234"

    def test_vehicle_number_length_limit(self):
        request = _create(vehicle=VehicleInfo("X" * 21))
        assert _field_of(lambda: validate_create(request, LIMITS)) == "vehicle_number"

    def test_blank_flat_number_dropped(self):
        assert validate_create(_create(host_flat_number="  "), LIMITS).host_flat_number is None

    def test_references_trimmed(self):
        request = _create(
            building_id=" bldg-1 ", visitor_ref=" visitor-1 ", host_ref=" host-1 ",
        )
        checked = validate_create(request, LIMITS)
        assert (checked.building_id, checked.visitor_ref, checked.host_ref) == (
            "bldg-1", "visitor-1", "host-1",
        )

    @pytest.mark.parametrize("field", ["visitor_ref", "building_id", "host_ref"])
    def test_reference_length_limit(self, field):
        request = _create(**{field: "r" * 65})
        assert _field_of(lambda: validate_create(request, LIMITS)) == field

    def test_blank_host_ref_dropped(self):
        assert validate_create(_create(host_ref="   "), LIMITS).host_ref is None

    def test_flat_number_trimmed_and_limited(self):
        assert validate_create(_create(host_flat_number=" A-101 "), LIMITS).host_flat_number == "A-101"
        request = _create(host_flat_number="F" * 21)
        assert _field_of(lambda: validate_create(request, LIMITS)) == "host_flat_number"

    def test_custom_limits(self):
        limits = FieldLimits(purpose_max=5)
        assert _field_of(lambda: validate_create(_create(purpose="Delivery"), limits)) == "purpose"


class TestValidateDecision:
    def test_reject_requires_reason(self):
        decision = DecideByRole("bldg-1", "v", DecisionOutcome.REJECTED, reason="  ")
        assert _field_of(lambda: validate_decision(decision, LIMITS)) == "rejection_reason"

    def test_reject_reason_trimmed(self):
        decision = DecideByRole("bldg-1", "v", DecisionOutcome.REJECTED, reason=" No ID ")
        assert validate_decision(decision, LIMITS).reason == "No ID"

    def test_reject_reason_length_limit(self):
        decision = DecideByRole("bldg-1", "v", DecisionOutcome.REJECTED, reason="r" * 501)
        assert _field_of(lambda: validate_decision(decision, LIMITS)) == "rejection_reason"

    def test_cancel_without_reason(self):
        decision = DecideByRole("bldg-1", "v", DecisionOutcome.CANCELLED)
        assert validate_decision(decision, LIMITS).reason is None

    def test_security_notes_length_limit(self):
        decision = DecideByRole(
            "bldg-1", "v", DecisionOutcome.APPROVED, security_notes="n" * 1001,
        )
        assert _field_of(lambda: validate_decision(decision, LIMITS)) == "security_notes"

    def test_approve_by_name_requires_name(self):
        decision = DecideByName("bldg-1", "v", approved_by_name=" ")
        assert _field_of(lambda: validate_decision(decision, LIMITS)) == "approved_by_name"

    def test_approve_by_name_trims_and_always_approves(self):
        decided = validate_decision(DecideByName("bldg-1", "v", " Mrs. Rao "), LIMITS)
        assert decided.approved_by_name == "Mrs. Rao"
        assert decided.outcome == DecisionOutcome.APPROVED


class TestValidateScanAndCheckOut:
    def test_scan_requires_token(self):
        request = ScanCredentialRequest("bldg-1", token="   ")
        assert _field_of(lambda: validate_scan(request, LIMITS)) == "token"

    def test_scan_token_trimmed(self):
        request = ScanCredentialRequest("bldg-1", token=" abc ")
        assert validate_scan(request, LIMITS).token == "abc"

    def test_check_out_notes_limit(self):
        request = CheckOutRequest("bldg-1", "v", security_notes="n" * 1001)
        assert _field_of(lambda: validate_check_out(request, LIMITS)) == "security_notes"

    def test_evidence_ref_trimmed(self):
        scan = validate_scan(
            ScanCredentialRequest("bldg-1", token="abc", evidence_ref=" photo-1 "), LIMITS,
        )
        out = validate_check_out(
            CheckOutRequest("bldg-1", " v ", evidence_ref=" photo-2 "), LIMITS,
        )
        assert scan.evidence_ref == "photo-1"
        assert (out.visit_key, out.evidence_ref) == ("v", "photo-2")

    def test_evidence_ref_length_limit(self):
        scan = ScanCredentialRequest("bldg-1", token="abc", evidence_ref="e" * 256)
        out = CheckOutRequest("bldg-1", "v", evidence_ref="e" * 256)
        assert _field_of(lambda: validate_scan(scan, LIMITS)) == "evidence_ref"
        assert _field_of(lambda: validate_check_out(out, LIMITS)) == "evidence_ref"


class TestValidateQuery:
    def test_defaults_accepted(self):
        validate_query(VisitQuery("bldg-1"), LIMITS)

    def test_page_must_be_positive(self):
        assert _field_of(lambda: validate_query(VisitQuery("bldg-1", page=0), LIMITS)) == "page"

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, limit):
        query = VisitQuery("bldg-1", limit=limit)
        assert _field_of(lambda: validate_query(query, LIMITS)) == "limit"

    def test_inverted_range(self):
        query = VisitQuery(
            "bldg-1",
            created_from=datetime(2024, 2, 1, tzinfo=timezone.utc),
            created_to=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert _field_of(lambda: validate_query(query, LIMITS)) == "created_from"

    def test_search_text_trimmed(self):
        assert validate_query(VisitQuery("bldg-1", text="  dhl "), LIMITS).text == "dhl"
        assert validate_query(VisitQuery("bldg-1", text="   "), LIMITS).text is None

    def test_search_text_length_limit(self):
        query = VisitQuery("bldg-1", text="q" * 101)
        assert _field_of(lambda: validate_query(query, LIMITS)) == "query"
