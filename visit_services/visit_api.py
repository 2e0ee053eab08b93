"""
VisitApi -- transport-agnostic request boundary.

Responsibility:
    Throttles the caller, parses the loose payload into the operation's
    request type, invokes the orchestrator and maps the outcome (value or
    typed error) to an ``ApiResponse``.  An HTTP adapter only needs to copy
    ``status_code``, ``headers`` and ``body`` onto the wire.

Architecture position:
    Services -- above ``visit_kernel`` and ``visit_config``.

Invariants enforced:
    - Every kernel error maps to a fixed status code via its ``code``.
    - Unexpected exceptions become 500 with detail only outside production.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, TypeVar

from visit_config.schema import EngineConfig
from visit_kernel.domain.roles import Actor
from visit_kernel.domain.visit import Credential, Visit, VisitPage, VisitStats
from visit_kernel.exceptions import (
    InternalError,
    InvalidRequestError,
    RateLimitExceededError,
    VisitKernelError,
)
from visit_kernel.logging_config import get_logger
from visit_kernel.services.visit_orchestrator import VisitLifecycleOrchestrator
from visit_services.payloads import (
    parse_approve_by_name,
    parse_check_out,
    parse_create,
    parse_decision,
    parse_query,
    parse_range,
    parse_scan,
)
from visit_services.rate_limiter import FixedWindowRateLimiter

logger = get_logger("services.visit_api")

T = TypeVar("T")

STATUS_BY_CODE: dict[str, int] = {
    "INVALID_REQUEST": 400,
    "INVALID_REFERENCE": 404,
    "INVALID_STATE": 409,
    "TRANSITION_CONFLICT": 409,
    "FORBIDDEN": 403,
    "VISIT_NOT_FOUND": 404,
    "CREDENTIAL_NOT_FOUND": 404,
    "CREDENTIAL_EXPIRED": 410,
    "CREDENTIAL_EXHAUSTED": 409,
    "CREDENTIAL_ALREADY_ISSUED": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
}


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _iso(value: Any) -> Any:
    return value.isoformat() if value is not None else None


def visit_to_dict(visit: Visit) -> dict[str, Any]:
    """Public projection of a visit.  The credential token is not included."""
    return {
        "id": str(visit.id),
        "code": visit.code,
        "building_id": visit.building_id,
        "visitor_ref": visit.visitor_ref,
        "host_ref": visit.host_ref,
        "host_flat_number": visit.host_flat_number,
        "purpose": visit.purpose,
        "visit_type": visit.visit_type.value,
        "approval_status": visit.approval_status.value,
        "status": visit.status.value,
        "approved_by": visit.approved_by,
        "approved_by_name": visit.approved_by_name,
        "approved_at": _iso(visit.approved_at),
        "rejection_reason": visit.rejection_reason,
        "scheduled_date": _iso(visit.scheduled_date),
        "scheduled_time": visit.scheduled_time,
        "expected_duration_minutes": visit.expected_duration_minutes,
        "vehicle_number": visit.vehicle_number,
        "vehicle_type": visit.vehicle_type.value if visit.vehicle_type else None,
        "credential_expires_at": _iso(visit.credential_expires_at),
        "check_in_time": _iso(visit.check_in_time),
        "check_out_time": _iso(visit.check_out_time),
        "actual_duration_minutes": visit.actual_duration_minutes,
        "entry_evidence_ref": visit.entry_evidence_ref,
        "exit_evidence_ref": visit.exit_evidence_ref,
        "verified_by": visit.verified_by,
        "verified_at": _iso(visit.verified_at),
        "security_notes": visit.security_notes,
        "notifications_sent": sorted(flag.value for flag in visit.notifications_sent),
        "created_by": visit.created_by,
        "created_at": _iso(visit.created_at),
        "updated_at": _iso(visit.updated_at),
    }


def credential_to_dict(credential: Credential) -> dict[str, Any]:
    return {
        "token": credential.token,
        "issued_at": _iso(credential.issued_at),
        "expires_at": _iso(credential.expires_at),
    }


def page_to_dict(page: VisitPage) -> dict[str, Any]:
    return {
        "visits": [visit_to_dict(v) for v in page.visits],
        "pagination": {
            "current_page": page.page,
            "limit": page.limit,
            "total_count": page.total,
            "total_pages": page.total_pages,
            "has_next_page": page.has_next_page,
            "has_prev_page": page.has_prev_page,
        },
    }


def stats_to_dict(stats: VisitStats) -> dict[str, Any]:
    return {
        "total_visits": stats.total_visits,
        "today_visits": stats.today_visits,
        "recent_visits": stats.recent_visits,
        "average_duration_minutes": stats.average_duration_minutes,
        "by_status": dict(stats.by_status),
        "by_type": dict(stats.by_type),
        "by_approval": dict(stats.by_approval),
    }


class VisitApi:
    """One method per operation; each returns an ``ApiResponse``."""

    def __init__(
        self,
        orchestrator: VisitLifecycleOrchestrator,
        config: EngineConfig,
        rate_limiter: FixedWindowRateLimiter | None = None,
    ):
        self._orchestrator = orchestrator
        self._config = config
        self._limiter = rate_limiter

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_visit(
        self, actor: Actor, building_id: str, body: Mapping[str, Any]
    ) -> ApiResponse:
        return self._handle(
            "create_visit",
            actor,
            lambda: self._orchestrator.create_visit(
                actor, parse_create(building_id, body),
            ),
            visit_to_dict,
            message="Visit created successfully",
            status_code=201,
        )

    def decide(
        self,
        actor: Actor,
        building_id: str,
        visit_key: str,
        body: Mapping[str, Any],
    ) -> ApiResponse:
        return self._handle(
            "decide",
            actor,
            lambda: self._orchestrator.decide(
                actor, parse_decision(building_id, visit_key, body),
            ),
            visit_to_dict,
            message="Visit decision recorded",
        )

    def approve_by_name(
        self,
        actor: Actor,
        building_id: str,
        visit_key: str,
        body: Mapping[str, Any],
    ) -> ApiResponse:
        return self._handle(
            "approve_by_name",
            actor,
            lambda: self._orchestrator.decide(
                actor, parse_approve_by_name(building_id, visit_key, body),
            ),
            visit_to_dict,
            message="Visit approved",
        )

    def scan_credential(
        self, actor: Actor, building_id: str, body: Mapping[str, Any]
    ) -> ApiResponse:
        return self._handle(
            "scan_credential",
            actor,
            lambda: self._orchestrator.scan_credential(
                actor, parse_scan(building_id, body),
            ),
            visit_to_dict,
            message="Visitor checked in",
        )

    def check_out(
        self,
        actor: Actor,
        building_id: str,
        visit_key: str,
        body: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        return self._handle(
            "check_out",
            actor,
            lambda: self._orchestrator.check_out(
                actor, parse_check_out(building_id, visit_key, body or {}),
            ),
            visit_to_dict,
            message="Visitor checked out",
        )

    def get_credential(
        self, actor: Actor, building_id: str, visit_key: str
    ) -> ApiResponse:
        return self._handle(
            "get_credential",
            actor,
            lambda: self._orchestrator.get_credential(actor, building_id, visit_key),
            credential_to_dict,
            message="Credential retrieved",
        )

    def get_visit(self, actor: Actor, building_id: str, visit_key: str) -> ApiResponse:
        return self._handle(
            "get_visit",
            actor,
            lambda: self._orchestrator.get_visit(actor, building_id, visit_key),
            visit_to_dict,
            message="Visit retrieved",
        )

    def list_visits(
        self,
        actor: Actor,
        building_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        return self._handle(
            "list_visits",
            actor,
            lambda: self._orchestrator.list_visits(
                actor, parse_query(building_id, params or {}),
            ),
            page_to_dict,
            message="Visits retrieved",
        )

    def visit_stats(
        self,
        actor: Actor,
        building_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        def call() -> VisitStats:
            start, end = parse_range(params or {})
            return self._orchestrator.visit_stats(actor, building_id, start, end)

        return self._handle(
            "visit_stats", actor, call, stats_to_dict,
            message="Visit statistics retrieved",
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _throttle(self, actor: Actor) -> None:
        if self._limiter is None:
            return
        self._limiter.hit(
            f"user:{actor.actor_id}", self._config.rate_limit_for(actor.role),
        )

    def _handle(
        self,
        operation: str,
        actor: Actor,
        call: Callable[[], T],
        serialize: Callable[[T], Any],
        *,
        message: str,
        status_code: int = 200,
    ) -> ApiResponse:
        try:
            self._throttle(actor)
            data = serialize(call())
        except VisitKernelError as exc:
            return self.error_response(exc)
        except Exception as exc:
            logger.error(
                "api_unhandled_error",
                extra={"api_operation": operation},
                exc_info=True,
            )
            return self.error_response(
                InternalError(operation, f"{type(exc).__name__}: {exc}")
            )
        return ApiResponse(
            status_code=status_code,
            body={"success": True, "message": message, "code": "OK", "data": data},
        )

    def error_response(self, exc: VisitKernelError) -> ApiResponse:
        """Map a kernel error to its status code and error body."""
        status_code = STATUS_BY_CODE.get(exc.code, 500)
        data: dict[str, Any] | None = None
        headers: dict[str, str] = {}
        message = str(exc)

        if isinstance(exc, InvalidRequestError):
            data = {"field": exc.field, "reason": exc.reason}
        elif isinstance(exc, RateLimitExceededError):
            data = {"retry_after_seconds": exc.retry_after_seconds}
            headers["Retry-After"] = str(exc.retry_after_seconds)
        elif isinstance(exc, InternalError):
            message = "Internal server error"
            if not self._config.is_production:
                data = {"operation": exc.operation, "detail": exc.detail}

        return ApiResponse(
            status_code=status_code,
            body={
                "success": False,
                "message": message,
                "code": exc.code,
                "data": data,
            },
            headers=headers,
        )
