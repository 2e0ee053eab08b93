"""
Typed Exception Hierarchy for the Visit Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Front desks, guard tablets and admin dashboards all need to tell a visitor
precisely why a gate did not open.  "Credential expired" and "credential
already used" lead to different conversations at the desk, so callers must
be able to branch on the failure without parsing message strings.

Every exception in this module:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (visit id, role, expiry, ...)

Example - WRONG way to handle errors:
    try:
        orchestrator.scan_credential(actor, request)
    except Exception as e:
        if "expired" in str(e):  # FRAGILE
            show_expired_banner()

Example - RIGHT way:
    try:
        orchestrator.scan_credential(actor, request)
    except CredentialExpiredError as e:
        show_expired_banner(expired_at=e.expires_at)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    VisitKernelError (base)
    |
    +-- InvalidRequestError
    +-- InvalidReferenceError
    +-- VisitNotFoundError
    +-- ForbiddenError
    |
    +-- InvalidStateError
    |   +-- TransitionConflictError
    |
    +-- CredentialError
    |   +-- CredentialNotFoundError
    |   +-- CredentialExpiredError
    |   +-- CredentialExhaustedError
    |   +-- CredentialAlreadyIssuedError
    |
    +-- RateLimitExceededError
    +-- InternalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-----------------------------------------
Request       | INVALID_REQUEST            | Payload fails field/limit validation
              | INVALID_REFERENCE          | Visitor/host/building not resolvable
              | VISIT_NOT_FOUND            | Visit id/code does not resolve
--------------|----------------------------|-----------------------------------------
Access        | FORBIDDEN                  | Role lacks capability / wrong building
              | RATE_LIMITED               | Fixed-window budget exhausted
--------------|----------------------------|-----------------------------------------
State         | INVALID_STATE              | Precondition on approval/presence violated
              | TRANSITION_CONFLICT        | Conditional update lost a race
--------------|----------------------------|-----------------------------------------
Credential    | CREDENTIAL_NOT_FOUND       | No visit bound to token in this building
              | CREDENTIAL_EXPIRED         | now > credential_expires_at
              | CREDENTIAL_EXHAUSTED       | Visit already checked in
              | CREDENTIAL_ALREADY_ISSUED  | Re-issuance attempted
--------------|----------------------------|-----------------------------------------
Internal      | INTERNAL                   | Collaborator failure (directory, store)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. State errors are never retried.  A TransitionConflictError means another
   request already moved the visit; reload it and show the current state.

2. InternalError carries a ``detail`` that is safe to log but should only
   be shown to callers outside production.
"""

from datetime import datetime


class VisitKernelError(Exception):
    """
    Base exception for all visit kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "VISIT_KERNEL_ERROR"


# Request-level exceptions


class InvalidRequestError(VisitKernelError):
    """A request field is missing, malformed or exceeds its limit."""

    code: str = "INVALID_REQUEST"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidReferenceError(VisitKernelError):
    """A visitor, host or building key could not be resolved."""

    code: str = "INVALID_REFERENCE"

    def __init__(self, ref_kind: str, ref: str, building_id: str | None = None):
        self.ref_kind = ref_kind
        self.ref = ref
        self.building_id = building_id
        if building_id is None:
            super().__init__(f"{ref_kind.capitalize()} not found: {ref}")
        else:
            super().__init__(
                f"{ref_kind.capitalize()} not found or does not belong to "
                f"building {building_id}: {ref}"
            )


class VisitNotFoundError(VisitKernelError):
    """Visit with given id or code was not found in the building."""

    code: str = "VISIT_NOT_FOUND"

    def __init__(self, visit_key: str, building_id: str | None = None):
        self.visit_key = visit_key
        self.building_id = building_id
        super().__init__(f"Visit not found: {visit_key}")


# Access exceptions


class ForbiddenError(VisitKernelError):
    """Actor role or building scope does not authorize the operation."""

    code: str = "FORBIDDEN"

    def __init__(
        self,
        role: str,
        capability: str | None = None,
        building_id: str | None = None,
    ):
        self.role = role
        self.capability = capability
        self.building_id = building_id
        if capability is not None:
            message = f"Role {role} is not allowed to {capability}"
        else:
            message = f"Role {role} cannot access building {building_id}"
        super().__init__(message)


class RateLimitExceededError(VisitKernelError):
    """Request budget for the current window is exhausted."""

    code: str = "RATE_LIMITED"

    def __init__(self, key: str, limit: int, retry_after_seconds: int):
        self.key = key
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Too many requests for {key}: limit {limit}, "
            f"retry after {retry_after_seconds}s"
        )


# State exceptions


class InvalidStateError(VisitKernelError):
    """An operation's precondition on approval or presence state is violated."""

    code: str = "INVALID_STATE"

    def __init__(self, visit_id: str, reason: str):
        self.visit_id = visit_id
        self.reason = reason
        super().__init__(f"Visit {visit_id}: {reason}")


class TransitionConflictError(InvalidStateError):
    """A conditional update matched no row: the visit moved concurrently."""

    code: str = "TRANSITION_CONFLICT"

    def __init__(self, visit_id: str, transition: str):
        self.transition = transition
        super().__init__(visit_id, f"concurrent {transition} already applied")


# Credential exceptions


class CredentialError(VisitKernelError):
    """Base exception for credential validation failures."""

    code: str = "CREDENTIAL_ERROR"


class CredentialNotFoundError(CredentialError):
    """No visit in the building is bound to the presented token."""

    code: str = "CREDENTIAL_NOT_FOUND"

    def __init__(self, building_id: str):
        self.building_id = building_id
        super().__init__(f"Invalid credential for building {building_id}")


class CredentialExpiredError(CredentialError):
    """The credential's validity window has passed."""

    code: str = "CREDENTIAL_EXPIRED"

    def __init__(self, visit_id: str, expires_at: datetime, checked_at: datetime):
        self.visit_id = visit_id
        self.expires_at = expires_at
        self.checked_at = checked_at
        super().__init__(
            f"Credential for visit {visit_id} expired at {expires_at.isoformat()}"
        )


class CredentialExhaustedError(CredentialError):
    """The credential was already used to check the visitor in."""

    code: str = "CREDENTIAL_EXHAUSTED"

    def __init__(self, visit_id: str, check_in_time: datetime):
        self.visit_id = visit_id
        self.check_in_time = check_in_time
        super().__init__(
            f"Visit {visit_id} already checked in at {check_in_time.isoformat()}"
        )


class CredentialAlreadyIssuedError(CredentialError):
    """A credential is bound to the visit; re-issuance is not supported."""

    code: str = "CREDENTIAL_ALREADY_ISSUED"

    def __init__(self, visit_id: str):
        self.visit_id = visit_id
        super().__init__(f"Credential already issued for visit {visit_id}")


# Collaborator failures


class InternalError(VisitKernelError):
    """Unexpected failure in a collaborator call (directory, persistence)."""

    code: str = "INTERNAL"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Internal failure during {operation}")
