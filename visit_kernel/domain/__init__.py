"""
Pure domain layer.

Value objects, the approval transition table, request types, field
validation, the role policy and collaborator protocols.  Nothing here
touches the ORM, the database or the wall clock (except SystemClock).
"""

from visit_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from visit_kernel.domain.collaborators import (
    BuildingRecord,
    DirectoryLookup,
    HostRecord,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
    NotificationPriority,
    PlannedNotification,
    Recipient,
    TransitionResult,
    VisitorRecord,
)
from visit_kernel.domain.credential import CredentialPolicy, mint_token
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
from visit_kernel.domain.roles import (
    Actor,
    Capability,
    Role,
    RolePolicy,
    default_role_policy,
)
from visit_kernel.domain.validation import FieldLimits
from visit_kernel.domain.visit import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalStatus,
    Credential,
    NotificationFlag,
    VehicleType,
    Visit,
    VisitPage,
    VisitStats,
    VisitStatus,
    VisitType,
    can_transition,
    initial_approval_status,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Visit
    "APPROVAL_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "ApprovalStatus",
    "Credential",
    "NotificationFlag",
    "VehicleType",
    "Visit",
    "VisitPage",
    "VisitStats",
    "VisitStatus",
    "VisitType",
    "can_transition",
    "initial_approval_status",
    # Requests
    "CheckOutRequest",
    "CreateVisitRequest",
    "DecideByName",
    "DecideByRole",
    "DecisionOutcome",
    "ScanCredentialRequest",
    "VehicleInfo",
    "VisitQuery",
    "VisitSchedule",
    "FieldLimits",
    # Access
    "Actor",
    "Capability",
    "Role",
    "RolePolicy",
    "default_role_policy",
    # Credentials
    "CredentialPolicy",
    "mint_token",
    # Collaborators
    "BuildingRecord",
    "DirectoryLookup",
    "HostRecord",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationKind",
    "NotificationPriority",
    "PlannedNotification",
    "Recipient",
    "TransitionResult",
    "VisitorRecord",
]
