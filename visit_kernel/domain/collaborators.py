"""
Narrow interfaces to the engine's external collaborators.

Responsibility
--------------
Identity resolution and notification transport live outside the engine.
This module declares the protocols the orchestrator depends on and the
value objects that cross those seams.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Implementations are supplied by the host
application (or by test doubles).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID

from visit_kernel.domain.visit import NotificationFlag, Visit


@dataclass(frozen=True)
class VisitorRecord:
    visitor_ref: str
    building_id: str
    name: str = ""


@dataclass(frozen=True)
class HostRecord:
    host_ref: str
    building_id: str
    name: str = ""
    flat_number: str | None = None


@dataclass(frozen=True)
class BuildingRecord:
    building_id: str
    name: str = ""
    admin_ref: str | None = None


@runtime_checkable
class DirectoryLookup(Protocol):
    """Side-effect free identity resolution.  Returns None when unknown."""

    def find_visitor(self, visitor_ref: str) -> VisitorRecord | None: ...

    def find_host(self, host_ref: str) -> HostRecord | None: ...

    def find_building(self, building_id: str) -> BuildingRecord | None: ...


class NotificationKind(str, Enum):
    VISIT_APPROVAL_REQUEST = "VISIT_APPROVAL_REQUEST"
    VISIT_APPROVED = "VISIT_APPROVED"
    VISIT_REJECTED = "VISIT_REJECTED"
    VISIT_CANCELLED = "VISIT_CANCELLED"
    VISITOR_ARRIVAL = "VISITOR_ARRIVAL"
    VISITOR_DEPARTURE = "VISITOR_DEPARTURE"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Recipient(str, Enum):
    """Which party of the visit a planned notification addresses."""

    HOST = "HOST"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class NotificationEvent:
    """What the dispatcher receives: a resolved recipient and a payload."""

    kind: NotificationKind
    recipient_ref: str
    priority: NotificationPriority
    visit_id: UUID
    building_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Fire-and-forget delivery.  Any exception is treated as a failed send."""

    def dispatch(self, event: NotificationEvent) -> None: ...


@dataclass(frozen=True)
class PlannedNotification:
    """A notification a transition wants sent once it has committed.

    ``flag`` is recorded in ``notifications_sent`` only when the dispatch
    succeeds.  ``None`` means the send is not tracked.
    """

    kind: NotificationKind
    recipient: Recipient
    priority: NotificationPriority
    flag: NotificationFlag | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionResult:
    visit: Visit
    notifications: tuple[PlannedNotification, ...] = ()
