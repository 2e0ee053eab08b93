"""Services for the visit kernel (write side and orchestration)."""

from visit_kernel.services.approval_coordinator import ApprovalCoordinator
from visit_kernel.services.credential_manager import CredentialManager
from visit_kernel.services.notification_gateway import NotificationGateway
from visit_kernel.services.presence_coordinator import PresenceCoordinator
from visit_kernel.services.visit_orchestrator import VisitLifecycleOrchestrator
from visit_kernel.services.visit_store import NOT_NULL, VisitStore

__all__ = [
    "ApprovalCoordinator",
    "CredentialManager",
    "NOT_NULL",
    "NotificationGateway",
    "PresenceCoordinator",
    "VisitLifecycleOrchestrator",
    "VisitStore",
]
