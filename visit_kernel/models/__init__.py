"""ORM models for the visit kernel."""

from visit_kernel.models.visit import NOTIFICATION_FLAG_COLUMNS, VisitModel

__all__ = [
    "NOTIFICATION_FLAG_COLUMNS",
    "VisitModel",
]
