"""
NotificationGateway -- best-effort delivery of planned notifications.

Responsibility:
    Resolves the recipient of each ``PlannedNotification`` (the visit's
    host, or the building admin from the directory), hands the event to the
    dispatcher and reports which tracked flags were actually delivered.

Architecture position:
    Kernel > Services.  Called by the orchestrator only after the
    transition that planned the notifications has been persisted.

Failure modes:
    None propagate.  A dispatcher or directory failure is logged as
    ``notification_dispatch_failed`` and the flag is left unset.
"""

from __future__ import annotations

from typing import Sequence

from visit_kernel.domain.collaborators import (
    DirectoryLookup,
    NotificationDispatcher,
    NotificationEvent,
    PlannedNotification,
    Recipient,
)
from visit_kernel.domain.visit import NotificationFlag, Visit
from visit_kernel.logging_config import get_logger

logger = get_logger("services.notification_gateway")


class NotificationGateway:
    """Fire-and-forget fan-out of a transition's notifications."""

    def __init__(self, dispatcher: NotificationDispatcher, directory: DirectoryLookup):
        self._dispatcher = dispatcher
        self._directory = directory

    def _admin_ref(self, building_id: str) -> str | None:
        building = self._directory.find_building(building_id)
        return building.admin_ref if building is not None else None

    def publish(
        self,
        visit: Visit,
        planned: Sequence[PlannedNotification],
    ) -> frozenset[NotificationFlag]:
        """Dispatch each notification; return the flags that were delivered."""
        delivered: set[NotificationFlag] = set()
        for notice in planned:
            try:
                if notice.recipient == Recipient.HOST:
                    recipient_ref = visit.host_ref
                else:
                    recipient_ref = self._admin_ref(visit.building_id)
                if recipient_ref is None:
                    logger.debug(
                        "notification_skipped",
                        extra={
                            "kind": notice.kind,
                            "recipient": notice.recipient,
                            "visit_id": str(visit.id),
                        },
                    )
                    continue
                self._dispatcher.dispatch(
                    NotificationEvent(
                        kind=notice.kind,
                        recipient_ref=recipient_ref,
                        priority=notice.priority,
                        visit_id=visit.id,
                        building_id=visit.building_id,
                        payload=dict(notice.payload),
                    )
                )
            except Exception:
                logger.warning(
                    "notification_dispatch_failed",
                    extra={
                        "kind": notice.kind,
                        "recipient": notice.recipient,
                        "visit_id": str(visit.id),
                    },
                    exc_info=True,
                )
                continue

            if notice.flag is not None:
                delivered.add(notice.flag)
            logger.info(
                "notification_dispatched",
                extra={
                    "kind": notice.kind,
                    "recipient": notice.recipient,
                    "priority": notice.priority,
                    "visit_id": str(visit.id),
                },
            )
        return frozenset(delivered)
