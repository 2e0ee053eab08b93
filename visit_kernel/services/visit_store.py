"""
VisitStore -- persistence gateway for Visit records.

Responsibility:
    Every read and write of the ``visits`` table goes through this class.
    Lifecycle writes use ``conditional_update``: a single
    ``UPDATE ... WHERE id = :id AND <expected state>`` whose row count says
    whether the transition won.  There is no read-modify-write window and
    no in-process lock.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Reads always repopulate identity-mapped rows, so a coordinator never
      decides on a snapshot older than the last committed write.
    - A conditional update touches at most one row.

Failure modes:
    - VisitNotFoundError from ``require`` when the key does not resolve
      inside the building.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, or_, select, update

from visit_kernel.domain.requests import VisitQuery
from visit_kernel.domain.visit import (
    NotificationFlag,
    Visit,
    VisitPage,
    VisitStats,
    VisitStatus,
)
from visit_kernel.exceptions import VisitNotFoundError
from visit_kernel.logging_config import get_logger
from visit_kernel.models.visit import NOTIFICATION_FLAG_COLUMNS, VisitModel
from visit_kernel.services.base import BaseService

logger = get_logger("services.visit_store")


class _NotNull:
    """Expected-state marker meaning ``IS NOT NULL``."""

    def __repr__(self) -> str:
        return "NOT_NULL"


NOT_NULL = _NotNull()

ACTIVE_STATUSES = (VisitStatus.SCHEDULED.value, VisitStatus.IN_PROGRESS.value)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_uuid(key: str) -> UUID | None:
    try:
        return UUID(key)
    except (ValueError, AttributeError, TypeError):
        return None


class VisitStore(BaseService):
    """Reads, inserts and guarded updates of visits."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch_one(self, *criteria: Any) -> VisitModel | None:
        stmt = (
            select(VisitModel)
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, visit_id: UUID) -> Visit | None:
        model = self._fetch_one(VisitModel.id == visit_id)
        return model.to_dto() if model is not None else None

    def load(self, visit_id: UUID) -> Visit:
        visit = self.get(visit_id)
        if visit is None:
            raise VisitNotFoundError(str(visit_id))
        return visit

    def find(self, visit_key: str, building_id: str) -> Visit | None:
        """Resolve a UUID or a visit code inside one building."""
        visit_id = _parse_uuid(visit_key)
        if visit_id is not None:
            key_clause = VisitModel.id == visit_id
        else:
            key_clause = VisitModel.code == visit_key
        model = self._fetch_one(key_clause, VisitModel.building_id == building_id)
        return model.to_dto() if model is not None else None

    def require(self, visit_key: str, building_id: str) -> Visit:
        visit = self.find(visit_key, building_id)
        if visit is None:
            raise VisitNotFoundError(visit_key, building_id)
        return visit

    def find_by_token(self, token: str, building_id: str) -> Visit | None:
        model = self._fetch_one(
            VisitModel.credential_token == token,
            VisitModel.building_id == building_id,
        )
        return model.to_dto() if model is not None else None

    def list_visits(self, query: VisitQuery) -> VisitPage:
        """Filtered, newest-first page of visits with the total match count."""
        criteria = [VisitModel.building_id == query.building_id]
        if query.status is not None:
            criteria.append(VisitModel.status == query.status.value)
        if query.visit_type is not None:
            criteria.append(VisitModel.visit_type == query.visit_type.value)
        if query.approval_status is not None:
            criteria.append(
                VisitModel.approval_status == query.approval_status.value
            )
        if query.host_ref is not None:
            criteria.append(VisitModel.host_ref == query.host_ref)
        if query.visitor_ref is not None:
            criteria.append(VisitModel.visitor_ref == query.visitor_ref)
        if query.created_from is not None:
            criteria.append(VisitModel.created_at >= query.created_from)
        if query.created_to is not None:
            criteria.append(VisitModel.created_at <= query.created_to)
        if query.active_only:
            criteria.append(VisitModel.status.in_(ACTIVE_STATUSES))
        if query.text is not None:
            pattern = f"%{_escape_like(query.text)}%"
            criteria.append(or_(
                VisitModel.code.ilike(pattern, escape="\\"),
                VisitModel.purpose.ilike(pattern, escape="\\"),
                VisitModel.host_flat_number.ilike(pattern, escape="\\"),
                VisitModel.vehicle_number.ilike(pattern, escape="\\"),
            ))

        total = self.session.execute(
            select(func.count()).select_from(VisitModel).where(*criteria)
        ).scalar_one()
        rows = self.session.execute(
            select(VisitModel)
            .where(*criteria)
            .order_by(VisitModel.created_at.desc(), VisitModel.code.desc())
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
            .execution_options(populate_existing=True)
        ).scalars().all()

        return VisitPage(
            visits=tuple(row.to_dto() for row in rows),
            page=query.page,
            limit=query.limit,
            total=total,
        )

    def stats(
        self,
        building_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> VisitStats:
        """Counters for one building, optionally restricted to a created-at range."""
        now = self.clock.now()
        criteria = [VisitModel.building_id == building_id]
        if start is not None:
            criteria.append(VisitModel.created_at >= start)
        if end is not None:
            criteria.append(VisitModel.created_at <= end)

        def count(*extra: Any) -> int:
            return self.session.execute(
                select(func.count()).select_from(VisitModel).where(*criteria, *extra)
            ).scalar_one()

        def grouped(column: Any) -> dict[str, int]:
            rows = self.session.execute(
                select(column, func.count())
                .select_from(VisitModel)
                .where(*criteria)
                .group_by(column)
            ).all()
            return {value: n for value, n in rows}

        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        average = self.session.execute(
            select(func.avg(VisitModel.actual_duration_minutes)).where(
                *criteria, VisitModel.actual_duration_minutes.is_not(None),
            )
        ).scalar_one()

        return VisitStats(
            total_visits=count(),
            today_visits=count(VisitModel.created_at >= start_of_day),
            recent_visits=count(VisitModel.created_at >= now - timedelta(days=7)),
            average_duration_minutes=int(round(average)) if average is not None else 0,
            by_status=grouped(VisitModel.status),
            by_type=grouped(VisitModel.visit_type),
            by_approval=grouped(VisitModel.approval_status),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, model: VisitModel) -> Visit:
        self.session.add(model)
        self.session.flush()
        return model.to_dto()

    def conditional_update(
        self,
        visit_id: UUID,
        expected: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> bool:
        """
        Apply ``values`` only if the row still matches ``expected``.

        ``None`` in ``expected`` means ``IS NULL`` and ``NOT_NULL`` means
        ``IS NOT NULL``; anything else is an equality test.  Returns True
        when exactly one row changed.
        """
        criteria = [VisitModel.id == visit_id]
        for name, value in expected.items():
            column = getattr(VisitModel, name)
            if value is None:
                criteria.append(column.is_(None))
            elif value is NOT_NULL:
                criteria.append(column.is_not(None))
            else:
                criteria.append(column == value)

        result = self.session.execute(
            update(VisitModel)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        won = result.rowcount == 1
        if not won:
            logger.info(
                "conditional_update_missed",
                extra={"visit_id": str(visit_id), "expected": dict(expected)},
            )
        return won

    def mark_notified(
        self, visit_id: UUID, flags: Iterable[NotificationFlag]
    ) -> None:
        values = {
            NOTIFICATION_FLAG_COLUMNS[flag.value]: True for flag in flags
        }
        if not values:
            return
        self.session.execute(
            update(VisitModel)
            .where(VisitModel.id == visit_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def expire_stale(self, building_id: str | None = None) -> list[UUID]:
        """
        Mark never-admitted visits whose credential has lapsed as EXPIRED.

        Approval state is left alone.  Each row is moved with its own
        conditional update so a concurrent check-in is never overwritten.
        """
        now = self.clock.now()
        criteria = [
            VisitModel.status == VisitStatus.SCHEDULED.value,
            VisitModel.check_in_time.is_(None),
            VisitModel.credential_expires_at < now,
        ]
        if building_id is not None:
            criteria.append(VisitModel.building_id == building_id)
        candidates = self.session.execute(
            select(VisitModel.id).where(*criteria)
        ).scalars().all()

        expired = []
        for visit_id in candidates:
            if self.conditional_update(
                visit_id,
                expected={
                    "status": VisitStatus.SCHEDULED.value,
                    "check_in_time": None,
                },
                values={"status": VisitStatus.EXPIRED.value, "updated_at": now},
            ):
                expired.append(visit_id)
        return expired
