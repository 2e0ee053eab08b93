"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract for every service in
    the kernel layer.  Concrete services receive a SQLAlchemy ``Session``
    and an injected ``Clock`` and persist with ``session.flush()`` only.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The orchestrator (or a test
    harness) owns commit/rollback, so a decision and the admission it
    triggers land in one transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session

from visit_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - ``self.clock`` is always set; SystemClock when none is injected.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
