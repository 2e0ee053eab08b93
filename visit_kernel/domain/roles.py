"""
Roles, capabilities and the injectable authorization policy.

Responsibility
--------------
Replaces a hard-coded role -> permission table with an explicit
``RolePolicy`` value that is built once at startup (from configuration or
``default_role_policy()``) and injected into every coordinator.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Raises ``ForbiddenError`` only.

Invariants enforced
-------------------
* Building scope: an actor may only touch visits of its own building
  unless its role holds ``Capability.CROSS_BUILDING``.
* Capability gate: every write names exactly one capability.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from visit_kernel.exceptions import ForbiddenError


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    BUILDING_ADMIN = "BUILDING_ADMIN"
    SECURITY = "SECURITY"
    RESIDENT = "RESIDENT"


class Capability(str, Enum):
    """Verbs the engine gates on."""

    CREATE_VISIT = "create_visit"
    VIEW_VISITS = "view_visits"
    VIEW_STATS = "view_stats"
    DECIDE_VISIT = "decide_visit"
    APPROVE_BY_NAME = "approve_by_name"
    SCAN_CREDENTIAL = "scan_credential"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    VIEW_CREDENTIAL = "view_credential"
    CROSS_BUILDING = "cross_building"


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as resolved by the session collaborator."""

    actor_id: str
    role: Role
    building_id: str | None = None


@dataclass(frozen=True)
class RolePolicy:
    """Role -> capability set, resolved once and injected."""

    grants: Mapping[Role, frozenset[Capability]]

    def capabilities(self, role: Role) -> frozenset[Capability]:
        return self.grants.get(role, frozenset())

    def allows(self, role: Role, capability: Capability) -> bool:
        return capability in self.capabilities(role)

    def require(self, actor: Actor, capability: Capability) -> None:
        """Raise ForbiddenError unless the actor's role holds the capability."""
        if not self.allows(actor.role, capability):
            raise ForbiddenError(actor.role.value, capability=capability.value)

    def require_building(self, actor: Actor, building_id: str) -> None:
        """Raise ForbiddenError for cross-building access without the bypass."""
        if self.allows(actor.role, Capability.CROSS_BUILDING):
            return
        if actor.building_id is None or actor.building_id != building_id:
            raise ForbiddenError(actor.role.value, building_id=building_id)

    def authorize(self, actor: Actor, capability: Capability, building_id: str) -> None:
        """Building scope first, then the capability gate."""
        self.require_building(actor, building_id)
        self.require(actor, capability)


_MEMBER = frozenset({
    Capability.CREATE_VISIT,
    Capability.VIEW_VISITS,
})

# Physical presence is recorded by staff on site only.
_GATE = frozenset({
    Capability.SCAN_CREDENTIAL,
    Capability.CHECK_IN,
    Capability.CHECK_OUT,
})


def default_role_policy() -> RolePolicy:
    """The stock permission table used when configuration supplies none."""
    return RolePolicy(grants={
        Role.SUPER_ADMIN: frozenset(Capability) - _GATE,
        Role.BUILDING_ADMIN: _MEMBER | {
            Capability.VIEW_STATS,
            Capability.DECIDE_VISIT,
            Capability.APPROVE_BY_NAME,
            Capability.CHECK_IN,
            Capability.CHECK_OUT,
            Capability.VIEW_CREDENTIAL,
        },
        Role.SECURITY: _MEMBER | {
            Capability.VIEW_STATS,
            Capability.DECIDE_VISIT,
            Capability.APPROVE_BY_NAME,
            Capability.SCAN_CREDENTIAL,
            Capability.CHECK_IN,
            Capability.CHECK_OUT,
            Capability.VIEW_CREDENTIAL,
        },
        Role.RESIDENT: _MEMBER | {
            Capability.APPROVE_BY_NAME,
        },
    })
