"""
EngineConfig schema.

The frozen runtime artifact handed to the request boundary and the
orchestrator.  YAML is parsed into these types by ``visit_config.loader``;
nothing downstream reads YAML or environment variables directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from visit_kernel.domain.credential import CredentialPolicy
from visit_kernel.domain.roles import Role, RolePolicy
from visit_kernel.domain.validation import FieldLimits

PRODUCTION = "production"


class ConfigError(ValueError):
    """Configuration is missing a required value or holds an invalid one."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration at {key!r}: {reason}")


@dataclass(frozen=True)
class RateLimitRule:
    """At most ``limit`` requests per ``window_seconds`` for one key."""

    limit: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("rate limit must be at least 1")
        if self.window_seconds < 1:
            raise ValueError("rate limit window must be at least 1 second")


@dataclass(frozen=True)
class EngineConfig:
    """Everything the engine and its request boundary need at startup."""

    environment: str
    database_url: str
    credential_policy: CredentialPolicy
    field_limits: FieldLimits
    role_policy: RolePolicy
    default_rate_limit: RateLimitRule
    rate_limits: Mapping[Role, RateLimitRule] = field(default_factory=dict)
    database_echo: bool = False
    checksum: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def rate_limit_for(self, role: Role) -> RateLimitRule:
        return self.rate_limits.get(role, self.default_rate_limit)
