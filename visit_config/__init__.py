"""
visit_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads the YAML baseline
    or the environment directly.  Returns a frozen ``EngineConfig``.

Architecture position:
    Configuration -- sits above ``visit_kernel`` and below
    ``visit_services``.  The kernel MUST NEVER import from
    ``visit_config``; it receives the parsed values (``RolePolicy``,
    ``CredentialPolicy``, ``FieldLimits``) by injection.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Production never runs with a built-in credential secret.
    - Deterministic checksum: the same effective configuration always
      yields the same checksum (secrets excluded).

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ConfigError`` (a ``ValueError``) -- invalid or missing values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from visit_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_field_limits,
    parse_rate_limits,
    parse_role_policy,
    parse_validity,
    read_section,
)
from visit_config.schema import PRODUCTION, ConfigError, EngineConfig, RateLimitRule
from visit_kernel.domain.credential import CredentialPolicy

_logger = logging.getLogger("visit_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "ConfigError",
    "EngineConfig",
    "RateLimitRule",
    "get_active_config",
]


def get_active_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load. Defaults to visit_config/defaults.yaml.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        EngineConfig -- the frozen runtime artifact.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigError: If a value is invalid, or production has no secret.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(path or _DEFAULT_CONFIG_PATH)

    environment = env.get("VISIT_ENVIRONMENT") or data.get("environment") or "development"
    database = read_section(data, "database")
    database_url = env.get("DATABASE_URL") or database.get("url")
    if not database_url:
        raise ConfigError("database.url", "is required")

    credentials = read_section(data, "credentials")
    secret_env = credentials.get("secret_env", "VISIT_CREDENTIAL_SECRET")
    secret = env.get(secret_env)
    if not secret:
        if environment == PRODUCTION:
            raise ConfigError(
                "credentials.secret_env",
                f"{secret_env} must be set in production",
            )
        secret = credentials.get("development_secret")
        if not secret:
            raise ConfigError("credentials.development_secret", "is required")

    credential_policy = CredentialPolicy(
        validity=parse_validity(credentials),
        secret=secret.encode("utf-8"),
    )
    field_limits = parse_field_limits(read_section(data, "field_limits"))
    role_policy = parse_role_policy(read_section(data, "roles"))
    default_rate, role_rates = parse_rate_limits(read_section(data, "rate_limits"))

    effective = dict(data)
    effective["environment"] = environment
    effective["database"] = {**database, "url": database_url}
    effective["credentials"] = {
        k: v for k, v in credentials.items() if k != "development_secret"
    }
    checksum = compute_checksum(effective)

    config = EngineConfig(
        environment=environment,
        database_url=database_url,
        credential_policy=credential_policy,
        field_limits=field_limits,
        role_policy=role_policy,
        default_rate_limit=default_rate,
        rate_limits=role_rates,
        database_echo=bool(database.get("echo", False)),
        checksum=checksum,
    )

    _logger.info(
        "visit_config_loaded",
        extra={
            "environment": environment,
            "roles": sorted(role.value for role in role_policy.grants),
            "checksum": checksum,
        },
    )
    return config
