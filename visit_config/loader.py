"""
Configuration Loader (``visit_config.loader``).

Responsibility
--------------
Loads the YAML baseline and parses each section into the typed values of
``visit_config.schema`` and the kernel (``CredentialPolicy``,
``FieldLimits``, ``RolePolicy``).  The single public entry point for
runtime config is ``visit_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigError`` naming the offending key; no
  silent defaults for unknown roles or capabilities.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective configuration, with secrets excluded.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from visit_config.schema import ConfigError, RateLimitRule
from visit_kernel.domain.roles import Capability, Role, RolePolicy
from visit_kernel.domain.validation import FieldLimits


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def read_section(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(key, "must be a mapping")
    return value


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(key, f"must be a positive integer, got {value!r}")
    return value


def _role(name: Any, key: str) -> Role:
    try:
        return Role(name)
    except ValueError:
        raise ConfigError(key, f"unknown role {name!r}") from None


def parse_field_limits(data: Mapping[str, Any]) -> FieldLimits:
    known = {f.name for f in fields(FieldLimits)}
    values = {}
    for name, value in data.items():
        if name not in known:
            raise ConfigError(f"field_limits.{name}", "unknown limit")
        values[name] = _positive_int(value, f"field_limits.{name}")
    limits = FieldLimits(**values)
    if limits.duration_min_minutes > limits.duration_max_minutes:
        raise ConfigError(
            "field_limits.duration_min_minutes", "exceeds duration_max_minutes"
        )
    return limits


def parse_role_policy(data: Mapping[str, Any]) -> RolePolicy:
    grants = {}
    for name, capabilities in data.items():
        role = _role(name, f"roles.{name}")
        if not isinstance(capabilities, list):
            raise ConfigError(f"roles.{name}", "must be a list of capabilities")
        try:
            grants[role] = frozenset(Capability(c) for c in capabilities)
        except ValueError as exc:
            raise ConfigError(f"roles.{name}", str(exc)) from None
    return RolePolicy(grants=grants)


def parse_rate_limits(
    data: Mapping[str, Any],
) -> tuple[RateLimitRule, dict[Role, RateLimitRule]]:
    window = _positive_int(data.get("window_seconds", 900), "rate_limits.window_seconds")
    default = RateLimitRule(
        limit=_positive_int(data.get("default", 50), "rate_limits.default"),
        window_seconds=window,
    )
    per_role = {}
    for name, limit in (data.get("roles") or {}).items():
        key = f"rate_limits.roles.{name}"
        per_role[_role(name, key)] = RateLimitRule(
            limit=_positive_int(limit, key), window_seconds=window,
        )
    return default, per_role


def parse_validity(data: Mapping[str, Any]) -> timedelta:
    hours = data.get("validity_hours", 24)
    if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
        raise ConfigError(
            "credentials.validity_hours", f"must be a positive number, got {hours!r}"
        )
    return timedelta(hours=hours)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums (sorted keys).
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
