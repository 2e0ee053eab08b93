"""
Credential minting (pure).

Tokens are HMAC-SHA256 digests keyed with a deployment secret over the
visit's identity, the issuance instant and a random nonce.  The token is
opaque to callers: validation is always a lookup against the stored value,
never a re-computation.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from visit_kernel.domain.visit import Credential

DEFAULT_VALIDITY = timedelta(hours=24)


@dataclass(frozen=True)
class CredentialPolicy:
    """Validity window and signing key for entry credentials."""

    validity: timedelta = DEFAULT_VALIDITY
    secret: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        if self.validity <= timedelta(0):
            raise ValueError("credential validity must be positive")


def mint_token(
    secret: bytes,
    visit_id: UUID,
    visitor_ref: str,
    building_id: str,
    issued_at: datetime,
    nonce: str | None = None,
) -> str:
    """Return a hex HMAC-SHA256 token for one issuance."""
    nonce = nonce if nonce is not None else secrets.token_hex(16)
    message = "|".join((
        str(visit_id),
        visitor_ref,
        building_id,
        issued_at.isoformat(),
        nonce,
    )).encode("utf-8")
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def build_credential(
    policy: CredentialPolicy,
    visit_id: UUID,
    visitor_ref: str,
    building_id: str,
    issued_at: datetime,
) -> Credential:
    token = mint_token(policy.secret, visit_id, visitor_ref, building_id, issued_at)
    return Credential(
        token=token,
        issued_at=issued_at,
        expires_at=issued_at + policy.validity,
    )
