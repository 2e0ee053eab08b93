"""
visit_services -- request boundary over the visit kernel.

Responsibility:
    Payload parsing into discriminated request types, per-caller rate
    limiting and response mapping.  No lifecycle rules live here.

Architecture position:
    Services -- may import from visit_kernel and visit_config.
    visit_kernel MUST NOT import from this package.
"""

from visit_services.rate_limiter import FixedWindowRateLimiter
from visit_services.visit_api import (
    STATUS_BY_CODE,
    ApiResponse,
    VisitApi,
    visit_to_dict,
)

__all__ = [
    "ApiResponse",
    "FixedWindowRateLimiter",
    "STATUS_BY_CODE",
    "VisitApi",
    "visit_to_dict",
]
