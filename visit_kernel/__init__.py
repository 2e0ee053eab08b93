"""
Visit Kernel - lifecycle and credential engine for building visits.

A synchronous, state-machine driven core with:
- Approval sub-state with terminal outcomes
- Time-bounded, single-use entry credentials
- Atomic conditional updates for every transition
- Best-effort notification side-effects
- Building-scoped, capability based authorization
"""

__version__ = "0.1.0"
