"""
Verification classification for Circles avatars.

An avatar is verified once it has at least VERIFICATION_THRESHOLD incoming
trusts (self-trust excluded upstream). Pure function; no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from circles_registry.models import STATUS_REGISTERED, STATUS_VERIFIED

VERIFICATION_THRESHOLD = 3


@dataclass(frozen=True)
class Verification:
    verified: bool
    status: str
    needed_trusts: int


def classify(incoming_count: int, threshold: int = VERIFICATION_THRESHOLD) -> Verification:
    """
    Map an incoming trust count to a verification status.

    verified iff incoming_count >= threshold; needed_trusts is how many more
    trusts an unverified avatar needs (0 once verified).
    """
    if incoming_count < 0:
        raise ValueError("incoming_count must be non-negative")
    verified = incoming_count >= threshold
    return Verification(
        verified=verified,
        status=STATUS_VERIFIED if verified else STATUS_REGISTERED,
        needed_trusts=0 if verified else max(0, threshold - incoming_count),
    )
