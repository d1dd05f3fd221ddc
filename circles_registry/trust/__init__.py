# Trust counting and verification classification.

from circles_registry.trust.classifier import VERIFICATION_THRESHOLD, Verification, classify
from circles_registry.trust.counter import TrustCounter, TrustCounts

__all__ = [
    "VERIFICATION_THRESHOLD",
    "TrustCounter",
    "TrustCounts",
    "Verification",
    "classify",
]
