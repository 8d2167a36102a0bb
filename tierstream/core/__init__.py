"""tierstream core - credential, tier, prompt and event primitives."""

from tierstream.core.credentials import CredentialVerifier, VerifiedCredential
from tierstream.core.events import EventAccumulator, EventEncoder, StreamFragment, TransportEvent
from tierstream.core.jwks import KeySetCache
from tierstream.core.tiers import AccessTier, ModelSelection, TierDecision, TierResolver

__all__ = [
    "AccessTier",
    "CredentialVerifier",
    "EventAccumulator",
    "EventEncoder",
    "KeySetCache",
    "ModelSelection",
    "StreamFragment",
    "TierDecision",
    "TierResolver",
    "TransportEvent",
    "VerifiedCredential",
]
