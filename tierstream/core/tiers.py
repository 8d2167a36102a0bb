"""Access tier resolution from verified credential claims."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple


class AccessTier(str, Enum):
    """Access tiers, most privileged first."""
    PREMIUM = "premium"
    STANDARD = "standard"
    FREE = "free"

    @property
    def rank(self) -> int:
        """Position in the tier order (0 = most privileged)."""
        return list(AccessTier).index(self)


LOWEST_TIER = AccessTier.FREE

DEFAULT_SCOPE_PREFIXES = ("u:", "o:")


@dataclass(frozen=True)
class TierDecision:
    """Resolved tier, the model it maps to, and the plan slug that matched."""
    tier: AccessTier
    model: str
    plan: Optional[str] = None


class ModelSelection:
    """Tier to model identifier mapping, fixed at process start."""

    def __init__(self, models: Mapping[AccessTier, str], fallback_model: str):
        missing = [tier.value for tier in AccessTier if not models.get(tier)]
        if missing:
            raise ValueError(f"No model configured for tier(s): {', '.join(missing)}")
        if not fallback_model:
            raise ValueError("A fallback model is required")
        self._models = dict(models)
        self.fallback_model = fallback_model

    def model_for(self, tier: Any) -> str:
        """Model identifier for ``tier``; the fallback for unrecognized tiers."""
        try:
            return self._models.get(AccessTier(tier), self.fallback_model)
        except ValueError:
            return self.fallback_model


class TierResolver:
    """Derive (tier, model) from verified claims.

    Resolution is total: a missing, non-string or unrecognized plan claim
    resolves to the lowest tier instead of failing.
    """

    def __init__(
        self,
        plans: Sequence[Tuple[str, AccessTier]],
        selection: ModelSelection,
        scope_prefixes: Sequence[str] = DEFAULT_SCOPE_PREFIXES,
        plan_claim: str = "pla",
    ):
        """
        Args:
            plans: Ordered (plan slug, tier) table; first match wins
            selection: Tier to model mapping
            scope_prefixes: Issuer-scope prefixes stripped from the plan claim
            plan_claim: Name of the claim carrying the plan
        """
        self.plans = [(slug, AccessTier(tier)) for slug, tier in plans]
        self.selection = selection
        self.scope_prefixes = tuple(scope_prefixes)
        self.plan_claim = plan_claim

    def plan_slug(self, claims: Mapping[str, Any]) -> Optional[str]:
        """Plan claim with a known scope prefix removed, or None if absent."""
        raw = claims.get(self.plan_claim)
        if not isinstance(raw, str):
            return None
        for prefix in self.scope_prefixes:
            if raw.startswith(prefix):
                return raw[len(prefix):]
        return raw

    def resolve(self, claims: Mapping[str, Any]) -> TierDecision:
        slug = self.plan_slug(claims)
        if slug is not None:
            for plan, tier in self.plans:
                if slug == plan:
                    return TierDecision(tier=tier, model=self.selection.model_for(tier), plan=plan)
        return TierDecision(tier=LOWEST_TIER, model=self.selection.model_for(LOWEST_TIER))
