"""Pydantic schemas for tierstream configuration validation."""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tierstream.core.tiers import AccessTier
from tierstream.core.validation import UseCase


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class AuthConfig(_Frozen):
    """Credential verification configuration."""

    jwks_url: str = Field(..., description="URL returning the public key set (JWKS)")
    issuer: Optional[str] = Field(default=None, description="Expected 'iss' claim (not checked if unset)")
    audience: Optional[str] = Field(default=None, description="Expected 'aud' claim (not checked if unset)")
    authorized_parties: List[str] = Field(default_factory=list, description="Allowed 'azp' values (not checked if empty)")
    algorithms: List[str] = Field(default_factory=lambda: ["RS256"], min_length=1, description="Accepted signing algorithms")
    leeway_s: float = Field(default=0, ge=0, le=300, description="Clock skew tolerance for exp/nbf")
    key_fetch_timeout_s: float = Field(default=3.0, gt=0, le=30, description="Timeout for one key set fetch")
    key_max_age_s: float = Field(default=3600, gt=0, description="Age after which cached keys are refreshed")
    min_refresh_interval_s: float = Field(default=10, ge=0, description="Minimum spacing of refreshes forced by unknown key ids")

    @field_validator("jwks_url")
    @classmethod
    def validate_jwks_url(cls, v: str) -> str:
        if not (v.startswith("https://") or v.startswith("http://")):
            raise ValueError(f"jwks_url must be an http(s) URL, got '{v}'")
        return v


class PlanConfig(_Frozen):
    """One row of the plan slug table."""

    slug: str = Field(..., min_length=1, description="Plan slug as it appears in the plan claim (without scope prefix)")
    tier: AccessTier = Field(..., description="Tier granted by this plan")


class TiersConfig(_Frozen):
    """Tier resolution and model selection."""

    plan_claim: str = Field(default="pla", description="Claim carrying the plan")
    scope_prefixes: List[str] = Field(default_factory=lambda: ["u:", "o:"], description="Issuer-scope prefixes stripped from the plan claim")
    plans: List[PlanConfig] = Field(
        default_factory=lambda: [
            PlanConfig(slug="premium_subscription", tier=AccessTier.PREMIUM),
            PlanConfig(slug="pro_plan", tier=AccessTier.STANDARD),
        ],
        description="Ordered plan table, first match wins",
    )
    models: Dict[AccessTier, str] = Field(
        default_factory=lambda: {
            AccessTier.PREMIUM: "gpt-4o",
            AccessTier.STANDARD: "gpt-4o-mini",
            AccessTier.FREE: "gpt-4o-mini",
        },
        description="Model identifier per tier",
    )
    fallback_model: str = Field(default="gpt-4o-mini", min_length=1, description="Model for unrecognized tiers")

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: Dict[AccessTier, str]) -> Dict[AccessTier, str]:
        """Every tier needs exactly one non-empty model identifier."""
        missing = [tier.value for tier in AccessTier if not v.get(tier)]
        if missing:
            raise ValueError(f"models must map every tier; missing: {', '.join(missing)}")
        return v


class ProviderConfig(_Frozen):
    """Upstream model provider configuration."""

    name: Literal["openai", "anthropic"] = Field(default="openai", description="Provider adapter")
    base_url: str = Field(default="https://api.openai.com/v1", description="Provider API base URL")
    api_key_env: str = Field(default="OPENAI_API_KEY", description="Environment variable holding the provider key")
    api_key: Optional[str] = Field(default=None, repr=False, description="Provider key (resolved from api_key_env at load)")
    timeout_s: float = Field(default=25.0, gt=0, description="Total deadline for one streaming call")
    host_limit_s: float = Field(default=30.0, gt=0, description="Host request execution limit")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Completion token limit")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")

    @model_validator(mode="after")
    def validate_deadline(self) -> "ProviderConfig":
        """The stream deadline must expire before the host kills the request."""
        if self.timeout_s >= self.host_limit_s:
            raise ValueError(
                f"timeout_s ({self.timeout_s}) must be < host_limit_s ({self.host_limit_s})"
            )
        return self


class StreamConfig(_Frozen):
    """Event stream options."""

    header: Literal["none", "tier", "claims"] = Field(default="none", description="Diagnostic header block")


class RelayConfig(_Frozen):
    """Root configuration model."""

    use_case: UseCase = Field(default=UseCase.CONSULTATION, description="Active use case")
    route_path: str = Field(default="/api", description="Path of the relay route")
    auth: AuthConfig
    tiers: TiersConfig = Field(default_factory=TiersConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    @field_validator("route_path")
    @classmethod
    def validate_route_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("route_path must start with '/'")
        return v.rstrip("/") or "/"
