"""Shared dependencies for the tierstream FastAPI application.

This module contains:
- Global state management (config, key cache, verifier, resolver, stream adapter)
- Component construction from configuration
- Request identification helpers
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from tierstream.adapters.llm.factory import get_adapter
from tierstream.adapters.stream import ModelStreamAdapter
from tierstream.config.schema import RelayConfig
from tierstream.core.credentials import CredentialVerifier, VerifiedCredential, extract_bearer
from tierstream.core.jwks import KeySetCache
from tierstream.core.tiers import ModelSelection, TierResolver

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Application state container for all shared components.

    The key cache is the only component holding mutable state shared between
    requests; everything else is read-only after startup.
    """
    config: Optional[RelayConfig] = None
    key_cache: Optional[KeySetCache] = None
    verifier: Optional[CredentialVerifier] = None
    tier_resolver: Optional[TierResolver] = None
    stream_adapter: Optional[ModelStreamAdapter] = None


# Global application state instance
app_state = AppState()


def get_app_state() -> AppState:
    """Get the global application state.

    Returns:
        AppState: The global application state instance.
    """
    return app_state


def build_tier_resolver(config: RelayConfig) -> TierResolver:
    """Build the tier resolver from the tiers section."""
    tiers = config.tiers
    selection = ModelSelection(tiers.models, fallback_model=tiers.fallback_model)
    return TierResolver(
        plans=[(plan.slug, plan.tier) for plan in tiers.plans],
        selection=selection,
        scope_prefixes=tiers.scope_prefixes,
        plan_claim=tiers.plan_claim,
    )


def build_stream_adapter(config: RelayConfig) -> ModelStreamAdapter:
    """Build the upstream stream adapter from the provider section."""
    provider = config.provider
    adapter = get_adapter(provider.name)
    if adapter is None:
        raise ValueError(f"Unknown provider '{provider.name}'")
    if not provider.api_key:
        logger.warning(
            f"No provider key found in ${provider.api_key_env}; upstream calls will fail with an auth error"
        )
    return ModelStreamAdapter(
        adapter=adapter,
        base_url=provider.base_url,
        api_key=provider.api_key or "",
        timeout_s=provider.timeout_s,
        max_tokens=provider.max_tokens,
        temperature=provider.temperature,
    )


def init_app_state(config: RelayConfig, state: Optional[AppState] = None) -> AppState:
    """Populate ``state`` (the global state by default) from configuration."""
    state = state or get_app_state()
    auth = config.auth

    state.config = config
    state.key_cache = KeySetCache(
        auth.jwks_url,
        fetch_timeout_s=auth.key_fetch_timeout_s,
        max_age_s=auth.key_max_age_s,
        min_refresh_interval_s=auth.min_refresh_interval_s,
    )
    state.verifier = CredentialVerifier(
        state.key_cache,
        algorithms=auth.algorithms,
        issuer=auth.issuer,
        audience=auth.audience,
        authorized_parties=auth.authorized_parties,
        leeway_s=auth.leeway_s,
        plan_claim=config.tiers.plan_claim,
    )
    state.tier_resolver = build_tier_resolver(config)
    state.stream_adapter = build_stream_adapter(config)
    return state


def get_request_id(request: Request) -> str:
    """Request ID from the X-Request-ID header, or a new one."""
    return request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:16]}"


async def verify_credential(request: Request, state: AppState) -> VerifiedCredential:
    """Verify the request's bearer credential.

    Raises:
        AuthError: If the credential is missing or fails verification.
    """
    token = extract_bearer(request.headers.get("Authorization"))
    return await state.verifier.verify(token)
