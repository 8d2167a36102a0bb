"""Relay endpoints.

This module provides:
- {route_path} - authenticated model stream (GET for "idea", POST for "consultation")
- GET {route_path}/tier - read-only projection of the resolved tier
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from tierstream.app.dependencies import AppState, get_app_state, get_request_id, verify_credential
from tierstream.app.schemas import TierProjection
from tierstream.core.errors import ValidationError
from tierstream.core.prompts import build_messages
from tierstream.core.relay import relay_events
from tierstream.core.validation import UseCase, validate_request

logger = logging.getLogger(__name__)


async def _read_raw_payload(request: Request, use_case: UseCase):
    """Raw request input: query parameters for GET, JSON body for POST."""
    if use_case.http_method == "GET":
        return dict(request.query_params)
    body = await request.body()
    try:
        return json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("body", "Request body is not valid JSON") from e


async def relay(request: Request, state: AppState = Depends(get_app_state)) -> StreamingResponse:
    """Verify, resolve, validate, build the prompt, then stream the model answer.

    Every check that can reject the request runs before the response starts;
    once streaming begins the status is 200 and failures arrive in-band.
    """
    config = state.config
    use_case = config.use_case
    request_id = get_request_id(request)

    credential = await verify_credential(request, state)
    decision = state.tier_resolver.resolve(credential.claims)

    raw = await _read_raw_payload(request, use_case)
    record = validate_request(use_case, raw)
    messages = build_messages(use_case, record)

    logger.info(
        f"Relaying request_id={request_id} use_case={use_case.value} "
        f"tier={decision.tier.value} model={decision.model}"
    )

    generator = relay_events(
        state.stream_adapter,
        model=decision.model,
        messages=messages,
        request_id=request_id,
        use_case=use_case.value,
        tier=decision.tier.value,
        header_mode=config.stream.header,
        claims=credential.claims,
        subject=credential.subject,
        is_disconnected=request.is_disconnected,
    )

    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "X-Request-ID": request_id,
            "X-Access-Tier": decision.tier.value,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def tier_projection(request: Request, state: AppState = Depends(get_app_state)) -> TierProjection:
    """Resolved tier for the caller's credential (never from client-asserted data)."""
    credential = await verify_credential(request, state)
    decision = state.tier_resolver.resolve(credential.claims)
    return TierProjection(
        tier=decision.tier.value,
        rank=decision.tier.rank,
        plan=decision.plan,
        model=decision.model,
    )


def build_router(route_path: str, use_case: UseCase) -> APIRouter:
    """Router with the relay route bound to the active use case's method."""
    router = APIRouter(tags=["Relay"])
    tier_path = "/tier" if route_path == "/" else f"{route_path}/tier"
    router.add_api_route(tier_path, tier_projection, methods=["GET"], response_model=TierProjection)
    router.add_api_route(
        route_path,
        relay,
        methods=[use_case.http_method],
        response_class=StreamingResponse,
    )
    return router
