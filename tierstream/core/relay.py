"""Relay one request's model output to the client as server-sent events."""
import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional

from tierstream.core.events import EventEncoder
from tierstream.core.logging import structured_logger
from tierstream.metrics.prometheus import stream_latency_ms, streams_total

logger = logging.getLogger(__name__)


async def relay_events(
    stream_adapter,
    model: str,
    messages: List[Dict[str, str]],
    request_id: str,
    use_case: str,
    tier: str,
    header_mode: str = "none",
    claims: Optional[Mapping[str, Any]] = None,
    subject: Optional[str] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    encoder: Optional[EventEncoder] = None,
) -> AsyncIterator[str]:
    """Yield encoded SSE events for one request.

    Fragments are forwarded strictly in arrival order. Upstream failures
    arrive as a terminal error fragment and are encoded like any other
    fragment, so the response never changes framing. The upstream iterator is
    closed as soon as the client goes away.

    Args:
        stream_adapter: ModelStreamAdapter (or anything with the same ``stream``)
        model: Resolved model identifier
        messages: Prompt messages
        request_id: Request identifier for logs
        use_case: Active use case name
        tier: Resolved tier name
        header_mode: Diagnostic header mode ("none", "tier" or "claims")
        claims: Verified claims (only emitted when header_mode is "claims")
        subject: Credential subject (logged hashed)
        is_disconnected: Async predicate reporting client disconnect
        encoder: Event encoder (default EventEncoder())
    """
    encoder = encoder or EventEncoder()
    start_time = time.time()
    outcome = "success"
    error_code: Optional[str] = None
    fragments = 0

    for event in encoder.encode_header(header_mode, tier=tier, model=model, claims=claims):
        yield event.encode()

    upstream = stream_adapter.stream(model, messages)
    try:
        async for fragment in upstream:
            if is_disconnected is not None and await is_disconnected():
                outcome = "cancelled"
                logger.info(f"Client disconnected, stopping stream: request_id={request_id}")
                break

            if fragment.is_error:
                outcome = "error"
                error_code = fragment.error.code.value
            else:
                fragments += 1

            for event in encoder.encode_fragment(fragment):
                yield event.encode()
    except (asyncio.CancelledError, GeneratorExit):
        outcome = "cancelled"
        raise
    finally:
        try:
            await upstream.aclose()
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            structured_logger.log_stream(
                request_id=request_id,
                use_case=use_case,
                tier=tier,
                model=model,
                outcome=outcome,
                error_code=error_code,
                fragments=fragments,
                latency_ms=duration_ms,
                subject=subject,
                level="WARNING" if outcome == "error" else "INFO",
            )
            streams_total.labels(use_case=use_case, tier=tier, outcome=outcome).inc()
            stream_latency_ms.labels(use_case=use_case, tier=tier).observe(duration_ms)
