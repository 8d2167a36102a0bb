"""Client side of the relay: consume the event stream into one growing text.

One ``submit`` call is one user-initiated submission. The output buffer is
reset, the connection is opened with the credential attached, and after every
received event the display callback gets the buffer's full current value.
There is no automatic retry: on a transport failure the partial output is kept
and the caller decides whether to let the user resubmit.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import httpx

from tierstream.core.events import EventAccumulator, iter_sse_lines, parse_sse

logger = logging.getLogger(__name__)

DisplayCallback = Callable[[str], Union[None, Awaitable[None]]]

NOT_AUTHORIZED = "not authorized"
INVALID_INPUT = "invalid input"


def rejection_message(status_code: int) -> str:
    """Generic user-facing message for a pre-stream rejection."""
    if status_code in (401, 403):
        return NOT_AUTHORIZED
    if status_code == 400:
        return INVALID_INPUT
    return f"request failed ({status_code})"


class StreamState(str, Enum):
    """Lifecycle of one submission."""
    IDLE = "idle"
    STREAMING = "streaming"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class StreamResult:
    """Outcome of one submission."""
    state: StreamState
    output: str = ""
    meta: str = ""
    error: Optional[str] = None
    status_code: Optional[int] = None
    events: int = 0


@dataclass
class _Submission:
    accumulator: EventAccumulator = field(default_factory=EventAccumulator)
    events: int = 0
    status_code: Optional[int] = None


class StreamConsumer:
    """Consume a relay endpoint as server-sent events."""

    def __init__(
        self,
        url: str,
        method: str = "POST",
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
    ):
        """
        Args:
            url: Relay endpoint URL
            method: GET (query parameters) or POST (JSON body)
            client: HTTP client to use (one is created per submission if omitted)
            timeout_s: Read timeout between events (None waits indefinitely)
        """
        self.url = url
        self.method = method.upper()
        self._client = client
        self.timeout_s = timeout_s
        self.state = StreamState.IDLE
        self.output = ""

    async def submit(
        self,
        credential: str,
        body: Optional[Mapping[str, Any]] = None,
        on_update: Optional[DisplayCallback] = None,
    ) -> StreamResult:
        """Run one submission to completion.

        Args:
            credential: Bearer credential
            body: Request fields (query parameters for GET, JSON for POST)
            on_update: Called with the full buffer value after every event

        Returns:
            StreamResult with the terminal state and final buffer.
        """
        self.output = ""
        self.state = StreamState.STREAMING
        submission = _Submission()

        request_kwargs = {"headers": {"Authorization": f"Bearer {credential}", "Accept": "text/event-stream"}}
        if body is not None:
            if self.method == "GET":
                request_kwargs["params"] = dict(body)
            else:
                request_kwargs["json"] = dict(body)

        try:
            if self._client is not None:
                await self._consume(self._client, request_kwargs, submission, on_update)
            else:
                timeout = httpx.Timeout(10.0, read=self.timeout_s)
                async with httpx.AsyncClient(timeout=timeout) as client:
                    await self._consume(client, request_kwargs, submission, on_update)
        except asyncio.CancelledError:
            self.state = StreamState.CANCELLED
            raise
        except httpx.TransportError as e:
            logger.warning(f"Stream transport failed after {submission.events} event(s): {type(e).__name__}")
            self.state = StreamState.ERROR
            return self._result(submission, error=f"connection lost: {type(e).__name__}")

        # An in-band error event means the stream ended cleanly but unsuccessfully.
        if submission.accumulator.error is not None:
            self.state = StreamState.ERROR
        else:
            self.state = StreamState.SUCCESS
        return self._result(submission, error=submission.accumulator.error)

    async def _consume(
        self,
        client: httpx.AsyncClient,
        request_kwargs: dict,
        submission: _Submission,
        on_update: Optional[DisplayCallback],
    ) -> None:
        async with client.stream(self.method, self.url, **request_kwargs) as response:
            submission.status_code = response.status_code
            if response.status_code != 200:
                await response.aread()
                self.state = StreamState.ERROR
                submission.accumulator.error = rejection_message(response.status_code)
                return

            async for event in parse_sse(iter_sse_lines(response.aiter_text())):
                self.output = submission.accumulator.feed(event)
                submission.events += 1
                if on_update is not None:
                    result = on_update(self.output)
                    if inspect.isawaitable(result):
                        await result

    def _result(self, submission: _Submission, error: Optional[str]) -> StreamResult:
        return StreamResult(
            state=self.state,
            output=self.output,
            meta=submission.accumulator.meta,
            error=error,
            status_code=submission.status_code,
            events=submission.events,
        )
