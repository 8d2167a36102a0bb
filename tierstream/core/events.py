"""Stream fragments and their server-sent event framing.

A fragment of model output may contain line breaks, but an SSE ``data:``
line cannot: SSE ends a line at CR, LF or CRLF. Each fragment is therefore
split at every CR and LF; every piece except the last is followed by an
empty-payload continuation marker recording which break it stands for, and
the receiving side turns the marker back into that character. Empty pieces
produce no event of their own, so an empty payload is always a marker.

Failures and the diagnostic header travel through the same mechanism, tagged
by the SSE ``event:`` field, so the response framing never changes. A CR
marker is tagged ``<kind>-cr``; an LF marker uses the plain kind.
"""
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Iterator, List, Mapping, Optional

from tierstream.core.errors import UpstreamError

LINE_BREAK = "\n"
CARRIAGE_RETURN = "\r"
CR_SUFFIX = "-cr"

ERROR_PREFIX = "\n\n**Error:** "

_BREAKS = re.compile(r"([\r\n])")
_SSE_LINE_END = re.compile(r"\r\n|\r|\n")
class EventKind(str, Enum):
    """Tag carried by every transport event."""
    TEXT = "text"
    ERROR = "error"
    META = "meta"


@dataclass(frozen=True)
class StreamFragment:
    """One unit of upstream output: either text or a terminal failure."""
    text: str = ""
    error: Optional[UpstreamError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: UpstreamError) -> "StreamFragment":
        return cls(text=error.describe(), error=error)


@dataclass(frozen=True)
class TransportEvent:
    """One SSE event carrying at most one line of payload.

    ``terminator`` is the break a marker stands for (LF or CR).
    """
    kind: EventKind
    data: str = ""
    terminator: str = LINE_BREAK

    @property
    def is_marker(self) -> bool:
        return self.data == ""

    def encode(self) -> str:
        """Wire form. Text events use the default SSE event type."""
        if self.is_marker and self.terminator == CARRIAGE_RETURN:
            return f"event: {self.kind.value}{CR_SUFFIX}\ndata: \n\n"
        if self.kind is EventKind.TEXT:
            return f"data: {self.data}\n\n"
        return f"event: {self.kind.value}\ndata: {self.data}\n\n"


class EventEncoder:
    """Reframe fragments into line-safe transport events."""

    @staticmethod
    def split(text: str, kind: EventKind = EventKind.TEXT) -> Iterator[TransportEvent]:
        parts = _BREAKS.split(text)
        for line, terminator in zip(parts[0::2], parts[1::2]):
            if line:
                yield TransportEvent(kind, line)
            yield TransportEvent(kind, terminator=terminator)
        if parts[-1]:
            yield TransportEvent(kind, parts[-1])

    def encode_fragment(self, fragment: StreamFragment) -> Iterator[TransportEvent]:
        if fragment.is_error:
            return self.split(fragment.error.describe(), EventKind.ERROR)
        return self.split(fragment.text, EventKind.TEXT)

    def encode_header(
        self,
        mode: str,
        tier: Optional[str] = None,
        model: Optional[str] = None,
        claims: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[TransportEvent]:
        """Diagnostic header block emitted before the first fragment.

        Args:
            mode: "none", "tier" (tier and model) or "claims" (verified claims as JSON)
        """
        if mode == "tier":
            text = f"tier: {tier}\nmodel: {model}"
        elif mode == "claims":
            text = json.dumps(dict(claims or {}), sort_keys=True, default=str)
        else:
            return iter(())
        return self.split(text, EventKind.META)


class EventAccumulator:
    """Rebuild text from transport events in arrival order.

    Per kind, a payload is appended as-is and a marker appends the break it
    stands for.
    The first error event also appends ``ERROR_PREFIX`` so the failure is
    rendered inline after whatever partial output already arrived.
    """

    def __init__(self, error_prefix: str = ERROR_PREFIX):
        self.error_prefix = error_prefix
        self.output = ""
        self.meta = ""
        self.error: Optional[str] = None

    def feed(self, event: TransportEvent) -> str:
        piece = event.terminator if event.is_marker else event.data
        if event.kind is EventKind.META:
            self.meta += piece
        elif event.kind is EventKind.ERROR:
            if self.error is None:
                self.error = ""
                self.output += self.error_prefix
            self.error += piece
            self.output += piece
        else:
            self.output += piece
        return self.output


def decode_events(events: Iterable[TransportEvent]) -> str:
    """Reconstruct the text carried by ``events``."""
    accumulator = EventAccumulator()
    for event in events:
        accumulator.feed(event)
    return accumulator.output


async def iter_sse_lines(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """Split decoded body text into SSE lines.

    Only CR, LF and CRLF end a line; ``httpx.Response.aiter_lines`` also
    splits on the other ``str.splitlines`` breaks, which may appear in text.
    A CRLF split across two chunks counts once. A final unterminated line is
    yielded as-is.
    """
    buffer = ""
    skip_lf = False
    async for chunk in chunks:
        if not chunk:
            continue
        if skip_lf and chunk.startswith(LINE_BREAK):
            chunk = chunk[1:]
        skip_lf = chunk.endswith(CARRIAGE_RETURN)
        buffer += chunk
        lines = _SSE_LINE_END.split(buffer)
        buffer = lines.pop()
        for line in lines:
            yield line
    if buffer:
        yield buffer


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[TransportEvent]:
    """Parse SSE lines (without terminators) into transport events.

    Unknown event types are treated as text and comment lines are ignored.
    """
    event_type: Optional[str] = None
    data_lines: List[str] = []
    async for line in lines:
        if line == "":
            if data_lines:
                yield _make_event(event_type, LINE_BREAK.join(data_lines))
            event_type = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_type = value
        elif name == "data":
            data_lines.append(value)
    # An event not terminated by a blank line is incomplete and dropped.


def _make_event(event_type: Optional[str], data: str) -> TransportEvent:
    terminator = LINE_BREAK
    if event_type and event_type.endswith(CR_SUFFIX) and data == "":
        event_type = event_type[: -len(CR_SUFFIX)]
        terminator = CARRIAGE_RETURN
    try:
        kind = EventKind(event_type) if event_type else EventKind.TEXT
    except ValueError:
        kind = EventKind.TEXT
    return TransportEvent(kind, data, terminator)
