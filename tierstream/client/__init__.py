"""Client for consuming the relay stream."""

from tierstream.client.consumer import StreamConsumer, StreamResult, StreamState

__all__ = ["StreamConsumer", "StreamResult", "StreamState"]
