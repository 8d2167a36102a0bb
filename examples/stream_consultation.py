#!/usr/bin/env python3
"""
Stream a consultation summary from a tierstream relay.

This example demonstrates:
- Submitting a consultation with a bearer credential
- Rendering the output buffer as it grows
- Telling success, in-band errors and rejections apart

Usage:
    TIERSTREAM_TOKEN=... python stream_consultation.py
"""
import asyncio
import os
import sys

from tierstream.client import StreamConsumer, StreamState

TIERSTREAM_URL = os.getenv("TIERSTREAM_URL", "http://localhost:8000/api")
TOKEN = os.getenv("TIERSTREAM_TOKEN", "")


def render(output: str) -> None:
    """Redraw the whole buffer (the callback always receives the full value)."""
    sys.stdout.write("\033[2J\033[H" + output)
    sys.stdout.flush()


async def main() -> int:
    consumer = StreamConsumer(TIERSTREAM_URL, method="POST", timeout_s=60.0)
    result = await consumer.submit(
        TOKEN,
        {
            "patient_name": "Jane Doe",
            "date_of_visit": "2024-05-02",
            "notes": "Persistent dry cough for two weeks, no fever. Advised rest and fluids.",
        },
        on_update=render,
    )
    print()

    if result.state is StreamState.SUCCESS:
        print(f"--- done ({result.events} events)")
        return 0
    print(f"--- failed: {result.error}")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
