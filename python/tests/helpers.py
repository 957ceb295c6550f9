"""Test helpers shared across the suite.

Provides:
- Provider stream fixture loading
- Chunked response bodies for split-frame tests
- Settings builders that never read a .env file
- A sleep recorder standing in for asyncio.sleep
"""

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

import httpx

from chatrelay.config import ClientSettings, Settings

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "llm"

TEST_API_KEYS = {
    "OPENAI_API_KEY": "sk-test",
    "MISTRAL_API_KEY": "mistral-test",
    "PERPLEXITY_API_KEY": "pplx-test",
    "ANTHROPIC_API_KEY": "sk-ant-test",
    "GEMINI_API_KEY": "gemini-test",
}


def load_fixture(provider: str, filename: str) -> dict | str:
    """Load a test fixture file."""
    path = FIXTURES_DIR / provider / filename
    content = path.read_text(encoding="utf-8")
    if filename.endswith(".json"):
        return json.loads(content)
    return content


def load_stream_fixture(provider: str) -> bytes:
    """Raw bytes of a provider's recorded success stream."""
    content = load_fixture(provider, "success_stream_chunks.txt")
    assert isinstance(content, str)
    return content.encode("utf-8")


def sse_body(*payloads: dict | str) -> bytes:
    """Build an SSE body from payloads (dicts are JSON-encoded)."""
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        frames.append(f"data: {data}\n\n")
    return "".join(frames).encode("utf-8")


def split_every(data: bytes, size: int) -> list[bytes]:
    """Split bytes into fixed-size chunks (frames and characters get cut)."""
    return [data[i : i + size] for i in range(0, len(data), size)]


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered as the given chunks, optionally with a pause."""

    def __init__(self, chunks: Iterable[bytes], delay_s: float = 0.0):
        self._chunks = list(chunks)
        self._delay_s = delay_s

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            if self._delay_s:
                await asyncio.sleep(self._delay_s)
            yield chunk


def make_settings(**overrides) -> Settings:
    """Settings with test API keys for every provider."""
    values: dict = dict(TEST_API_KEYS)
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client_settings(**overrides) -> ClientSettings:
    values: dict = {"CHATRELAY_URL": "http://relay.test/chat"}
    values.update(overrides)
    return ClientSettings(_env_file=None, **values)


class SleepRecorder:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def collect(events) -> list:
    """Drain an async iterator into a list."""
    return [event async for event in events]
