"""Bounded queue between the provider reader and the client writer.

The provider stream is read by its own task and pushed into an
asyncio.Queue; the response writer drains the queue. A slow client therefore
only stalls the reader once the queue is full. When the writer stops early
(client disconnect), the reader task is cancelled, which closes the
outbound connection and stops any further polling.
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing

from chatrelay.logging import get_logger
from chatrelay.services.llm.errors import LLMErrorClass
from chatrelay.services.llm.types import CanonicalEvent, ErrorEvent

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 256

_END = object()


async def bridge_events(
    source: AsyncGenerator[CanonicalEvent, None],
    *,
    maxsize: int = DEFAULT_QUEUE_SIZE,
) -> AsyncIterator[CanonicalEvent]:
    """Re-yield events from source through a bounded queue.

    Order is preserved. An unexpected exception in the source ends the
    stream with one E_INTERNAL ErrorEvent.
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def produce() -> None:
        try:
            async with aclosing(source):
                async for event in source:
                    await queue.put(event)
        except Exception:
            logger.exception("relay.bridge.producer_failed")
            await queue.put(
                ErrorEvent(message="Error processing request", code=LLMErrorClass.INTERNAL.value)
            )
        await queue.put(_END)

    task = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            yield item
    finally:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
