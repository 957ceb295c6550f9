"""Chat relay route.

POST /chat streams canonical events as Server-Sent Events:
- data: {"content": "<delta>"}
- data: {"status": "processing"}
- data: {"error": "<message>", "code": "E_..."}
The stream closes after the last frame; there is no explicit done frame.

Once the stream has started, failures are reported in-band as one error
frame. Only a malformed body is rejected with an HTTP error envelope.
"""

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from chatrelay.api.deps import get_http_client, get_registry, get_settings_dep
from chatrelay.config import Settings
from chatrelay.schemas.chat import ChatMessageRequest
from chatrelay.services.chat import stream_chat_sse
from chatrelay.services.llm import ProviderRegistry

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


@router.post("/chat")
async def send_chat_message(
    body: ChatMessageRequest,
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    registry: Annotated[ProviderRegistry, Depends(get_registry)],
    settings: Annotated[Settings, Depends(get_settings_dep)],
) -> StreamingResponse:
    """Relay one chat message to the configured provider."""
    return StreamingResponse(
        stream_chat_sse(
            message=body.message,
            history=body.history_turns(),
            context=body.context,
            client=client,
            registry=registry,
            settings=settings,
        ),
        media_type="text/event-stream; charset=utf-8",
        headers=SSE_HEADERS,
    )
