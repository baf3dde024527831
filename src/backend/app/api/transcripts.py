from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from starlette.responses import StreamingResponse

from ..core.config import get_settings
from ..core.deps import get_current_user_id
from ..core.notify import KEEPALIVE, encode_event
from ..core.registry import ConnectionRegistry, get_registry
from ..schemas.transcripts import ConnectedEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transcripts"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _event_stream(
    registry: ConnectionRegistry,
    user_id: str,
    heartbeat: float,
) -> AsyncGenerator[bytes, None]:
    async with registry.connect(user_id) as handle:
        handle.write(encode_event(ConnectedEvent(user_id=user_id)))
        try:
            while True:
                try:
                    chunk = await handle.read(timeout=heartbeat)
                except asyncio.TimeoutError:
                    yield KEEPALIVE
                    continue
                if chunk is None:
                    break
                yield chunk
        except asyncio.CancelledError:
            # client disconnected
            logger.debug("Stream for user %s cancelled", user_id)
            raise


@router.get("/transcripts")
async def stream_transcripts(
    user_id: str = Depends(get_current_user_id),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Server-Sent Events stream of live transcripts for the signed-in user.

    Frontend can connect with: new EventSource('/api/transcripts?token=...')
    """
    heartbeat = get_settings().sse_heartbeat_seconds
    return StreamingResponse(
        _event_stream(registry, user_id, heartbeat),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
