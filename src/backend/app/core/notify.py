from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Union

from pydantic import BaseModel

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

KEEPALIVE = b": keepalive\n\n"


def encode_event(event: Union[BaseModel, Mapping[str, Any]]) -> bytes:
    """Render one SSE message: ``data: <json>\\n\\n``."""
    if isinstance(event, BaseModel):
        payload = event.model_dump(by_alias=True)
    else:
        payload = dict(event)
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n".encode("utf-8")


class Broadcaster:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def publish(self, identity: str, event: Union[BaseModel, Mapping[str, Any]]) -> int:
        """Write ``event`` to every open stream of ``identity``.

        Never raises for a dead stream: it is skipped and left for its own
        connection to clean up. Returns how many streams accepted the event.
        """
        handles = await self.registry.snapshot(identity)
        if not handles:
            return 0
        chunk = encode_event(event)
        delivered = 0
        for handle in handles:
            try:
                handle.write(chunk)
            except Exception as exc:
                logger.debug("Skipping stream %r for user %s: %s", handle, identity, exc)
                continue
            delivered += 1
        return delivered
